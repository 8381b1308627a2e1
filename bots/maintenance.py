"""Balance snapshots and the midnight maintenance job."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from bots.bot_b import BotB, previous_month
from execution.kraken_client import KrakenGateway
from shared.errors import BrokerError
from shared.schemas import BalanceSnapshot, SnapshotType, utc_now
from storage.db import Database

logger = logging.getLogger(__name__)


def period_key(snapshot_type: SnapshotType, now: datetime) -> str:
    """Dedup key: the date, the week's Monday, or the first of the month."""
    if snapshot_type == SnapshotType.START:
        return "start"
    day = now.date()
    if snapshot_type == SnapshotType.WEEKLY:
        day = day - timedelta(days=day.weekday())
    elif snapshot_type == SnapshotType.MONTHLY:
        day = day.replace(day=1)
    return day.isoformat()


class SnapshotRecorder:
    """Records total portfolio value for later P&L comparison."""

    def __init__(self, db: Database, gateway: KrakenGateway):
        self.db = db
        self.gateway = gateway

    async def record(
        self, snapshot_type: SnapshotType, now: Optional[datetime] = None
    ) -> Optional[BalanceSnapshot]:
        now = now or utc_now()
        try:
            portfolio = await self.gateway.get_portfolio_balances()
        except BrokerError as e:
            logger.error(f"Balance snapshot skipped: {e}", extra={"type": snapshot_type.value})
            return None
        snapshot = BalanceSnapshot(
            type=snapshot_type,
            period_key=period_key(snapshot_type, now),
            balance=portfolio.total_value_usd,
            timestamp=now,
        )
        saved = await self.db.save_snapshot(snapshot)
        logger.info(
            "Balance snapshot recorded",
            extra={
                "type": snapshot_type.value,
                "period_key": snapshot.period_key,
                "balance": snapshot.balance,
                "saved": saved,
            },
        )
        return snapshot

    async def ensure_start_snapshot(self) -> Optional[dict]:
        """Record the start snapshot once, on first run."""
        existing = await self.db.get_snapshot(SnapshotType.START, "start")
        if existing:
            return existing
        snapshot = await self.record(SnapshotType.START)
        return snapshot.model_dump(mode="json") if snapshot else None


async def run_midnight_maintenance(
    recorder: SnapshotRecorder, bot_b: BotB, now: Optional[datetime] = None
) -> list[str]:
    """Daily snapshot; weekly on Mondays; monthly plus donation report on the 1st."""
    now = now or utc_now()
    done = []
    if await recorder.record(SnapshotType.DAILY, now):
        done.append("daily")
    if now.weekday() == 0 and await recorder.record(SnapshotType.WEEKLY, now):
        done.append("weekly")
    if now.day == 1:
        if await recorder.record(SnapshotType.MONTHLY, now):
            done.append("monthly")
        if await bot_b.process_monthly_donation(previous_month(now)):
            done.append("donation")
    logger.info("Midnight maintenance finished", extra={"tasks": done})
    return done


async def catch_up_maintenance(
    recorder: SnapshotRecorder, bot_b: BotB, now: Optional[datetime] = None
) -> list[str]:
    """Monthly work missed while the service was down over the 1st.

    The monthly snapshot is recorded if this month has none. Last month's
    donation report is written if the bot already existed then; the report
    itself is write-once.
    """
    now = now or utc_now()
    done = []
    month_key = period_key(SnapshotType.MONTHLY, now)
    if not await recorder.db.get_snapshot(SnapshotType.MONTHLY, month_key):
        if await recorder.record(SnapshotType.MONTHLY, now):
            done.append("monthly")
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    state = await bot_b.db.get_bot_state()
    if state.created_at < month_start:
        if await bot_b.process_monthly_donation(previous_month(now)):
            done.append("donation")
    if done:
        logger.info("Missed maintenance caught up", extra={"tasks": done})
    return done
