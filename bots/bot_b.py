"""Bot B: conservative donation strategy."""
import logging
from datetime import datetime, timezone
from typing import Optional

from bots.base import StrategyBot
from execution.risk_gate import start_of_day
from shared.schemas import (
    BotId,
    BotRunResult,
    BotState,
    MonthlyReport,
    OrderSide,
    TradeSignal,
    TrendDirection,
    utc_now,
)
from strategy.thresholds import (
    BOT_B_DONATION_PCT,
    BOT_B_ETH_MIN_MCS,
    BOT_B_ETH_TRADE_CHANCE,
    BOT_B_MAX_DAILY_TRADES,
    BOT_B_MIN_MCS,
    BOT_B_MIN_TRADE_USD,
    BOT_B_POSITION_PCT,
    BOT_B_SIGNAL_MIN_MCS,
)

logger = logging.getLogger(__name__)


def month_bounds(month: str) -> tuple[datetime, datetime]:
    """'2026-09' -> (2026-09-01T00:00Z, 2026-10-01T00:00Z)."""
    start = datetime.strptime(month, "%Y-%m").replace(tzinfo=timezone.utc)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def previous_month(now: datetime) -> str:
    first = now.replace(day=1)
    if first.month == 1:
        return f"{first.year - 1}-12"
    return f"{first.year}-{first.month - 1:02d}"


def calculate_donation(start_balance: float, end_balance: float) -> float:
    return round(max(end_balance - start_balance, 0.0) * BOT_B_DONATION_PCT, 2)


class BotB(StrategyBot):
    """Conservative strategy; half of each month's profit is donated."""

    bot_id = BotId.B

    def _apply_pnl(self, state: BotState, pnl: float):
        state.bot_b_virtual_usd = max(0.0, round(state.bot_b_virtual_usd + pnl, 8))

    async def run_once(self) -> BotRunResult:
        state = await self.db.get_bot_state()
        if not state.bot_b_enabled:
            return self._result("skipped", 0.0, "Bot B is not enabled")

        mcs = await self.sentiment.get_latest_mcs()
        if mcs < BOT_B_MIN_MCS:
            return self._result("skipped", mcs, f"MCS {mcs:.2f} below minimum {BOT_B_MIN_MCS}")

        traded_today = await self.db.count_trades_since(BotId.B, start_of_day(utc_now()))
        if traded_today >= BOT_B_MAX_DAILY_TRADES:
            return self._result(
                "skipped", mcs, f"Daily trade limit reached ({traded_today}/{BOT_B_MAX_DAILY_TRADES})"
            )

        signals = await self.generate_signals(mcs)
        if not signals:
            return self._result("no_signals", mcs, "No conservative signals")

        trades = []
        for signal in signals[: BOT_B_MAX_DAILY_TRADES - traded_today]:
            state = await self.db.get_bot_state()
            position_usd = state.bot_b_virtual_usd * BOT_B_POSITION_PCT
            if position_usd < BOT_B_MIN_TRADE_USD:
                logger.info(
                    "Position size too small",
                    extra={"bot": "B", "pair": signal.pair, "position_usd": round(position_usd, 2)},
                )
                continue
            try:
                order = await self.execute_signal(signal, position_usd, mcs)
            except ValueError as e:
                logger.error(f"Bot B trade failed for {signal.pair}: {e}")
                continue
            if order:
                trades.append(order)

        status = "executed" if trades else "no_trades"
        return self._result(status, mcs, f"Bot B executed {len(trades)} trades", trades)

    async def generate_signals(self, mcs: float) -> list[TradeSignal]:
        """Only strong bullish conditions; ETH needs an even higher MCS."""
        if mcs < BOT_B_SIGNAL_MIN_MCS:
            return []
        analysis = await self.sentiment.get_trend_analysis("BTCUSD")
        if analysis is None or analysis.trend != TrendDirection.BULLISH:
            return []
        signals = [
            TradeSignal(
                pair="BTC/USD",
                side=OrderSide.BUY,
                confidence=0.8,
                reason=f"Strong bullish BTC, MCS {mcs:.2f}",
            )
        ]
        if mcs >= BOT_B_ETH_MIN_MCS and self.rng.random() < BOT_B_ETH_TRADE_CHANCE:
            signals.append(
                TradeSignal(
                    pair="ETH/USD",
                    side=OrderSide.BUY,
                    confidence=0.7,
                    reason=f"Very high MCS {mcs:.2f}",
                )
            )
        return signals

    async def process_monthly_donation(self, month: Optional[str] = None) -> Optional[MonthlyReport]:
        """Write the donation report for ``month`` (default: last month) once.

        Returns None when the month was already reported.
        """
        month = month or previous_month(utc_now())
        if await self.db.get_monthly_report(month):
            logger.info("Monthly report already exists", extra={"month": month})
            return None

        start, end = month_bounds(month)
        totals = await self.db.get_trade_totals_between(BotId.B, start, end)

        async with self.db.bot_state() as state:
            start_balance = state.bot_b_monthly_start_usd
            end_balance = state.bot_b_virtual_usd
            report = MonthlyReport(
                month=month,
                bot_b_start_balance=start_balance,
                bot_b_end_balance=end_balance,
                donation_amount=calculate_donation(start_balance, end_balance),
                total_trades=totals["total_trades"],
                total_pnl=totals["total_pnl"],
            )
            if not await self.db.insert_monthly_report(report):
                return None
            state.bot_b_monthly_start_usd = end_balance
            state.bot_b_last_month_reset = utc_now()

        logger.info(
            "Monthly donation report created",
            extra={
                "month": month,
                "start_balance": start_balance,
                "end_balance": end_balance,
                "donation": report.donation_amount,
            },
        )
        return report

    async def get_status(self) -> dict:
        state = await self.db.get_bot_state()
        return {
            "bot": "B",
            "enabled": state.bot_b_enabled,
            "triggered": state.bot_b_triggered,
            "virtual_usd": state.bot_b_virtual_usd,
            "monthly_start_usd": state.bot_b_monthly_start_usd,
            "projected_donation": calculate_donation(
                state.bot_b_monthly_start_usd, state.bot_b_virtual_usd
            ),
            "last_month_reset": state.bot_b_last_month_reset,
            "last_run": self.last_result.model_dump(mode="json") if self.last_result else None,
        }

    async def get_statistics(self) -> dict:
        summary = await self.db.get_pnl_summary(BotId.B)
        reports = await self.db.get_monthly_reports()
        summary["total_donated"] = round(sum(r["donation_amount"] for r in reports), 2)
        summary["reports"] = len(reports)
        return summary
