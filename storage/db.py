"""SQLite database via aiosqlite."""
import aiosqlite
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from shared.errors import SchemaError
from shared.schemas import (
    BalanceSnapshot,
    BotId,
    BotState,
    MonthlyReport,
    SentimentReading,
    SnapshotType,
    TradeRecord,
    utc_now,
)
from storage.models import (
    CONFIGURATION_DEFAULTS,
    CREATE_SCHEMA_VERSION_TABLE,
    MIGRATIONS,
    REQUIRED_BOT_STATE_COLUMNS,
)

logger = logging.getLogger(__name__)


def _ts(dt: datetime) -> str:
    """Fixed-width UTC ISO timestamp so string comparison orders correctly."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Database:
    """Async SQLite database for bot state, trades and sentiment."""

    def __init__(self, db_path: str = "data/charity_bot.db"):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._state_lock = asyncio.Lock()

    async def init(self):
        """Open the database, apply pending migrations, verify and seed."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        try:
            applied = await self._migrate()
            await self.verify_schema()
            await self._seed()
        except Exception:
            await self.close()
            raise
        logger.info(
            "Database initialized",
            extra={
                "path": self.db_path,
                "schema_version": await self.get_schema_version(),
                "migrations_applied": applied,
            },
        )

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        cursor = await self._db.execute(sql, params)
        rows = await cursor.fetchall()
        columns = [d[0] for d in cursor.description]
        return [dict(zip(columns, row)) for row in rows]

    async def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        cursor = await self._db.execute(sql, params)
        row = await cursor.fetchone()
        if row is None:
            return None
        columns = [d[0] for d in cursor.description]
        return dict(zip(columns, row))

    # Schema

    async def _migrate(self) -> int:
        await self._db.execute(CREATE_SCHEMA_VERSION_TABLE)
        await self._db.commit()
        rows = await self._fetch_all("SELECT version FROM schema_version")
        done = {r["version"] for r in rows}
        applied = 0
        for version, name, statements in MIGRATIONS:
            if version in done:
                continue
            # DDL and the version row commit together or not at all
            await self._db.execute("BEGIN")
            try:
                for statement in statements:
                    await self._db.execute(statement)
                await self._db.execute(
                    "INSERT INTO schema_version (version, name, applied_at) VALUES (?, ?, ?)",
                    (version, name, _ts(utc_now())),
                )
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                logger.error("Migration failed", extra={"version": version, "migration": name})
                raise
            applied += 1
            logger.info("Migration applied", extra={"version": version, "migration": name})
        return applied

    async def get_schema_version(self) -> int:
        row = await self._fetch_one("SELECT COALESCE(MAX(version), 0) AS version FROM schema_version")
        return row["version"]

    async def verify_schema(self):
        rows = await self._fetch_all("PRAGMA table_info(bot_state)")
        missing = REQUIRED_BOT_STATE_COLUMNS - {r["name"] for r in rows}
        if missing:
            raise SchemaError(f"bot_state is missing columns: {sorted(missing)}")

    async def _seed(self):
        now = _ts(utc_now())
        await self._db.execute(
            "INSERT OR IGNORE INTO bot_state (id, created_at, updated_at) VALUES (1, ?, ?)",
            (now, now),
        )
        await self._db.executemany(
            """INSERT OR IGNORE INTO configuration (key, value, description, updated_at)
               VALUES (?, ?, ?, ?)""",
            [(key, value, description, now) for key, value, description in CONFIGURATION_DEFAULTS],
        )
        await self._db.commit()

    # Bot state

    async def get_bot_state(self) -> BotState:
        """Read the current bot_state row without taking the state lock."""
        row = await self._fetch_one(
            "SELECT * FROM bot_state ORDER BY created_at DESC LIMIT 1"
        )
        if row is None:
            raise SchemaError("No bot state row found")
        row.pop("id", None)
        return BotState(**row)

    @asynccontextmanager
    async def bot_state(self) -> AsyncIterator[BotState]:
        """Serialized read-modify-write of the bot_state row.

        Changes made to the yielded model are written back when the block
        exits cleanly; an exception discards them.
        """
        async with self._state_lock:
            state = await self.get_bot_state()
            yield state
            state.updated_at = utc_now()
            await self._db.execute(
                """UPDATE bot_state SET
                     bot_a_virtual_usd=?, bot_b_virtual_usd=?,
                     bot_a_cycle_number=?, bot_a_cycle_target=?, bot_a_last_reset=?,
                     bot_b_enabled=?, bot_b_triggered=?,
                     bot_b_monthly_start_usd=?, bot_b_last_month_reset=?,
                     updated_at=?
                   WHERE id = 1""",
                (
                    state.bot_a_virtual_usd, state.bot_b_virtual_usd,
                    state.bot_a_cycle_number, state.bot_a_cycle_target,
                    _ts(state.bot_a_last_reset) if state.bot_a_last_reset else None,
                    1 if state.bot_b_enabled else 0,
                    1 if state.bot_b_triggered else 0,
                    state.bot_b_monthly_start_usd,
                    _ts(state.bot_b_last_month_reset) if state.bot_b_last_month_reset else None,
                    _ts(state.updated_at),
                ),
            )
            await self._db.commit()

    # Trades

    async def log_trade(self, record: TradeRecord) -> int:
        """Insert a trade record and return its ID."""
        cursor = await self._db.execute(
            """INSERT INTO trades
               (order_id, bot, pair, side, size, entry_price, exit_price,
                pnl, mcs, is_paper, reason, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.order_id, record.bot.value, record.pair,
                record.side.value, record.size, record.entry_price,
                record.exit_price, record.pnl, record.mcs,
                1 if record.is_paper else 0, record.reason[:500],
                _ts(record.created_at),
            ),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def get_recent_trades(self, limit: int = 50, bot: Optional[BotId] = None) -> list[dict]:
        """Get recent trades, newest first."""
        if bot is None:
            return await self._fetch_all(
                "SELECT * FROM trades ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
            )
        return await self._fetch_all(
            "SELECT * FROM trades WHERE bot = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (bot.value, limit),
        )

    async def get_realized_loss_since(self, bot: BotId, since: datetime) -> float:
        """Sum of losses (as a positive number) for a bot since ``since``."""
        row = await self._fetch_one(
            """SELECT COALESCE(SUM(CASE WHEN pnl < 0 THEN -pnl ELSE 0 END), 0) AS loss
               FROM trades WHERE bot = ? AND created_at >= ?""",
            (bot.value, _ts(since)),
        )
        return float(row["loss"])

    async def count_trades_since(self, bot: BotId, since: datetime) -> int:
        row = await self._fetch_one(
            "SELECT COUNT(*) AS n FROM trades WHERE bot = ? AND created_at >= ?",
            (bot.value, _ts(since)),
        )
        return row["n"]

    async def get_trade_totals_between(self, bot: BotId, start: datetime, end: datetime) -> dict:
        return await self._fetch_one(
            """SELECT COUNT(*) AS total_trades, COALESCE(SUM(pnl), 0) AS total_pnl
               FROM trades WHERE bot = ? AND created_at >= ? AND created_at < ?""",
            (bot.value, _ts(start), _ts(end)),
        )

    async def get_pnl_summary(self, bot: Optional[BotId] = None) -> dict:
        """Get aggregate P&L summary, optionally for one bot."""
        where, params = ("WHERE bot = ?", (bot.value,)) if bot else ("", ())
        result = await self._fetch_one(
            f"""SELECT
                 COUNT(*) as total_trades,
                 COALESCE(SUM(CASE WHEN pnl > 0 THEN 1 ELSE 0 END), 0) as wins,
                 COALESCE(SUM(CASE WHEN pnl < 0 THEN 1 ELSE 0 END), 0) as losses,
                 COALESCE(SUM(pnl), 0) as total_pnl,
                 COALESCE(AVG(pnl), 0) as avg_pnl,
                 COALESCE(SUM(size * entry_price), 0) as total_volume
               FROM trades {where}""",
            params,
        )
        total = result["wins"] + result["losses"]
        result["win_rate"] = (result["wins"] / total * 100) if total > 0 else 0
        return result

    # Sentiment

    async def log_sentiment(self, reading: SentimentReading) -> int:
        cursor = await self._db.execute(
            """INSERT INTO sentiment_readings (fgi_value, trend_score, mcs, created_at)
               VALUES (?, ?, ?, ?)""",
            (reading.fgi_value, reading.trend_score, reading.mcs, _ts(reading.created_at)),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def get_latest_sentiment(self) -> Optional[SentimentReading]:
        row = await self._fetch_one(
            "SELECT * FROM sentiment_readings ORDER BY created_at DESC, id DESC LIMIT 1"
        )
        return SentimentReading(**row) if row else None

    async def get_sentiment_history(self, limit: int = 24) -> list[dict]:
        return await self._fetch_all(
            "SELECT * FROM sentiment_readings ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )

    async def get_sentiment_stats(self, since: datetime) -> dict:
        return await self._fetch_one(
            """SELECT COUNT(*) AS readings,
                      AVG(mcs) AS avg_mcs, MIN(mcs) AS min_mcs, MAX(mcs) AS max_mcs,
                      AVG(fgi_value) AS avg_fgi, MIN(fgi_value) AS min_fgi,
                      MAX(fgi_value) AS max_fgi
               FROM sentiment_readings WHERE created_at >= ?""",
            (_ts(since),),
        )

    async def trim_sentiment(self, keep: int = 1000) -> int:
        """Delete all but the ``keep`` most recent readings; return rows removed."""
        cursor = await self._db.execute(
            """DELETE FROM sentiment_readings WHERE id NOT IN (
                 SELECT id FROM sentiment_readings
                 ORDER BY created_at DESC, id DESC LIMIT ?)""",
            (keep,),
        )
        await self._db.commit()
        return cursor.rowcount

    # Monthly reports

    async def insert_monthly_report(self, report: MonthlyReport) -> bool:
        """Insert a report; False if the month already has one."""
        cursor = await self._db.execute(
            """INSERT OR IGNORE INTO monthly_reports
               (month, bot_b_start_balance, bot_b_end_balance, donation_amount,
                total_trades, total_pnl, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                report.month, report.bot_b_start_balance, report.bot_b_end_balance,
                report.donation_amount, report.total_trades, report.total_pnl,
                _ts(report.created_at),
            ),
        )
        await self._db.commit()
        return cursor.rowcount == 1

    async def get_monthly_report(self, month: str) -> Optional[dict]:
        return await self._fetch_one("SELECT * FROM monthly_reports WHERE month = ?", (month,))

    async def get_monthly_reports(self, limit: int = 12) -> list[dict]:
        return await self._fetch_all(
            "SELECT * FROM monthly_reports ORDER BY month DESC LIMIT ?", (limit,)
        )

    # Balance snapshots

    async def save_snapshot(self, snapshot: BalanceSnapshot) -> bool:
        """Upsert by (type, period_key). The start snapshot is never overwritten."""
        if snapshot.type == SnapshotType.START:
            sql = """INSERT OR IGNORE INTO balance_snapshots (type, period_key, balance, timestamp)
                     VALUES (?, ?, ?, ?)"""
        else:
            sql = """INSERT INTO balance_snapshots (type, period_key, balance, timestamp)
                     VALUES (?, ?, ?, ?)
                     ON CONFLICT (type, period_key)
                     DO UPDATE SET balance = excluded.balance, timestamp = excluded.timestamp"""
        cursor = await self._db.execute(
            sql,
            (snapshot.type.value, snapshot.period_key, snapshot.balance, _ts(snapshot.timestamp)),
        )
        await self._db.commit()
        return cursor.rowcount == 1

    async def get_snapshot(self, snapshot_type: SnapshotType, period_key: str) -> Optional[dict]:
        return await self._fetch_one(
            "SELECT * FROM balance_snapshots WHERE type = ? AND period_key = ?",
            (snapshot_type.value, period_key),
        )

    async def get_snapshots(self, snapshot_type: SnapshotType, limit: int = 30) -> list[dict]:
        return await self._fetch_all(
            "SELECT * FROM balance_snapshots WHERE type = ? ORDER BY period_key DESC LIMIT ?",
            (snapshot_type.value, limit),
        )

    # Configuration

    async def get_configuration(self) -> dict[str, dict]:
        rows = await self._fetch_all("SELECT key, value, description FROM configuration ORDER BY key")
        return {r["key"]: {"value": r["value"], "description": r["description"]} for r in rows}

    async def set_config_value(self, key: str, value: str, description: str = ""):
        await self._db.execute(
            """INSERT INTO configuration (key, value, description, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT (key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
            (key, value, description, _ts(utc_now())),
        )
        await self._db.commit()
