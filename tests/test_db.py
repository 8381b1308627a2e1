"""Tests for storage.db."""
import asyncio
import sqlite3
from datetime import timedelta

import pytest

from shared.errors import SchemaError
from shared.schemas import (
    BalanceSnapshot,
    BotId,
    MonthlyReport,
    OrderSide,
    SnapshotType,
    TradeRecord,
    utc_now,
)
import storage.db as db_module
from storage.db import Database
from storage.models import MIGRATIONS


def _trade(bot=BotId.A, pnl=None, created_at=None, **kwargs):
    params = dict(
        order_id="order-1", bot=bot, pair="BTC/USD", side=OrderSide.BUY,
        size=0.001, entry_price=50000.0, pnl=pnl,
    )
    if created_at is not None:
        params["created_at"] = created_at
    params.update(kwargs)
    return TradeRecord(**params)


@pytest.mark.asyncio
async def test_init_applies_migrations_and_seeds(db):
    assert await db.get_schema_version() == 3
    state = await db.get_bot_state()
    assert state.bot_a_virtual_usd == 230.0
    assert state.bot_b_virtual_usd == 0.0
    assert state.bot_a_cycle_number == 1
    assert state.bot_a_cycle_target == 200.0
    assert state.bot_b_enabled is False
    config = await db.get_configuration()
    assert config["bot_b_donation_pct"]["value"] == "0.5"


@pytest.mark.asyncio
async def test_reinit_is_idempotent(tmp_path):
    path = str(tmp_path / "sub" / "again.db")
    first = Database(path)
    await first.init()
    async with first.bot_state() as state:
        state.bot_a_virtual_usd = 150.0
    await first.close()

    second = Database(path)
    await second.init()
    assert await second.get_schema_version() == 3
    assert (await second.get_bot_state()).bot_a_virtual_usd == 150.0
    await second.close()


@pytest.mark.asyncio
async def test_verify_schema_detects_missing_columns(db):
    await db._db.execute("ALTER TABLE bot_state RENAME COLUMN bot_b_enabled TO old_enabled")
    with pytest.raises(SchemaError, match="bot_b_enabled"):
        await db.verify_schema()


@pytest.mark.asyncio
async def test_failed_migration_is_rolled_back(tmp_path, monkeypatch):
    path = str(tmp_path / "partial.db")
    broken = MIGRATIONS[:1] + [
        (2, "add bot b columns", [
            "ALTER TABLE bot_state ADD COLUMN bot_b_enabled INTEGER NOT NULL DEFAULT 0",
            "ALTER TABLE no_such_table ADD COLUMN x INTEGER",
        ]),
    ]
    monkeypatch.setattr(db_module, "MIGRATIONS", broken)
    first = Database(path)
    with pytest.raises(sqlite3.OperationalError):
        await first.init()
    assert first._db is None

    conn = sqlite3.connect(path)
    try:
        versions = [r[0] for r in conn.execute("SELECT version FROM schema_version")]
        columns = {r[1] for r in conn.execute("PRAGMA table_info(bot_state)")}
    finally:
        conn.close()
    assert versions == [1]
    assert "bot_b_enabled" not in columns

    monkeypatch.setattr(db_module, "MIGRATIONS", MIGRATIONS)
    second = Database(path)
    await second.init()
    assert await second.get_schema_version() == 3
    assert (await second.get_bot_state()).bot_b_enabled is False
    await second.close()


@pytest.mark.asyncio
async def test_bot_state_serializes_concurrent_updates(db):
    async def bump():
        async with db.bot_state() as state:
            current = state.bot_a_cycle_number
            await asyncio.sleep(0)
            state.bot_a_cycle_number = current + 1

    await asyncio.gather(*(bump() for _ in range(10)))
    assert (await db.get_bot_state()).bot_a_cycle_number == 11


@pytest.mark.asyncio
async def test_bot_state_writes_back_on_success(db):
    async with db.bot_state() as state:
        state.bot_b_virtual_usd = 200.0
        state.bot_b_enabled = True
    state = await db.get_bot_state()
    assert state.bot_b_virtual_usd == 200.0
    assert state.bot_b_enabled is True


@pytest.mark.asyncio
async def test_bot_state_discards_changes_on_error(db):
    with pytest.raises(RuntimeError):
        async with db.bot_state() as state:
            state.bot_a_virtual_usd = 1.0
            raise RuntimeError("abort")
    assert (await db.get_bot_state()).bot_a_virtual_usd == 230.0


@pytest.mark.asyncio
async def test_trade_queries(db):
    now = utc_now()
    await db.log_trade(_trade(pnl=-5.0, created_at=now - timedelta(days=2)))
    await db.log_trade(_trade(pnl=-3.0, created_at=now - timedelta(minutes=5)))
    await db.log_trade(_trade(pnl=4.0, created_at=now - timedelta(minutes=1)))
    await db.log_trade(_trade(bot=BotId.B, pnl=-7.0, created_at=now - timedelta(minutes=1)))

    since = now - timedelta(hours=1)
    assert await db.get_realized_loss_since(BotId.A, since) == pytest.approx(3.0)
    assert await db.count_trades_since(BotId.A, since) == 2
    assert len(await db.get_recent_trades(bot=BotId.B)) == 1

    summary = await db.get_pnl_summary(BotId.A)
    assert summary["total_trades"] == 3
    assert summary["wins"] == 1
    assert summary["losses"] == 2
    assert summary["total_pnl"] == pytest.approx(-4.0)


@pytest.mark.asyncio
async def test_trade_totals_between(db):
    now = utc_now()
    await db.log_trade(_trade(bot=BotId.B, pnl=2.0, created_at=now - timedelta(days=40)))
    await db.log_trade(_trade(bot=BotId.B, pnl=3.0, created_at=now - timedelta(days=1)))
    totals = await db.get_trade_totals_between(BotId.B, now - timedelta(days=2), now)
    assert totals["total_trades"] == 1
    assert totals["total_pnl"] == pytest.approx(3.0)


@pytest.mark.asyncio
async def test_trade_constraints_reject_bad_rows(db):
    with pytest.raises(sqlite3.IntegrityError):
        await db._db.execute(
            """INSERT INTO trades (order_id, bot, pair, side, size, entry_price, created_at)
               VALUES ('x', 'C', 'BTC/USD', 'buy', 1, 1, '2026-01-01')"""
        )


@pytest.mark.asyncio
async def test_monthly_report_is_unique_per_month(db):
    report = MonthlyReport(month="2026-09", bot_b_start_balance=200.0,
                           bot_b_end_balance=260.0, donation_amount=30.0)
    assert await db.insert_monthly_report(report) is True
    assert await db.insert_monthly_report(report) is False
    assert len(await db.get_monthly_reports()) == 1
    assert (await db.get_monthly_report("2026-09"))["donation_amount"] == 30.0


@pytest.mark.asyncio
async def test_start_snapshot_is_never_overwritten(db):
    assert await db.save_snapshot(BalanceSnapshot(type=SnapshotType.START, period_key="start", balance=100.0))
    assert not await db.save_snapshot(BalanceSnapshot(type=SnapshotType.START, period_key="start", balance=999.0))
    assert (await db.get_snapshot(SnapshotType.START, "start"))["balance"] == 100.0


@pytest.mark.asyncio
async def test_periodic_snapshot_upserts(db):
    await db.save_snapshot(BalanceSnapshot(type=SnapshotType.DAILY, period_key="2026-10-16", balance=100.0))
    await db.save_snapshot(BalanceSnapshot(type=SnapshotType.DAILY, period_key="2026-10-16", balance=120.0))
    await db.save_snapshot(BalanceSnapshot(type=SnapshotType.DAILY, period_key="2026-10-15", balance=90.0))
    snapshots = await db.get_snapshots(SnapshotType.DAILY)
    assert [(s["period_key"], s["balance"]) for s in snapshots] == [("2026-10-16", 120.0), ("2026-10-15", 90.0)]


@pytest.mark.asyncio
async def test_set_config_value(db):
    await db.set_config_value("bot_a_min_mcs", "0.45")
    assert (await db.get_configuration())["bot_a_min_mcs"]["value"] == "0.45"
