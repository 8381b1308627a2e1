"""Tests for bots.bot_b."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bots.bot_a import BotA
from bots.bot_b import BotB, calculate_donation, month_bounds, previous_month
from execution.paper_trader import PaperTrader
from helpers import KrakenStub, make_gateway
from shared.schemas import BotId, OrderSide, TradeRecord, TrendAnalysis, TrendDirection


def _rng(roll):
    rng = MagicMock()
    rng.random.return_value = roll
    rng.uniform.side_effect = lambda low, high: high
    return rng


async def _set_state(db, **fields):
    async with db.bot_state() as state:
        for name, value in fields.items():
            setattr(state, name, value)


def _bot(db, mcs=0.75, bot_class=BotB):
    sentiment = AsyncMock()
    sentiment.get_latest_mcs.return_value = mcs
    sentiment.get_trend_analysis.return_value = TrendAnalysis(
        pair="BTCUSD", current_price=46000.0, ema200=45000.0, difference_pct=2.2,
        trend=TrendDirection.BULLISH,
    )
    gateway = make_gateway(KrakenStub({}), mock_mode=True)
    return bot_class(db, sentiment, gateway, PaperTrader(db, rng=_rng(0.1)), rng=_rng(0.9))


def test_previous_month():
    assert previous_month(datetime(2026, 10, 16, tzinfo=timezone.utc)) == "2026-09"
    assert previous_month(datetime(2026, 1, 1, tzinfo=timezone.utc)) == "2025-12"


def test_month_bounds():
    start, end = month_bounds("2026-12")
    assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "start,end,donation",
    [(200.0, 260.0, 30.0), (200.0, 150.0, 0.0), (200.0, 200.0, 0.0), (100.0, 100.1, 0.05)],
)
def test_calculate_donation(start, end, donation):
    assert calculate_donation(start, end) == pytest.approx(donation)


@pytest.mark.asyncio
async def test_disabled_bot_skips(db):
    result = await _bot(db).run_once()
    assert result.status == "skipped"
    assert "not enabled" in result.reason


@pytest.mark.asyncio
async def test_low_mcs_skips(db):
    await _set_state(db, bot_b_enabled=True, bot_b_virtual_usd=6000.0)
    result = await _bot(db, mcs=0.45).run_once()
    assert result.status == "skipped"


@pytest.mark.asyncio
async def test_signals_need_high_mcs(db):
    assert await _bot(db).generate_signals(0.6) == []
    signals = await _bot(db).generate_signals(0.75)
    assert [s.pair for s in signals] == ["BTC/USD"]


@pytest.mark.asyncio
async def test_small_balance_is_below_minimum_trade(db):
    # 0.5% of 200 is 1.00, under the $25 minimum
    await _set_state(db, bot_b_enabled=True, bot_b_virtual_usd=200.0)
    result = await _bot(db).run_once()
    assert result.status == "no_trades"
    assert await db.get_recent_trades() == []


@pytest.mark.asyncio
async def test_paper_trade_updates_balance(db):
    await _set_state(db, bot_b_enabled=True, bot_b_virtual_usd=6000.0)

    result = await _bot(db).run_once()

    assert result.status == "executed"
    # 0.5% of 6000 is 30.00; winning roll at the top of the 1-4% range
    assert result.trades[0].pnl == pytest.approx(1.2)
    assert (await db.get_bot_state()).bot_b_virtual_usd == pytest.approx(6001.2)


@pytest.mark.asyncio
async def test_daily_limit(db):
    await _set_state(db, bot_b_enabled=True, bot_b_virtual_usd=6000.0)
    for _ in range(2):
        await db.log_trade(TradeRecord(order_id="x", bot=BotId.B, pair="BTC/USD",
                                       side=OrderSide.BUY, size=0.001, entry_price=45000.0))
    result = await _bot(db).run_once()
    assert result.status == "skipped"
    assert "Daily trade limit" in result.reason


@pytest.mark.asyncio
async def test_monthly_donation_report_written_once(db):
    await _set_state(db, bot_b_monthly_start_usd=200.0, bot_b_virtual_usd=260.0)
    bot = _bot(db)

    report = await bot.process_monthly_donation("2026-09")

    assert report.donation_amount == pytest.approx(30.0)
    assert report.bot_b_start_balance == 200.0
    assert report.bot_b_end_balance == 260.0
    state = await db.get_bot_state()
    assert state.bot_b_monthly_start_usd == 260.0
    assert state.bot_b_last_month_reset is not None

    assert await bot.process_monthly_donation("2026-09") is None
    assert len(await db.get_monthly_reports()) == 1


@pytest.mark.asyncio
async def test_cycle_transfer_is_not_donated(db):
    await _bot(db, bot_class=BotA).handle_cycle_completion()

    report = await _bot(db).process_monthly_donation("2026-09")

    assert report.bot_b_start_balance == 200.0
    assert report.bot_b_end_balance == 200.0
    assert report.donation_amount == 0.0


@pytest.mark.asyncio
async def test_statistics_sum_donations(db):
    await _set_state(db, bot_b_monthly_start_usd=200.0, bot_b_virtual_usd=260.0)
    bot = _bot(db)
    await bot.process_monthly_donation("2026-08")
    await _set_state(db, bot_b_virtual_usd=280.0)
    await bot.process_monthly_donation("2026-09")

    stats = await bot.get_statistics()
    assert stats["total_donated"] == pytest.approx(40.0)
    assert stats["reports"] == 2
