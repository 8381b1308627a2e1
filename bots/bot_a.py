"""Bot A: aggressive cycling strategy.

Bot A trades its virtual balance up towards a cycle target. When the target
is reached it sends a fixed amount to Bot B, restarts from a small seed and
raises its next target by the seed amount.
"""
import logging

from bots.base import StrategyBot
from execution.risk_gate import start_of_day
from shared.schemas import (
    BotId,
    BotRunResult,
    BotState,
    OrderSide,
    TradeSignal,
    TrendDirection,
    utc_now,
)
from strategy.thresholds import (
    BOT_A_CYCLE_SEED,
    BOT_A_DAILY_TRADE_TIERS,
    BOT_A_ETH_TRADE_CHANCE,
    BOT_A_MIN_MCS,
    BOT_A_MIN_TRADE_USD,
    BOT_A_RISK_FLOOR,
    BOT_A_RISK_TIERS,
    BOT_A_TRANSFER_TO_B,
    TREND_SCORE,
)

logger = logging.getLogger(__name__)


def risk_per_trade(mcs: float) -> float:
    for floor, risk in BOT_A_RISK_TIERS:
        if mcs >= floor:
            return risk
    return BOT_A_RISK_FLOOR


def daily_trade_limit(mcs: float) -> int:
    for floor, limit in BOT_A_DAILY_TRADE_TIERS:
        if mcs >= floor:
            return limit
    return 0


class BotA(StrategyBot):
    """Aggressive strategy with cycle transfers to Bot B."""

    bot_id = BotId.A

    def _apply_pnl(self, state: BotState, pnl: float):
        state.bot_a_virtual_usd = max(0.0, round(state.bot_a_virtual_usd + pnl, 8))

    def position_size(self, balance: float, mcs: float) -> float:
        return min(self.max_position_size, balance * risk_per_trade(mcs))

    async def run_once(self) -> BotRunResult:
        mcs = await self.sentiment.get_latest_mcs()
        if mcs < BOT_A_MIN_MCS:
            return self._result("skipped", mcs, f"MCS {mcs:.2f} below minimum {BOT_A_MIN_MCS}")

        state = await self.db.get_bot_state()
        if state.bot_a_virtual_usd >= state.bot_a_cycle_target:
            completed = await self.handle_cycle_completion()
            if completed:
                return self._result("cycle_completed", mcs, f"Cycle {state.bot_a_cycle_number} completed")

        limit = daily_trade_limit(mcs)
        traded_today = await self.db.count_trades_since(BotId.A, start_of_day(utc_now()))
        if traded_today >= limit:
            return self._result("skipped", mcs, f"Daily trade limit reached ({traded_today}/{limit})")

        signals = await self.generate_signals()
        if not signals:
            return self._result("no_signals", mcs, "No trading signals")

        trades = []
        for signal in signals[: limit - traded_today]:
            state = await self.db.get_bot_state()
            position_usd = self.position_size(state.bot_a_virtual_usd, mcs)
            if position_usd < BOT_A_MIN_TRADE_USD:
                logger.info(
                    "Position size too small",
                    extra={"bot": "A", "pair": signal.pair, "position_usd": round(position_usd, 2)},
                )
                continue
            try:
                order = await self.execute_signal(signal, position_usd, mcs)
            except ValueError as e:
                logger.error(f"Bot A trade failed for {signal.pair}: {e}")
                continue
            if order:
                trades.append(order)

        status = "executed" if trades else "no_trades"
        return self._result(status, mcs, f"Bot A executed {len(trades)} trades", trades)

    async def generate_signals(self) -> list[TradeSignal]:
        """Follow the BTC trend: buy on bullish, wait otherwise."""
        analysis = await self.sentiment.get_trend_analysis("BTCUSD")
        if analysis is None or analysis.trend != TrendDirection.BULLISH:
            return []
        signals = [
            TradeSignal(
                pair="BTC/USD",
                side=OrderSide.BUY,
                confidence=0.7 + TREND_SCORE * 0.3,
                reason=f"BTC {analysis.difference_pct:+.2f}% above EMA200",
            )
        ]
        if self.rng.random() < BOT_A_ETH_TRADE_CHANCE:
            signals.append(
                TradeSignal(
                    pair="ETH/USD",
                    side=OrderSide.BUY,
                    confidence=0.6,
                    reason="ETH following bullish BTC trend",
                )
            )
        return signals

    async def handle_cycle_completion(self) -> bool:
        """Move the transfer to Bot B and start the next cycle. False if not due."""
        async with self.db.bot_state() as state:
            if state.bot_a_virtual_usd < state.bot_a_cycle_target:
                return False
            completed_cycle = state.bot_a_cycle_number
            final_balance = state.bot_a_virtual_usd
            state.bot_b_virtual_usd = round(state.bot_b_virtual_usd + BOT_A_TRANSFER_TO_B, 8)
            # Transfers are not Bot B profit
            state.bot_b_monthly_start_usd = round(
                state.bot_b_monthly_start_usd + BOT_A_TRANSFER_TO_B, 8
            )
            state.bot_a_virtual_usd = BOT_A_CYCLE_SEED
            state.bot_a_cycle_number += 1
            state.bot_a_cycle_target += BOT_A_CYCLE_SEED
            state.bot_a_last_reset = utc_now()
            state.bot_b_enabled = True
            state.bot_b_triggered = True
            next_target = state.bot_a_cycle_target

        logger.info(
            "Bot A cycle completed",
            extra={
                "cycle": completed_cycle,
                "final_balance": final_balance,
                "transfer_to_b": BOT_A_TRANSFER_TO_B,
                "next_target": next_target,
            },
        )
        return True

    async def get_status(self) -> dict:
        state = await self.db.get_bot_state()
        progress = 0.0
        if state.bot_a_cycle_target > 0:
            progress = min(100.0, state.bot_a_virtual_usd / state.bot_a_cycle_target * 100)
        return {
            "bot": "A",
            "virtual_usd": state.bot_a_virtual_usd,
            "cycle_number": state.bot_a_cycle_number,
            "cycle_target": state.bot_a_cycle_target,
            "cycle_progress_pct": round(progress, 2),
            "last_reset": state.bot_a_last_reset,
            "last_run": self.last_result.model_dump(mode="json") if self.last_result else None,
        }

    async def get_statistics(self) -> dict:
        summary = await self.db.get_pnl_summary(BotId.A)
        state = await self.db.get_bot_state()
        summary["completed_cycles"] = state.bot_a_cycle_number - 1
        return summary
