"""Paper trading: simulate fills and P&L, and log to database."""
import logging
import random
import uuid
from typing import Optional

from pydantic import BaseModel

from shared.schemas import (
    BotId,
    OrderResult,
    OrderSide,
    TradeRecord,
    TradeSignal,
)
from storage.db import Database

logger = logging.getLogger(__name__)


class PaperProfile(BaseModel):
    """How a bot's simulated fills and outcomes are drawn."""
    price_improvement: float
    confidence_boost: float = 0.0
    max_win_probability: float = 1.0
    gain_range: tuple[float, float]
    loss_range: tuple[float, float]


AGGRESSIVE_PROFILE = PaperProfile(
    price_improvement=0.001,
    gain_range=(0.02, 0.08),
    loss_range=(0.01, 0.04),
)

CONSERVATIVE_PROFILE = PaperProfile(
    price_improvement=0.002,
    confidence_boost=0.15,
    max_win_probability=0.95,
    gain_range=(0.01, 0.04),
    loss_range=(0.005, 0.02),
)

PROFILES = {BotId.A: AGGRESSIVE_PROFILE, BotId.B: CONSERVATIVE_PROFILE}


class PaperTrader:
    """Simulates trade execution without real money."""

    def __init__(self, db: Database, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    def simulate_pnl(self, profile: PaperProfile, confidence: float, position_usd: float) -> float:
        win_probability = min(confidence + profile.confidence_boost, profile.max_win_probability)
        if self.rng.random() < win_probability:
            low, high = profile.gain_range
            return round(position_usd * self.rng.uniform(low, high), 8)
        low, high = profile.loss_range
        return round(-position_usd * self.rng.uniform(low, high), 8)

    async def execute(
        self,
        bot: BotId,
        signal: TradeSignal,
        market_price: float,
        position_usd: float,
        mcs: float,
    ) -> OrderResult:
        """Fill ``position_usd`` of ``signal`` at an improved price and persist it."""
        profile = PROFILES[bot]
        if signal.side == OrderSide.BUY:
            fill_price = market_price * (1 - profile.price_improvement)
        else:
            fill_price = market_price * (1 + profile.price_improvement)
        size = position_usd / fill_price
        pnl = self.simulate_pnl(profile, signal.confidence, position_usd)
        order_id = f"paper-{uuid.uuid4().hex[:12]}"

        record = TradeRecord(
            order_id=order_id,
            bot=bot,
            pair=signal.pair,
            side=signal.side,
            size=size,
            entry_price=fill_price,
            pnl=pnl,
            mcs=mcs,
            is_paper=True,
            reason=signal.reason,
        )
        trade_id = await self.db.log_trade(record)

        logger.info(
            "Paper trade executed",
            extra={
                "order_id": order_id,
                "trade_id": trade_id,
                "bot": bot.value,
                "pair": signal.pair,
                "side": signal.side.value,
                "size": size,
                "price": fill_price,
                "pnl": pnl,
            },
        )

        return OrderResult(
            order_id=order_id,
            pair=signal.pair,
            side=signal.side,
            size=size,
            price=fill_price,
            status="closed",
            filled_size=size,
            remaining_size=0.0,
            is_paper=True,
            pnl=pnl,
        )
