"""Pre-trade risk checks for both bots."""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from pydantic import BaseModel

from shared.config import Config
from shared.schemas import BotId, OrderSide, RiskDecision, TradeRequest, utc_now
from storage.db import Database

logger = logging.getLogger(__name__)

GLOBAL_MIN_MCS = Decimal("0.3")
BOT_B_MIN_MCS = Decimal("0.7")
BOT_B_NOTIONAL_FRACTION = Decimal("0.3")
BOT_A_ETH_BUY_FRACTION = Decimal("0.5")
BOT_A_LOSING_CYCLE_FRACTION = Decimal("0.5")
BOT_A_LOSING_CYCLE_RATIO = Decimal("0.8")
OPEN_POSITION_WINDOW = timedelta(hours=1)


def _dec(value) -> Decimal:
    return Decimal(str(value))


class RiskLimits(BaseModel):
    emergency_stop: bool = False
    real_trading_enabled: bool = False
    max_position_size: float = 20.0
    max_daily_loss_a: float = 100.0
    max_daily_loss_b: float = 50.0
    max_open_positions_a: int = 3
    max_open_positions_b: int = 2

    @classmethod
    def from_config(cls, config: Config) -> "RiskLimits":
        return cls(
            emergency_stop=config.EMERGENCY_STOP,
            real_trading_enabled=config.ALLOW_REAL_TRADING,
            max_position_size=config.MAX_POSITION_SIZE_USD,
            max_daily_loss_a=config.MAX_DAILY_LOSS_BOT_A_USD,
            max_daily_loss_b=config.MAX_DAILY_LOSS_BOT_B_USD,
            max_open_positions_a=config.MAX_OPEN_POSITIONS_BOT_A,
            max_open_positions_b=config.MAX_OPEN_POSITIONS_BOT_B,
        )

    def daily_loss_ceiling(self, bot: BotId) -> float:
        return self.max_daily_loss_a if bot == BotId.A else self.max_daily_loss_b

    def open_position_ceiling(self, bot: BotId) -> int:
        return self.max_open_positions_a if bot == BotId.A else self.max_open_positions_b


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class RiskGate:
    """Flat rule chain consulted before every real order.

    Checks run in order and stop at the first denial. Nothing is cached;
    trade history is queried on each call.
    """

    def __init__(
        self,
        db: Database,
        limits: RiskLimits,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.limits = limits
        self._clock = clock or utc_now

    def _deny(self, request: TradeRequest, notional: Decimal, reason: str) -> RiskDecision:
        logger.warning(
            "Trade denied by risk gate",
            extra={
                "bot": request.bot.value,
                "pair": request.pair,
                "side": request.side.value,
                "notional": float(notional),
                "reason": reason,
            },
        )
        return RiskDecision(approved=False, reason=reason, notional=float(notional))

    async def validate(self, request: TradeRequest) -> RiskDecision:
        """Approve or deny a trade request."""
        limits = self.limits
        notional = request.notional
        max_position = _dec(limits.max_position_size)
        mcs = _dec(request.mcs)
        now = self._clock()

        if limits.emergency_stop:
            return self._deny(request, notional, "Emergency stop is active")

        if not limits.real_trading_enabled:
            return self._deny(request, notional, "Real trading is disabled")

        if notional > max_position:
            return self._deny(
                request, notional,
                f"Notional ${notional:.2f} exceeds max position size ${max_position:.2f}",
            )

        # Worst case, the whole notional is lost
        daily_loss = _dec(round(await self.db.get_realized_loss_since(request.bot, start_of_day(now)), 8))
        ceiling = _dec(limits.daily_loss_ceiling(request.bot))
        if daily_loss + notional > ceiling:
            return self._deny(
                request, notional,
                f"Daily loss ${daily_loss:.2f} plus trade ${notional:.2f} "
                f"would exceed Bot {request.bot.value} limit ${ceiling:.2f}",
            )

        open_positions = await self.db.count_trades_since(request.bot, now - OPEN_POSITION_WINDOW)
        max_open = limits.open_position_ceiling(request.bot)
        if open_positions >= max_open:
            return self._deny(
                request, notional,
                f"Bot {request.bot.value} has {open_positions} open positions (max {max_open})",
            )

        reason = await self._strategy_rule(request, notional, mcs, max_position)
        if reason:
            return self._deny(request, notional, reason)

        if mcs < GLOBAL_MIN_MCS:
            return self._deny(
                request, notional, f"MCS {mcs} below global minimum {GLOBAL_MIN_MCS}"
            )

        logger.info(
            "Trade approved by risk gate",
            extra={
                "bot": request.bot.value,
                "pair": request.pair,
                "side": request.side.value,
                "notional": float(notional),
                "mcs": request.mcs,
            },
        )
        return RiskDecision(approved=True, reason="OK", notional=float(notional))

    async def _strategy_rule(
        self, request: TradeRequest, notional: Decimal, mcs: Decimal, max_position: Decimal
    ) -> Optional[str]:
        if request.bot == BotId.B:
            if mcs < BOT_B_MIN_MCS:
                return f"Bot B requires MCS >= {BOT_B_MIN_MCS} (current {mcs})"
            cap = max_position * BOT_B_NOTIONAL_FRACTION
            if notional > cap:
                return f"Bot B notional ${notional:.2f} exceeds conservative cap ${cap:.2f}"
            return None

        if request.pair.upper().startswith("ETH") and request.side == OrderSide.BUY:
            cap = max_position * BOT_A_ETH_BUY_FRACTION
            if notional > cap:
                return f"Bot A ETH buy ${notional:.2f} exceeds ETH cap ${cap:.2f}"

        state = await self.db.get_bot_state()
        balance = _dec(state.bot_a_virtual_usd)
        target = _dec(state.bot_a_cycle_target)
        if balance < target * BOT_A_LOSING_CYCLE_RATIO:
            cap = max_position * BOT_A_LOSING_CYCLE_FRACTION
            if notional > cap:
                return (
                    f"Bot A below {BOT_A_LOSING_CYCLE_RATIO:.0%} of cycle target; "
                    f"notional ${notional:.2f} exceeds reduced cap ${cap:.2f}"
                )
        return None

    async def get_risk_status(self) -> dict:
        """Limits and current usage per bot."""
        now = self._clock()
        bots = {}
        for bot in BotId:
            bots[bot.value] = {
                "daily_loss": await self.db.get_realized_loss_since(bot, start_of_day(now)),
                "daily_loss_limit": self.limits.daily_loss_ceiling(bot),
                "open_positions": await self.db.count_trades_since(bot, now - OPEN_POSITION_WINDOW),
                "max_open_positions": self.limits.open_position_ceiling(bot),
            }
        return {
            "emergency_stop": self.limits.emergency_stop,
            "real_trading_enabled": self.limits.real_trading_enabled,
            "max_position_size": self.limits.max_position_size,
            "min_mcs": float(GLOBAL_MIN_MCS),
            "bots": bots,
        }
