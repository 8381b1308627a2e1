"""Real order placement with flag, risk and minimum-size validation."""
import logging
from decimal import Decimal

from execution.kraken_client import KrakenGateway
from execution.risk_gate import RiskGate
from shared.errors import (
    ExchangeError,
    ExchangeErrorKind,
    InvalidOrderError,
    MinimumOrderError,
    RiskDeniedError,
    TradingDisabledError,
)
from shared.schemas import (
    BotId,
    OrderRequest,
    OrderResult,
    OrderSide,
    OrderType,
    TradeRecord,
    TradeRequest,
)
from storage.db import Database
from strategy.thresholds import MIN_BTC_VOLUME

logger = logging.getLogger(__name__)


class OrderManager:
    """Manages real order placement on Kraken."""

    def __init__(
        self,
        gateway: KrakenGateway,
        risk_gate: RiskGate,
        db: Database,
        real_trading_enabled: bool = False,
        confirmation_required: bool = True,
    ):
        self.gateway = gateway
        self.risk_gate = risk_gate
        self.db = db
        self.real_trading_enabled = real_trading_enabled
        self.confirmation_required = confirmation_required

    def _check_enabled(self):
        if not self.real_trading_enabled:
            raise TradingDisabledError("Real trading is disabled (ALLOW_REAL_TRADING=false)")
        if self.confirmation_required:
            raise TradingDisabledError(
                "Trade confirmation is required (TRADE_CONFIRMATION_REQUIRED=true)"
            )

    async def _live_price(self, pair: str) -> float:
        tickers = await self.gateway.get_ticker([pair])
        ticker = next(iter(tickers.values()), None)
        if ticker is None or ticker.is_fallback or ticker.price <= 0:
            raise ExchangeError(ExchangeErrorKind.NETWORK, f"No live price available for {pair}")
        return ticker.price

    async def place_order(
        self, bot: BotId, request: OrderRequest, mcs: float, reason: str = ""
    ) -> OrderResult:
        """Gate, submit and record a real order.

        Raises TradingDisabledError, RiskDeniedError or ExchangeError; an
        order is never submitted on any of those paths.
        """
        self._check_enabled()

        price = request.price or await self._live_price(request.pair)
        trade_request = TradeRequest(
            bot=bot,
            pair=request.pair,
            side=request.side,
            size=request.size,
            price=price,
            mcs=mcs,
        )
        decision = await self.risk_gate.validate(trade_request)
        if not decision.approved:
            raise RiskDeniedError(decision.reason)

        order = await self.gateway.add_order(request)

        record = TradeRecord(
            order_id=order.order_id,
            bot=bot,
            pair=order.pair,
            side=request.side,
            size=request.size,
            entry_price=price,
            mcs=mcs,
            is_paper=False,
            reason=reason,
        )
        trade_id = await self.db.log_trade(record)

        logger.info(
            "LIVE trade executed",
            extra={
                "order_id": order.order_id,
                "trade_id": trade_id,
                "bot": bot.value,
                "pair": order.pair,
                "side": request.side.value,
                "size": request.size,
                "price": price,
                "notional": decision.notional,
            },
        )
        return order

    async def sell_btc_for_usd(
        self, usd_amount: float, mcs: float, bot: BotId = BotId.A
    ) -> dict:
        """Sell enough BTC to raise ``usd_amount`` USD at market."""
        if usd_amount is None or usd_amount <= 0:
            raise InvalidOrderError("usdAmount must be a positive number")

        price = await self._live_price("BTCUSD")
        volume = (Decimal(str(usd_amount)) / Decimal(str(price))).quantize(Decimal("0.00000001"))
        minimum = Decimal(str(MIN_BTC_VOLUME))
        if volume < minimum:
            minimum_usd = float(minimum * Decimal(str(price)))
            raise MinimumOrderError(
                f"Minimum sell amount is ${minimum_usd:,.2f} USD ({MIN_BTC_VOLUME} BTC "
                f"at ${price:,.2f}); requested ${usd_amount:,.2f} is {volume} BTC",
                minimum_usd=minimum_usd,
            )

        order = await self.place_order(
            bot,
            OrderRequest(
                pair="BTC/USD",
                side=OrderSide.SELL,
                size=float(volume),
                order_type=OrderType.MARKET,
            ),
            mcs=mcs,
            reason=f"Manual sell of ${usd_amount:.2f} for USD",
        )
        return {
            "success": True,
            "order": order.model_dump(mode="json"),
            "usd_amount": usd_amount,
            "btc_volume": float(volume),
            "price": price,
        }

    async def cancel_all_orders(self) -> dict:
        result = await self.gateway.cancel_all_orders()
        logger.warning("All open orders cancelled", extra=result)
        return result

    def get_status(self) -> dict:
        return {
            "real_trading_enabled": self.real_trading_enabled,
            "confirmation_required": self.confirmation_required,
            "min_btc_volume": MIN_BTC_VOLUME,
        }
