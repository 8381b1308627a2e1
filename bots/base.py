"""Shared execution path for the strategy bots."""
import logging
import random
from abc import ABC, abstractmethod
from typing import Optional

from execution.asset_codes import normalize_pair
from execution.kraken_client import KrakenGateway
from execution.order_manager import OrderManager
from execution.paper_trader import PaperTrader
from shared.errors import BrokerError, OrderError
from shared.schemas import BotId, BotRunResult, BotState, OrderRequest, OrderResult, TradeSignal
from storage.db import Database
from strategy.sentiment import SentimentReader

logger = logging.getLogger(__name__)


class StrategyBot(ABC):
    """Common plumbing: price lookup, paper vs live execution, balance updates."""

    bot_id: BotId

    def __init__(
        self,
        db: Database,
        sentiment: SentimentReader,
        gateway: KrakenGateway,
        paper_trader: PaperTrader,
        order_manager: Optional[OrderManager] = None,
        real_trading: bool = False,
        max_position_size: float = 20.0,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.sentiment = sentiment
        self.gateway = gateway
        self.paper_trader = paper_trader
        self.order_manager = order_manager
        self.real_trading = real_trading
        self.max_position_size = max_position_size
        self.rng = rng or random.Random()
        self.last_result: Optional[BotRunResult] = None

    def _result(self, status: str, mcs: float, reason: str = "", trades=None) -> BotRunResult:
        result = BotRunResult(
            bot=self.bot_id, status=status, reason=reason, mcs=mcs, trades=trades or []
        )
        self.last_result = result
        level = logging.INFO if status != "skipped" else logging.DEBUG
        logger.log(
            level,
            f"Bot {self.bot_id.value} run finished",
            extra={"bot": self.bot_id.value, "status": status, "reason": reason,
                   "mcs": mcs, "trades": len(result.trades)},
        )
        return result

    async def _market_price(self, pair: str) -> float:
        key = normalize_pair(pair)
        tickers = await self.gateway.get_ticker([key])
        ticker = tickers.get(key)
        if ticker is None or ticker.price <= 0:
            raise ValueError(f"Invalid price for {pair}")
        return ticker.price

    @abstractmethod
    def _apply_pnl(self, state: BotState, pnl: float):
        """Credit a paper trade's P&L to this bot's balance in ``state``."""

    async def execute_signal(
        self, signal: TradeSignal, position_usd: float, mcs: float
    ) -> Optional[OrderResult]:
        """Trade ``position_usd`` on ``signal``: live through the order manager, else on paper."""
        price = await self._market_price(signal.pair)

        if self.real_trading and self.order_manager is not None:
            request = OrderRequest(
                pair=signal.pair, side=signal.side, size=round(position_usd / price, 8)
            )
            try:
                return await self.order_manager.place_order(
                    self.bot_id, request, mcs, reason=signal.reason
                )
            except (OrderError, BrokerError) as e:
                logger.warning(
                    "Live trade not placed",
                    extra={"bot": self.bot_id.value, "pair": signal.pair, "error": str(e)},
                )
                return None

        order = await self.paper_trader.execute(self.bot_id, signal, price, position_usd, mcs)
        async with self.db.bot_state() as state:
            self._apply_pnl(state, order.pnl or 0.0)
        return order
