"""Pydantic models for all data flowing through the bots."""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BotId(str, Enum):
    A = "A"
    B = "B"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class TrendDirection(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class SnapshotType(str, Enum):
    START = "start"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Ticker(BaseModel):
    """Last trade price and 24h volume for a pair."""
    pair: str
    price: float
    volume: float = 0.0
    timestamp: datetime = Field(default_factory=utc_now)
    is_fallback: bool = False


class Candle(BaseModel):
    """One OHLC row: [time, open, high, low, close, vwap, volume, count]."""
    time: int
    open: float
    high: float
    low: float
    close: float
    vwap: float = 0.0
    volume: float = 0.0
    count: int = 0


class AccountSummary(BaseModel):
    """Aggregate balances from TradeBalance; fields are None when unavailable."""
    trade_balance: Optional[Decimal] = None
    equity: Optional[Decimal] = None


class PortfolioBalances(BaseModel):
    """Display balances for the dashboard."""
    USD: float
    BTC: float
    ETH: float
    total_value_usd: float
    usd_source: str = "balance"
    total_source: str = "computed"
    timestamp: datetime = Field(default_factory=utc_now)


class OrderRequest(BaseModel):
    """An order to submit to the broker."""
    pair: str
    side: OrderSide
    size: float = Field(gt=0)
    order_type: OrderType = OrderType.MARKET
    price: Optional[float] = None
    client_id: Optional[str] = None


class OrderResult(BaseModel):
    """Result of an order placement (paper or live)."""
    order_id: str
    pair: str
    side: OrderSide
    order_type: OrderType = OrderType.MARKET
    size: float
    price: Optional[float] = None
    status: str = "open"
    filled_size: float = 0.0
    remaining_size: float = 0.0
    description: str = ""
    is_paper: bool = False
    pnl: Optional[float] = None
    timestamp: datetime = Field(default_factory=utc_now)


class TradeRequest(BaseModel):
    """Input to the risk gate."""
    bot: BotId
    pair: str
    side: OrderSide
    size: float
    price: float
    mcs: float

    @property
    def notional(self) -> Decimal:
        return Decimal(str(self.size)) * Decimal(str(self.price))


class RiskDecision(BaseModel):
    approved: bool
    reason: str
    notional: float = 0.0


class TradeSignal(BaseModel):
    """A strategy's intent to trade a pair."""
    pair: str
    side: OrderSide
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class TradeRecord(BaseModel):
    """Persisted trade record in SQLite."""
    id: Optional[int] = None
    order_id: str
    bot: BotId
    pair: str
    side: OrderSide
    size: float = Field(ge=0)
    entry_price: float = Field(ge=0)
    exit_price: Optional[float] = None
    pnl: Optional[float] = None
    mcs: float = 0.0
    is_paper: bool = True
    reason: str = ""
    created_at: datetime = Field(default_factory=utc_now)


class FearGreedReading(BaseModel):
    value: int = Field(ge=0, le=100)
    classification: str = ""
    timestamp: datetime = Field(default_factory=utc_now)


class SentimentReading(BaseModel):
    """Persisted combination of fear & greed and trend."""
    id: Optional[int] = None
    fgi_value: int = Field(ge=0, le=100)
    trend_score: float
    mcs: float = Field(ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utc_now)


class TrendAnalysis(BaseModel):
    pair: str
    current_price: float
    ema200: float
    difference_pct: float
    trend: TrendDirection


class BotState(BaseModel):
    """The single live bot_state row."""
    bot_a_virtual_usd: float = 230.0
    bot_b_virtual_usd: float = 0.0
    bot_a_cycle_number: int = 1
    bot_a_cycle_target: float = 200.0
    bot_a_last_reset: Optional[datetime] = None
    bot_b_enabled: bool = False
    bot_b_triggered: bool = False
    bot_b_monthly_start_usd: float = 0.0
    bot_b_last_month_reset: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class MonthlyReport(BaseModel):
    id: Optional[int] = None
    month: str
    bot_b_start_balance: float = Field(ge=0)
    bot_b_end_balance: float = Field(ge=0)
    donation_amount: float = Field(ge=0)
    total_trades: int = 0
    total_pnl: float = 0.0
    created_at: datetime = Field(default_factory=utc_now)


class BalanceSnapshot(BaseModel):
    type: SnapshotType
    period_key: str
    balance: float = Field(ge=0)
    timestamp: datetime = Field(default_factory=utc_now)


class BotRunResult(BaseModel):
    """Outcome of one strategy tick."""
    bot: BotId
    status: str
    reason: str = ""
    mcs: float = 0.0
    trades: list[OrderResult] = Field(default_factory=list)
