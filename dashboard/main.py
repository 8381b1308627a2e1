"""FastAPI JSON API for monitoring and controlling the bots."""
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from bots.bot_a import BotA
from bots.bot_b import BotB
from bots.scheduler import SingleFlight
from execution.kraken_client import KrakenGateway
from execution.order_manager import OrderManager
from execution.risk_gate import RiskGate
from shared.config import Config
from shared.errors import (
    BrokerError,
    ExchangeError,
    InvalidOrderError,
    MinimumOrderError,
    MissingCredentialsError,
    RiskDeniedError,
    TradingDisabledError,
)
from shared.schemas import BotId, SnapshotType, utc_now
from storage.db import Database
from strategy.sentiment import SentimentReader

app = FastAPI(title="Charity Bot API")


@dataclass
class Services:
    """Components shared with the API (set by agent.py)."""
    config: Config
    db: Database
    gateway: KrakenGateway
    risk_gate: RiskGate
    sentiment: SentimentReader
    order_manager: OrderManager
    bot_a: BotA
    bot_b: BotB
    runners: dict[BotId, SingleFlight]


_services: Optional[Services] = None


def set_services(services: Optional[Services]):
    global _services
    _services = services


def _get() -> Services:
    if _services is None:
        raise RuntimeError("Services not initialized")
    return _services


class ExecuteRequest(BaseModel):
    bot: BotId


class SellBtcRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    usd_amount: float = Field(alias="usdAmount", gt=0)


@app.get("/health")
async def health():
    s = _get()
    return {
        "status": "ok",
        "timestamp": utc_now().isoformat(),
        "mode": "mock" if s.config.USE_MOCK_KRAKEN else "live",
        "schema_version": await s.db.get_schema_version(),
    }


@app.get("/api/bots/status")
async def api_bots_status():
    s = _get()
    return {
        "bot_a": await s.bot_a.get_status(),
        "bot_b": await s.bot_b.get_status(),
        "running": {bot.value: runner.running for bot, runner in s.runners.items()},
        "mcs": await s.sentiment.get_latest_mcs(),
    }


@app.get("/api/bots/statistics")
async def api_bots_statistics():
    s = _get()
    return {
        "bot_a": await s.bot_a.get_statistics(),
        "bot_b": await s.bot_b.get_statistics(),
    }


@app.post("/api/bots/execute")
async def api_bots_execute(body: ExecuteRequest):
    s = _get()
    bot = s.bot_a if body.bot == BotId.A else s.bot_b
    result = await s.runners[body.bot].run(bot.run_once)
    if result is None:
        raise HTTPException(status_code=409, detail=f"Bot {body.bot.value} is already running")
    return result.model_dump(mode="json")


@app.get("/api/market/data")
async def api_market_data():
    s = _get()
    tickers = await s.gateway.get_ticker(["BTCUSD", "ETHUSD"])
    return {pair: t.model_dump(mode="json") for pair, t in tickers.items()}


@app.get("/api/sentiment/current")
async def api_sentiment_current():
    s = _get()
    latest = await s.db.get_latest_sentiment()
    return {
        "mcs": latest.mcs if latest else await s.sentiment.get_latest_mcs(),
        "reading": latest.model_dump(mode="json") if latest else None,
        "status": s.sentiment.get_status(),
    }


@app.get("/api/sentiment/history")
async def api_sentiment_history(limit: int = 24, days: int = 7):
    s = _get()
    return {
        "readings": await s.db.get_sentiment_history(limit=limit),
        "statistics": await s.sentiment.get_statistics(days=days),
    }


@app.get("/api/risk/status")
async def api_risk_status():
    s = _get()
    status = await s.risk_gate.get_risk_status()
    status["orders"] = s.order_manager.get_status()
    return status


@app.get("/api/portfolio")
async def api_portfolio():
    s = _get()
    try:
        portfolio = await s.gateway.get_portfolio_balances()
    except MissingCredentialsError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except BrokerError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return portfolio.model_dump(mode="json")


@app.get("/api/kraken/test")
async def api_kraken_test():
    s = _get()
    result = await s.gateway.test_connection()
    result["gateway"] = s.gateway.get_status()
    return result


@app.post("/api/sell-btc")
async def api_sell_btc(body: SellBtcRequest):
    s = _get()
    mcs = await s.sentiment.get_latest_mcs()
    try:
        return await s.order_manager.sell_btc_for_usd(body.usd_amount, mcs=mcs)
    except (MinimumOrderError, InvalidOrderError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (TradingDisabledError, RiskDeniedError) as e:
        raise HTTPException(status_code=403, detail=str(e))
    except MissingCredentialsError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ExchangeError as e:
        raise HTTPException(status_code=502, detail={"message": str(e), "kind": e.kind.value})


@app.get("/api/trades")
async def api_trades(limit: int = 50, bot: Optional[BotId] = None):
    s = _get()
    return {"trades": await s.db.get_recent_trades(limit=limit, bot=bot)}


@app.get("/api/pnl")
async def api_pnl(bot: Optional[BotId] = None):
    s = _get()
    return await s.db.get_pnl_summary(bot)


@app.get("/api/snapshots")
async def api_snapshots(limit: int = 30):
    s = _get()
    return {
        snapshot_type.value: await s.db.get_snapshots(snapshot_type, limit=limit)
        for snapshot_type in SnapshotType
    }


@app.get("/api/reports/monthly")
async def api_monthly_reports(limit: int = 12):
    s = _get()
    return {"reports": await s.db.get_monthly_reports(limit=limit)}


@app.get("/api/configuration")
async def api_configuration():
    s = _get()
    return await s.db.get_configuration()
