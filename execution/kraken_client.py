"""Kraken REST gateway: market data, balances and signed order calls."""
import asyncio
import logging
import random
import time
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urlencode

import httpx
from cachetools import TTLCache

from execution.asset_codes import (
    DEFAULT_ASSET_CODES,
    FALLBACK_PRICES,
    PAIRS,
    display_pair,
    normalize_pair,
    resolve_all,
)
from execution.kraken_auth import NonceGenerator, build_auth_headers
from shared.errors import (
    ExchangeError,
    ExchangeErrorKind,
    InvalidOrderError,
    MissingCredentialsError,
)
from shared.schemas import (
    AccountSummary,
    Candle,
    OrderRequest,
    OrderResult,
    OrderType,
    PortfolioBalances,
    Ticker,
)

logger = logging.getLogger(__name__)

API_BASE = "https://api.kraken.com"
API_VERSION = "0"

MOCK_BALANCES = {
    "ZUSD": "50000.00",
    "XXBT": "1.5000000000",
    "XETH": "20.0000000000",
}


def _to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class KrakenGateway:
    """Async client for the Kraken public and private REST API."""

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        mock_mode: bool = False,
        base_url: str = API_BASE,
        asset_codes: Optional[dict[str, list[str]]] = None,
        cache_ttl: float = 15.0,
        private_call_interval: float = 1.0,
        timeout: float = 10.0,
        read_retries: int = 2,
        retry_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.mock_mode = mock_mode
        self.base_url = base_url.rstrip("/")
        self.asset_codes = asset_codes or DEFAULT_ASSET_CODES
        self.private_call_interval = private_call_interval
        self.timeout = timeout
        self.read_retries = read_retries
        self.retry_delay = retry_delay
        self._transport = transport
        self._cache: TTLCache = TTLCache(maxsize=64, ttl=cache_ttl)
        self._last_balances: Optional[dict[str, str]] = None
        self._private_lock = asyncio.Lock()
        self._last_private_call = 0.0
        self._nonce = NonceGenerator()

        if mock_mode:
            logger.info("Kraken gateway in mock mode")
        elif not self.has_credentials:
            logger.warning("Kraken API credentials missing; private calls will fail")

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    @staticmethod
    def _unwrap(payload: dict) -> dict:
        errors = payload.get("error") or []
        if errors:
            raise ExchangeError.from_response(errors)
        return payload.get("result") or {}

    async def _with_retries(self, method: str, call, retries: int):
        attempt = 0
        while True:
            try:
                return await call()
            except httpx.HTTPError as e:
                if attempt >= retries:
                    logger.error(f"Kraken {method} failed: {e}")
                    raise ExchangeError(
                        ExchangeErrorKind.NETWORK, f"Kraken {method} request failed: {e}"
                    ) from e
                wait = self.retry_delay * (2 ** attempt)
                logger.warning(
                    "Kraken request failed, retrying",
                    extra={"method": method, "attempt": attempt + 1, "wait_seconds": wait},
                )
                await asyncio.sleep(wait)
                attempt += 1

    async def _public(self, method: str, params: Optional[dict] = None) -> dict:
        path = f"/{API_VERSION}/public/{method}"

        async def call():
            async with self._client() as client:
                resp = await client.get(path, params=params)
                resp.raise_for_status()
                return self._unwrap(resp.json())

        return await self._with_retries(method, call, self.read_retries)

    async def _private(
        self, method: str, params: Optional[dict] = None, retries: int = 0
    ) -> dict:
        if not self.has_credentials:
            raise MissingCredentialsError()
        path = f"/{API_VERSION}/private/{method}"

        async def call():
            # One private call at a time, spaced so nonces never collide
            async with self._private_lock:
                wait = self.private_call_interval - (time.monotonic() - self._last_private_call)
                if wait > 0:
                    await asyncio.sleep(wait)
                nonce = self._nonce.next()
                body = {"nonce": nonce, **(params or {})}
                headers = build_auth_headers(self.api_key, self.api_secret, path, body, nonce)
                try:
                    async with self._client() as client:
                        resp = await client.post(path, content=urlencode(body), headers=headers)
                finally:
                    self._last_private_call = time.monotonic()
            resp.raise_for_status()
            return self._unwrap(resp.json())

        return await self._with_retries(method, call, retries)

    @staticmethod
    def _request_code(pair: str) -> str:
        return PAIRS[pair][0] if pair in PAIRS else pair

    @staticmethod
    def _fallback_tickers(pairs: list[str]) -> dict[str, Ticker]:
        return {
            p: Ticker(pair=p, price=FALLBACK_PRICES[p], is_fallback=True)
            for p in pairs
            if p in FALLBACK_PRICES
        }

    # Market data

    async def get_ticker(self, pairs: Optional[list[str]] = None) -> dict[str, Ticker]:
        """Latest price and 24h volume per pair, keyed by 'BTCUSD'-style names."""
        pairs = [normalize_pair(p) for p in (pairs or list(PAIRS))]
        key = ("ticker", tuple(sorted(pairs)))
        if key in self._cache:
            return self._cache[key]

        if self.mock_mode:
            tickers = {
                p: Ticker(pair=p, price=FALLBACK_PRICES.get(p, 0.0), volume=1000.0)
                for p in pairs
            }
        else:
            try:
                result = await self._public(
                    "Ticker", {"pair": ",".join(self._request_code(p) for p in pairs)}
                )
            except ExchangeError as e:
                logger.warning(
                    "Ticker unavailable, using fallback prices",
                    extra={"pairs": pairs, "error": str(e)},
                )
                return self._fallback_tickers(pairs)
            tickers = self._parse_ticker(result, pairs)

        self._cache[key] = tickers
        return tickers

    def _parse_ticker(self, result: dict, pairs: list[str]) -> dict[str, Ticker]:
        tickers: dict[str, Ticker] = {}
        for pair in pairs:
            keys = PAIRS[pair][1] if pair in PAIRS else [pair]
            data = next((result[k] for k in keys if k in result), None)
            if data is None and len(pairs) == 1 and len(result) == 1:
                data = next(iter(result.values()))
            if data is None:
                logger.warning("Pair missing from ticker response", extra={"pair": pair})
                tickers.update(self._fallback_tickers([pair]))
                continue
            try:
                tickers[pair] = Ticker(
                    pair=pair,
                    price=float(data["c"][0]),
                    volume=float(data["v"][1]),
                )
            except (KeyError, IndexError, TypeError, ValueError) as e:
                logger.warning(
                    "Malformed ticker entry, using fallback price",
                    extra={"pair": pair, "error": repr(e)},
                )
                tickers.update(self._fallback_tickers([pair]))
        return tickers

    async def get_ohlc(self, pair: str = "BTCUSD", interval: int = 60) -> list[Candle]:
        """Candles oldest first; empty on failure."""
        pair = normalize_pair(pair)
        if self.mock_mode:
            return _mock_candles(pair, interval)
        try:
            result = await self._public(
                "OHLC", {"pair": self._request_code(pair), "interval": interval}
            )
        except ExchangeError as e:
            logger.warning("OHLC unavailable", extra={"pair": pair, "error": str(e)})
            return []
        rows = next((v for k, v in result.items() if k != "last"), [])
        return [
            Candle(
                time=int(r[0]),
                open=float(r[1]),
                high=float(r[2]),
                low=float(r[3]),
                close=float(r[4]),
                vwap=float(r[5]),
                volume=float(r[6]),
                count=int(r[7]),
            )
            for r in rows
        ]

    async def get_system_status(self) -> dict:
        if self.mock_mode:
            return {"status": "online", "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())}
        return await self._public("SystemStatus")

    # Account

    async def get_balances(self) -> dict[str, str]:
        """Raw per-asset balances as decimal strings."""
        if self.mock_mode:
            return dict(MOCK_BALANCES)
        if "balances" in self._cache:
            return self._cache["balances"]
        try:
            result = await self._private("Balance", retries=self.read_retries)
        except ExchangeError as e:
            if self._last_balances is not None:
                logger.warning(
                    "Balance query failed, serving last known balances",
                    extra={"error": str(e)},
                )
                return dict(self._last_balances)
            raise
        balances = {code: str(amount) for code, amount in result.items()}
        self._cache["balances"] = balances
        self._last_balances = balances
        return balances

    async def get_trade_balance(self) -> AccountSummary:
        """Aggregate trade balance and equity; empty summary when unavailable."""
        if self.mock_mode:
            return AccountSummary()
        if "trade_balance" in self._cache:
            return self._cache["trade_balance"]
        try:
            result = await self._private(
                "TradeBalance", {"asset": "ZUSD"}, retries=self.read_retries
            )
        except ExchangeError as e:
            logger.warning("TradeBalance unavailable", extra={"error": str(e)})
            return AccountSummary()
        summary = AccountSummary(
            trade_balance=_to_decimal(result.get("tb")),
            equity=_to_decimal(result.get("e")),
        )
        self._cache["trade_balance"] = summary
        return summary

    async def get_portfolio_balances(self) -> PortfolioBalances:
        """USD/BTC/ETH display balances and total portfolio value in USD."""
        balances = await self.get_balances()
        summary = await self.get_trade_balance()
        resolved = resolve_all(balances, self.asset_codes)
        cash = Decimal(resolved.get("USD", "0"))
        amounts = {
            "BTCUSD": Decimal(resolved.get("BTC", "0")),
            "ETHUSD": Decimal(resolved.get("ETH", "0")),
        }

        if summary.trade_balance is not None:
            usd, usd_source = summary.trade_balance, "trade_balance"
        else:
            usd, usd_source = cash, "balance"

        if summary.equity is not None:
            total, total_source = summary.equity, "equity"
        else:
            total, total_source = usd, "computed"
            held = [pair for pair, amount in amounts.items() if amount > 0]
            if held:
                tickers = await self.get_ticker(held)
                for pair in held:
                    if pair in tickers:
                        total += amounts[pair] * Decimal(str(tickers[pair].price))

        return PortfolioBalances(
            USD=float(usd),
            BTC=float(amounts["BTCUSD"]),
            ETH=float(amounts["ETHUSD"]),
            total_value_usd=float(total.quantize(Decimal("0.01"))),
            usd_source=usd_source,
            total_source=total_source,
        )

    # Orders

    async def add_order(self, request: OrderRequest) -> OrderResult:
        """Submit an order. Callers are responsible for gating."""
        pair = normalize_pair(request.pair)
        if request.order_type == OrderType.LIMIT and request.price is None:
            raise InvalidOrderError("Limit orders require a price")

        if self.mock_mode:
            order_id = f"MOCK-{uuid.uuid4().hex[:10].upper()}"
            description = f"{request.side.value} {request.size:.8f} {pair} @ {request.order_type.value}"
        else:
            params = {
                "pair": self._request_code(pair),
                "type": request.side.value,
                "ordertype": request.order_type.value,
                "volume": f"{request.size:.8f}",
            }
            if request.price is not None and request.order_type == OrderType.LIMIT:
                params["price"] = str(request.price)
            if request.client_id:
                params["cl_ord_id"] = request.client_id
            result = await self._private("AddOrder", params)
            txids = result.get("txid") or []
            if not txids:
                raise ExchangeError(ExchangeErrorKind.UNKNOWN, "AddOrder returned no transaction id")
            order_id = txids[0]
            description = (result.get("descr") or {}).get("order", "")

        logger.info(
            "Kraken order submitted",
            extra={
                "order_id": order_id,
                "pair": pair,
                "side": request.side.value,
                "size": request.size,
                "mock": self.mock_mode,
            },
        )
        return OrderResult(
            order_id=order_id,
            pair=display_pair(pair),
            side=request.side,
            order_type=request.order_type,
            size=request.size,
            price=request.price,
            status="open",
            filled_size=0.0,
            remaining_size=request.size,
            description=description,
            is_paper=False,
        )

    async def get_open_orders(self) -> dict:
        if self.mock_mode:
            return {}
        result = await self._private("OpenOrders", retries=self.read_retries)
        return result.get("open", {})

    async def cancel_all_orders(self) -> dict:
        if self.mock_mode:
            return {"count": 0}
        result = await self._private("CancelAll")
        count = int(result.get("count", 0))
        logger.info("Cancelled all open orders", extra={"count": count})
        return {"count": count}

    # Diagnostics

    async def test_connection(self) -> dict:
        """Check public reachability and private credentials without raising."""
        if self.mock_mode:
            return {"success": True, "mode": "mock", "message": "Mock mode active"}
        try:
            status = await self.get_system_status()
            balances = await self.get_balances()
        except MissingCredentialsError as e:
            logger.warning("Kraken connection test failed", extra={"error": str(e)})
            return {"success": False, "mode": "live", "message": str(e)}
        except ExchangeError as e:
            logger.warning("Kraken connection test failed", extra={"error": str(e)})
            return {"success": False, "mode": "live", "message": str(e), "kind": e.kind.value}
        return {
            "success": True,
            "mode": "live",
            "message": "Connected to Kraken",
            "system_status": status.get("status"),
            "assets": sorted(balances),
        }

    def get_status(self) -> dict:
        return {
            "mode": "mock" if self.mock_mode else "live",
            "base_url": self.base_url,
            "api_key_configured": bool(self.api_key),
            "api_secret_configured": bool(self.api_secret),
            "cache_entries": len(self._cache),
            "private_call_interval": self.private_call_interval,
        }


def _mock_candles(pair: str, interval: int, count: int = 250) -> list[Candle]:
    """Random-walk candles ending near the fallback price."""
    price = FALLBACK_PRICES.get(pair, 100.0)
    now = int(time.time()) // (interval * 60) * (interval * 60)
    candles = []
    for i in range(count):
        change = random.uniform(-0.01, 0.01)
        open_ = price
        close = price * (1 + change)
        candles.append(
            Candle(
                time=now - (count - i) * interval * 60,
                open=open_,
                high=max(open_, close) * 1.002,
                low=min(open_, close) * 0.998,
                close=close,
                vwap=(open_ + close) / 2,
                volume=random.uniform(10, 100),
                count=random.randint(100, 1000),
            )
        )
        price = close
    return candles
