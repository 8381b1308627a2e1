"""Test helpers shared across test files."""
import base64
import json
from urllib.parse import parse_qs

import httpx

from execution.kraken_client import KrakenGateway
from shared.schemas import Candle

TEST_API_KEY = "test-key"
TEST_API_SECRET = base64.b64encode(b"kraken-test-secret").decode()


def kraken_ok(result):
    return {"error": [], "result": result}


def kraken_error(*errors):
    return {"error": list(errors)}


def ticker_result(btc=50000.0, eth=3000.0):
    return {
        "XXBTZUSD": {"c": [f"{btc}", "0.1"], "v": ["10.0", "120.5"]},
        "XETHZUSD": {"c": [f"{eth}", "1.0"], "v": ["50.0", "800.0"]},
    }


class KrakenStub:
    """httpx.MockTransport handler keyed by Kraken method name.

    ``routes`` values are a payload dict, an Exception instance to raise,
    or a list of those consumed in order.
    """

    def __init__(self, routes: dict):
        self.routes = dict(routes)
        self.calls: list[tuple[str, dict]] = []

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        if request.method == "POST":
            params = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            params["_headers"] = dict(request.headers)
        else:
            params = dict(request.url.params)
        self.calls.append((method, params))

        if method not in self.routes:
            return httpx.Response(404, json=kraken_error("EGeneral:Unknown method"))
        route = self.routes[method]
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        return httpx.Response(200, content=json.dumps(route), headers={"Content-Type": "application/json"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def make_gateway(stub: KrakenStub, **kwargs) -> KrakenGateway:
    params = dict(
        api_key=TEST_API_KEY,
        api_secret=TEST_API_SECRET,
        private_call_interval=0.0,
        retry_delay=0.0,
        transport=stub.transport,
    )
    params.update(kwargs)
    return KrakenGateway(**params)


def make_candles(closes: list[float]) -> list[Candle]:
    return [
        Candle(time=1_700_000_000 + i * 3600, open=c, high=c, low=c, close=c)
        for i, c in enumerate(closes)
    ]
