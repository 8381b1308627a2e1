"""Tests for execution.kraken_client."""
import asyncio
import time

import httpx
import pytest

from execution.kraken_auth import sign_request
from helpers import (
    TEST_API_KEY,
    TEST_API_SECRET,
    KrakenStub,
    kraken_error,
    kraken_ok,
    make_gateway,
    ticker_result,
)
from shared.errors import ExchangeError, ExchangeErrorKind, MissingCredentialsError
from shared.schemas import OrderRequest, OrderSide, OrderType


@pytest.mark.asyncio
async def test_portfolio_computed_from_balances_and_ticker():
    stub = KrakenStub({
        "Balance": kraken_ok({"ZUSD": "1000.00", "XXBT": "0.05"}),
        "TradeBalance": kraken_ok({}),
        "Ticker": kraken_ok(ticker_result(btc=50000)),
    })
    gateway = make_gateway(stub)

    portfolio = await gateway.get_portfolio_balances()

    assert portfolio.USD == pytest.approx(1000.00)
    assert portfolio.BTC == pytest.approx(0.05)
    assert portfolio.ETH == 0.0
    assert portfolio.total_value_usd == pytest.approx(3500.00)
    assert portfolio.usd_source == "balance"
    assert portfolio.total_source == "computed"


@pytest.mark.asyncio
async def test_portfolio_prefers_trade_balance_and_equity():
    stub = KrakenStub({
        "Balance": kraken_ok({"ZUSD": "1000.00", "XXBT": "0.05"}),
        "TradeBalance": kraken_ok({"tb": "900.0000", "e": "4000.5000"}),
    })
    gateway = make_gateway(stub)

    portfolio = await gateway.get_portfolio_balances()

    assert portfolio.USD == pytest.approx(900.0)
    assert portfolio.total_value_usd == pytest.approx(4000.5)
    assert portfolio.total_source == "equity"
    assert "Ticker" not in stub.methods()


@pytest.mark.asyncio
async def test_portfolio_resolves_alternate_btc_code():
    stub = KrakenStub({
        "Balance": kraken_ok({"ZUSD": "10.00", "XXBT": "0.0000000000", "XBT": "0.1"}),
        "TradeBalance": kraken_ok({}),
        "Ticker": kraken_ok(ticker_result(btc=40000)),
    })
    portfolio = await make_gateway(stub).get_portfolio_balances()
    assert portfolio.BTC == pytest.approx(0.1)
    assert portfolio.total_value_usd == pytest.approx(4010.00)


@pytest.mark.asyncio
async def test_balances_are_cached():
    stub = KrakenStub({"Balance": kraken_ok({"ZUSD": "5.00"})})
    gateway = make_gateway(stub)
    first = await gateway.get_balances()
    second = await gateway.get_balances()
    assert first == second == {"ZUSD": "5.00"}
    assert stub.methods().count("Balance") == 1


@pytest.mark.asyncio
async def test_balance_failure_serves_last_known_value():
    stub = KrakenStub({
        "Balance": [kraken_ok({"ZUSD": "5.00"}), httpx.ConnectError("down")],
    })
    gateway = make_gateway(stub, cache_ttl=0)
    assert await gateway.get_balances() == {"ZUSD": "5.00"}
    assert await gateway.get_balances() == {"ZUSD": "5.00"}


@pytest.mark.asyncio
async def test_balance_failure_without_history_raises():
    stub = KrakenStub({"Balance": httpx.ConnectError("down")})
    gateway = make_gateway(stub, read_retries=1)
    with pytest.raises(ExchangeError) as exc:
        await gateway.get_balances()
    assert exc.value.kind == ExchangeErrorKind.NETWORK
    assert stub.methods().count("Balance") == 2


@pytest.mark.asyncio
async def test_private_call_is_signed():
    stub = KrakenStub({"Balance": kraken_ok({})})
    await make_gateway(stub).get_balances()

    method, params = stub.calls[0]
    headers = params.pop("_headers")
    nonce = int(params["nonce"])
    assert headers["api-key"] == TEST_API_KEY
    assert headers["api-sign"] == sign_request("/0/private/Balance", {"nonce": nonce}, nonce, TEST_API_SECRET)


@pytest.mark.asyncio
async def test_private_nonces_increase():
    stub = KrakenStub({"OpenOrders": kraken_ok({"open": {}})})
    gateway = make_gateway(stub)
    await gateway.get_open_orders()
    await gateway.get_open_orders()
    first, second = (int(p["nonce"]) for _, p in stub.calls)
    assert second > first


@pytest.mark.asyncio
async def test_private_calls_are_spaced():
    stub = KrakenStub({"OpenOrders": kraken_ok({"open": {}})})
    gateway = make_gateway(stub, private_call_interval=0.3)

    started = time.monotonic()
    await asyncio.gather(*(gateway.get_open_orders() for _ in range(3)))

    assert time.monotonic() - started >= 0.6
    assert stub.methods() == ["OpenOrders"] * 3


@pytest.mark.asyncio
async def test_missing_credentials():
    stub = KrakenStub({"SystemStatus": kraken_ok({"status": "online"})})
    gateway = make_gateway(stub, api_key="", api_secret="")
    with pytest.raises(MissingCredentialsError):
        await gateway.get_balances()
    with pytest.raises(MissingCredentialsError):
        await gateway.cancel_all_orders()

    result = await gateway.test_connection()
    assert result["success"] is False
    assert "credentials" in result["message"]


@pytest.mark.asyncio
async def test_connection_success():
    stub = KrakenStub({
        "SystemStatus": kraken_ok({"status": "online"}),
        "Balance": kraken_ok({"ZUSD": "1.0", "XXBT": "0.1"}),
    })
    result = await make_gateway(stub).test_connection()
    assert result["success"] is True
    assert result["system_status"] == "online"
    assert result["assets"] == ["XXBT", "ZUSD"]


@pytest.mark.asyncio
async def test_ticker_parses_and_caches():
    stub = KrakenStub({"Ticker": kraken_ok(ticker_result(btc=51000.5, eth=3100))})
    gateway = make_gateway(stub)

    tickers = await gateway.get_ticker(["BTC/USD", "ETHUSD"])
    again = await gateway.get_ticker(["ETHUSD", "BTCUSD"])

    assert tickers["BTCUSD"].price == pytest.approx(51000.5)
    assert tickers["BTCUSD"].volume == pytest.approx(120.5)
    assert tickers["ETHUSD"].price == pytest.approx(3100.0)
    assert tickers["BTCUSD"].is_fallback is False
    assert again is tickers
    assert stub.methods() == ["Ticker"]
    assert stub.calls[0][1]["pair"] == "XBTUSD,ETHUSD"


@pytest.mark.asyncio
async def test_ticker_falls_back_after_retries():
    stub = KrakenStub({"Ticker": httpx.ConnectError("down")})
    gateway = make_gateway(stub)

    tickers = await gateway.get_ticker(["BTCUSD"])

    assert tickers["BTCUSD"].is_fallback is True
    assert tickers["BTCUSD"].price == pytest.approx(45000.25)
    assert stub.methods() == ["Ticker", "Ticker", "Ticker"]


@pytest.mark.asyncio
async def test_malformed_ticker_entry_falls_back():
    stub = KrakenStub({"Ticker": kraken_ok({
        "XXBTZUSD": {"v": ["10.0", "120.5"]},
        "XETHZUSD": {"c": [], "v": ["50.0", "800.0"]},
    })})
    tickers = await make_gateway(stub).get_ticker(["BTCUSD", "ETHUSD"])

    assert tickers["BTCUSD"].is_fallback is True
    assert tickers["BTCUSD"].price == pytest.approx(45000.25)
    assert tickers["ETHUSD"].is_fallback is True


@pytest.mark.asyncio
async def test_exchange_error_is_classified():
    stub = KrakenStub({"AddOrder": kraken_error("EOrder:Insufficient funds")})
    gateway = make_gateway(stub)
    with pytest.raises(ExchangeError) as exc:
        await gateway.add_order(OrderRequest(pair="BTC/USD", side=OrderSide.BUY, size=0.001))
    assert exc.value.kind == ExchangeErrorKind.INSUFFICIENT_FUNDS
    assert stub.methods() == ["AddOrder"]


@pytest.mark.asyncio
async def test_add_order_sends_request_and_parses_txid():
    stub = KrakenStub({
        "AddOrder": kraken_ok({
            "descr": {"order": "sell 0.00020000 XBTUSD @ market"},
            "txid": ["OUF4EM-FRGI2-MQMWZD"],
        }),
    })
    order = await make_gateway(stub).add_order(
        OrderRequest(pair="BTC/USD", side=OrderSide.SELL, size=0.0002, order_type=OrderType.MARKET)
    )

    params = stub.calls[0][1]
    assert params["pair"] == "XBTUSD"
    assert params["type"] == "sell"
    assert params["ordertype"] == "market"
    assert params["volume"] == "0.00020000"
    assert order.order_id == "OUF4EM-FRGI2-MQMWZD"
    assert order.pair == "BTC/USD"
    assert order.remaining_size == pytest.approx(0.0002)


@pytest.mark.asyncio
async def test_cancel_all_returns_count():
    stub = KrakenStub({"CancelAll": kraken_ok({"count": 3})})
    assert await make_gateway(stub).cancel_all_orders() == {"count": 3}


@pytest.mark.asyncio
async def test_ohlc_parses_candles():
    rows = [
        [1700000000, "100.0", "110.0", "90.0", "105.0", "101.0", "12.5", 40],
        [1700003600, "105.0", "115.0", "100.0", "112.0", "108.0", "8.0", 25],
    ]
    stub = KrakenStub({"OHLC": kraken_ok({"XXBTZUSD": rows, "last": 1700003600})})
    candles = await make_gateway(stub).get_ohlc("BTCUSD", 60)
    assert [c.close for c in candles] == [105.0, 112.0]
    assert candles[0].count == 40
    assert stub.calls[0][1]["interval"] == "60"


@pytest.mark.asyncio
async def test_ohlc_failure_returns_empty():
    stub = KrakenStub({"OHLC": kraken_error("EService:Unavailable")})
    assert await make_gateway(stub).get_ohlc("BTCUSD") == []


@pytest.mark.asyncio
async def test_mock_mode_portfolio():
    stub = KrakenStub({})
    gateway = make_gateway(stub, mock_mode=True, api_key="", api_secret="")
    portfolio = await gateway.get_portfolio_balances()
    assert portfolio.USD == pytest.approx(50000.0)
    assert portfolio.BTC == pytest.approx(1.5)
    assert portfolio.ETH == pytest.approx(20.0)
    assert portfolio.total_value_usd == pytest.approx(177502.78, abs=0.01)
    assert stub.calls == []
