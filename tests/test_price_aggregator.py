import asyncio
import json
import math
import time

import httpx
import pytest

from arbitrage_aggregator.adapters.registry import build_default_registry
from arbitrage_aggregator.api.schemas import ErrorCode
from arbitrage_aggregator.services.price_aggregator import InvalidRequest, PriceAggregatorService

from conftest import (
    BINANCE_HOST,
    BITFINEX_HOST,
    COINBASE_HOST,
    COINGECKO_HOST,
    CRYPTOCOMPARE_HOST,
    KRAKEN_HOST,
    ExchangeStub,
    make_settings,
    slow,
)
from test_registry import EchoAdapter


ALL_EXCHANGES = ["Binance", "Coinbase", "CoinMarketCap", "CoinGecko", "CryptoCompare", "Bitfinex", "Kraken"]


@pytest.mark.asyncio
async def test_failing_source_is_recorded_as_null(service_factory):
    stub = ExchangeStub({
        BINANCE_HOST: (200, {"symbol": "BTCUSDT", "price": "65000.12"}),
        COINBASE_HOST: httpx.ConnectError("connection refused"),
    })
    service = service_factory(stub)

    report = await service.run(["BTCUSDT"], ["Binance", "Coinbase"], "USDT")

    assert report == {"BTCUSDT": {"Binance": 65000.12, "Coinbase": None}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "symbols, exchanges, base",
    [
        (["BTCUSDT"], [], "USDT"),
        ([], ["Binance"], "USDT"),
        (["BTCUSDT"], ["Binance"], ""),
        (["BTCUSDT"], ["Binance"], None),
        ([" ", ""], ["Binance"], "USDT"),
        (["BTCUSDT"], ["  "], "USDT"),
        (["BTC/USDT"], ["Binance"], "USDT"),
        (["../admin"], ["Coinbase"], "USDT"),
    ],
)
async def test_invalid_request_makes_no_calls(service_factory, symbols, exchanges, base):
    stub = ExchangeStub({BINANCE_HOST: (200, {"price": "1"})})
    service = service_factory(stub)

    with pytest.raises(InvalidRequest):
        await service.run(symbols, exchanges, base)

    assert stub.calls == []


@pytest.mark.asyncio
async def test_non_positive_timeout_is_invalid(service_factory):
    stub = ExchangeStub()
    service = service_factory(stub)
    with pytest.raises(InvalidRequest):
        await service.run(["BTC"], ["Binance"], "USDT", timeout=0)
    assert stub.calls == []


@pytest.mark.asyncio
async def test_report_covers_full_cross_product(service_factory):
    stub = ExchangeStub({
        BINANCE_HOST: (200, {"price": "100.5"}),
        COINBASE_HOST: (200, {"data": {"amount": "101"}}),
        COINGECKO_HOST: (200, {"bitcoin": {"usd": 99}, "ethereum": {"usd": 3}}),
        CRYPTOCOMPARE_HOST: (500, {"Response": "Error"}),
        BITFINEX_HOST: (200, ["error", 10020, "symbol: invalid"]),
        KRAKEN_HOST: httpx.ReadTimeout("slow"),
    })
    service = service_factory(stub)
    symbols = ["BTCUSDT", "ETHUSDT", "LTCUSDT"]

    report = await service.run(symbols, ALL_EXCHANGES, "USDT")

    assert list(report) == symbols
    for symbol in symbols:
        assert list(report[symbol]) == ALL_EXCHANGES
        for price in report[symbol].values():
            assert price is None or (math.isfinite(price) and price >= 0)
    assert sum(len(prices) for prices in report.values()) == len(symbols) * len(ALL_EXCHANGES)
    assert report["BTCUSDT"]["CoinGecko"] == 99.0
    assert report["LTCUSDT"]["CoinGecko"] is None
    assert report["ETHUSDT"]["Kraken"] is None


@pytest.mark.asyncio
async def test_failure_does_not_affect_other_sources(service_factory):
    healthy = ExchangeStub({
        BINANCE_HOST: (200, {"price": "65000.12"}),
        COINBASE_HOST: (200, {"data": {"amount": "65100"}}),
    })
    broken = ExchangeStub({
        BINANCE_HOST: httpx.ConnectError("down"),
        COINBASE_HOST: (200, {"data": {"amount": "65100"}}),
    })

    healthy_report = await service_factory(healthy).run(["BTCUSDT"], ["Binance", "Coinbase"], "USDT")
    broken_report = await service_factory(broken).run(["BTCUSDT"], ["Binance", "Coinbase"], "USDT")

    assert healthy_report["BTCUSDT"]["Coinbase"] == broken_report["BTCUSDT"]["Coinbase"] == 65100.0
    assert broken_report["BTCUSDT"]["Binance"] is None


@pytest.mark.asyncio
async def test_error_kinds_are_recorded_per_query(service_factory):
    stub = ExchangeStub({
        BINANCE_HOST: (200, {"symbol": "BTCUSDT"}),
        COINBASE_HOST: (404, {"errors": [{"id": "not_found"}]}),
        KRAKEN_HOST: lambda request: httpx.Response(200, content=b"<html>oops</html>"),
    })
    service = service_factory(stub)

    results = await service.collect(["BTCUSDT"], ["Binance", "Coinbase", "Kraken", "Mt.Gox"], "USDT")

    errors = {result.query.exchange: result.error for result in results}
    assert errors == {
        "Binance": ErrorCode.UNPARSEABLE_PRICE,
        "Coinbase": ErrorCode.SOURCE_UNAVAILABLE,
        "Kraken": ErrorCode.UNPARSEABLE_PRICE,
        "Mt.Gox": ErrorCode.UNKNOWN_EXCHANGE,
    }
    assert all(result.price is None for result in results)
    assert all(result.detail for result in results)
    # The unknown exchange never reaches the network
    assert sorted(stub.hosts()) == sorted([BINANCE_HOST, COINBASE_HOST, KRAKEN_HOST])


@pytest.mark.asyncio
async def test_unknown_exchange_keeps_requested_name(service_factory):
    stub = ExchangeStub({BINANCE_HOST: (200, {"price": "10"})})
    report = await service_factory(stub).run(["ETH"], ["binance", "Mt.Gox"], "usdt")
    assert report == {"ETH": {"binance": 10.0, "Mt.Gox": None}}


@pytest.mark.asyncio
async def test_input_is_normalized_and_deduplicated(service_factory):
    stub = ExchangeStub({BINANCE_HOST: (200, {"price": "1.25"})})
    report = await service_factory(stub).run([" btcusdt", "btcusdt", "ETHUSDT"], ["Binance", " Binance "], " usdt ")
    assert report == {"btcusdt": {"Binance": 1.25}, "ETHUSDT": {"Binance": 1.25}}
    assert len(stub.calls) == 2
    assert all(request.url.params["symbol"] in ("BTCUSDT", "ETHUSDT") for request in stub.calls)


@pytest.mark.asyncio
async def test_report_is_keyed_by_requested_spelling(service_factory):
    stub = ExchangeStub({BINANCE_HOST: (200, {"price": "10"})})
    symbols, exchanges = ["btcusdt"], ["Binance", "binance"]
    report = await service_factory(stub).run(symbols, exchanges, "USDT")

    for symbol in symbols:
        for exchange in exchanges:
            assert report[symbol][exchange] == 10.0
    assert len(stub.calls) == 2


@pytest.mark.asyncio
async def test_server_errors_are_retried(service_factory):
    attempts = []

    def flaky(request):
        attempts.append(request)
        if len(attempts) == 1:
            return httpx.Response(503, json={"msg": "busy"})
        return httpx.Response(200, json={"price": "42"})

    stub = ExchangeStub({BINANCE_HOST: flaky})
    report = await service_factory(stub, call_attempts=2).run(["BTCUSDT"], ["Binance"], "USDT")

    assert report == {"BTCUSDT": {"Binance": 42.0}}
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_hung_attempt_is_retried_within_call_timeout(service_factory):
    attempts = []

    async def hangs_once(request):
        attempts.append(request)
        if len(attempts) == 1:
            await asyncio.sleep(5)
        return httpx.Response(200, json={"price": "42"})

    stub = ExchangeStub({BINANCE_HOST: hangs_once})
    service = service_factory(stub, call_attempts=2, call_timeout=2.0, request_timeout=5.0)

    started = time.monotonic()
    report = await service.run(["BTCUSDT"], ["Binance"], "USDT")
    elapsed = time.monotonic() - started

    assert report == {"BTCUSDT": {"Binance": 42.0}}
    assert len(attempts) == 2
    assert elapsed < 2.0


@pytest.mark.asyncio
async def test_rate_limit_is_not_retried(service_factory):
    stub = ExchangeStub({BINANCE_HOST: (429, {"msg": "slow down"})})
    results = await service_factory(stub, call_attempts=3).collect(["BTCUSDT"], ["Binance"], "USDT")
    assert results[0].error is ErrorCode.SOURCE_UNAVAILABLE
    assert len(stub.calls) == 1


@pytest.mark.asyncio
async def test_slow_call_times_out_individually(service_factory):
    stub = ExchangeStub({
        BINANCE_HOST: slow(5, body={"price": "1"}),
        COINBASE_HOST: (200, {"data": {"amount": "2"}}),
    })
    service = service_factory(stub, call_timeout=0.1, request_timeout=2.0)

    started = time.monotonic()
    results = await service.collect(["BTCUSDT"], ["Binance", "Coinbase"], "USDT")
    elapsed = time.monotonic() - started

    assert results[0].price is None
    assert results[0].error is ErrorCode.SOURCE_UNAVAILABLE
    assert "Timed out" in results[0].detail
    assert results[1].price == 2.0
    assert elapsed < 1.0


@pytest.mark.asyncio
async def test_request_deadline_bounds_run(service_factory):
    stub = ExchangeStub({
        BINANCE_HOST: slow(5, body={"price": "1"}),
        COINBASE_HOST: (200, {"data": {"amount": "2"}}),
    })
    service = service_factory(stub, call_timeout=10.0, request_timeout=10.0, cancel_grace=0.1)

    started = time.monotonic()
    results = await service.collect(["BTCUSDT"], ["Binance", "Coinbase"], "USDT", timeout=0.2)
    elapsed = time.monotonic() - started

    assert results[0].price is None
    assert "deadline" in results[0].detail
    assert results[1].price == 2.0
    assert elapsed < 0.2 + 0.1 + 0.5


@pytest.mark.asyncio
async def test_concurrency_is_bounded(service_factory):
    in_flight = 0
    peak = 0

    async def tracked(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return httpx.Response(200, json={"price": "3"})

    stub = ExchangeStub({BINANCE_HOST: tracked})
    service = service_factory(stub, max_concurrency=2)

    report = await service.run(["BTC", "ETH", "LTC", "SOL", "XRP", "ADA"], ["Binance"], "USDT")

    assert all(prices["Binance"] == 3.0 for prices in report.values())
    assert peak == 2


@pytest.mark.asyncio
async def test_repeated_runs_are_byte_identical(service_factory):
    # Later exchanges answer first so completion order differs from input order
    stub = ExchangeStub({
        BINANCE_HOST: slow(0.06, body={"price": "100"}),
        COINBASE_HOST: slow(0.03, body={"data": {"amount": "101"}}),
        KRAKEN_HOST: slow(0.0, body={"error": [], "result": {"X": {"c": ["99.5", "1"]}}}),
    })
    service = service_factory(stub)
    args = (["BTCUSDT", "ETHUSDT"], ["Binance", "Coinbase", "Kraken", "Mt.Gox"], "USDT")

    first = await service.run(*args)
    second = await service.run(*args)

    assert json.dumps(first) == json.dumps(second)
    assert list(first["BTCUSDT"]) == ["Binance", "Coinbase", "Kraken", "Mt.Gox"]


@pytest.mark.asyncio
async def test_custom_adapter_is_used_without_engine_changes(service_factory):
    registry = build_default_registry()
    registry.register(EchoAdapter())
    stub = ExchangeStub({"echo.example": (200, {"last": 7.5})})

    report = await service_factory(stub, registry=registry).run(["SOL"], ["Echo"], "USDT")

    assert report == {"SOL": {"Echo": 7.5}}
    assert stub.calls[0].url.host == "echo.example"
    assert stub.calls[0].url.path == "/SOL/USDT"


@pytest.mark.asyncio
async def test_request_descriptor_is_sent(service_factory):
    stub = ExchangeStub({COINBASE_HOST: (200, {"data": {"amount": "1"}})})
    await service_factory(stub).run(["BTCUSDT"], ["Coinbase"], "USDT")
    assert stub.calls[0].method == "GET"
    assert stub.calls[0].url.path == "/v2/prices/BTC-USD/spot"


def test_merge_follows_result_order():
    service = PriceAggregatorService(config=make_settings())
    queries = service.build_queries(["A", "B"], ["X", "Y"], "USDT")
    assert [(query.symbol, query.exchange) for query in queries] == [
        ("A", "X"), ("A", "Y"), ("B", "X"), ("B", "Y")
    ]


@pytest.mark.asyncio
async def test_owned_client_lifecycle():
    service = PriceAggregatorService(config=make_settings())
    async with service:
        assert isinstance(service.client, httpx.AsyncClient)
    assert service.client is None
