import asyncio
import inspect

import httpx
import pytest
import pytest_asyncio

from arbitrage_aggregator.adapters.registry import build_default_registry
from arbitrage_aggregator.core.config import Settings
from arbitrage_aggregator.services.price_aggregator import PriceAggregatorService


BINANCE_HOST = "api.binance.com"
COINBASE_HOST = "api.coinbase.com"
COINMARKETCAP_HOST = "pro-api.coinmarketcap.com"
COINGECKO_HOST = "api.coingecko.com"
CRYPTOCOMPARE_HOST = "min-api.cryptocompare.com"
BITFINEX_HOST = "api-pub.bitfinex.com"
KRAKEN_HOST = "api.kraken.com"


def make_settings(**overrides) -> Settings:
    values = {
        "request_timeout": 2.0,
        "call_timeout": 1.0,
        "max_concurrency": 4,
        "call_attempts": 1,
        "cancel_grace": 0.1,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class ExchangeStub:
    """
    MockTransport handler routing by host.

    Each route is a ``(status, json_body)`` tuple, an exception to raise, or a
    (possibly async) callable taking the request and returning a Response.
    Unrouted hosts answer 404.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        outcome = self.routes.get(request.url.host)
        if outcome is None:
            return httpx.Response(404, json={"error": "not mocked"})
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, tuple):
            status, body = outcome
            return httpx.Response(status, json=body)
        response = outcome(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    def hosts(self):
        return [request.url.host for request in self.calls]


def slow(delay, status=200, body=None):
    async def respond(request):
        await asyncio.sleep(delay)
        return httpx.Response(status, json=body)
    return respond


@pytest.fixture
def stub():
    return ExchangeStub()


@pytest_asyncio.fixture
async def service_factory():
    clients = []

    def factory(handler, registry=None, **overrides):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return PriceAggregatorService(
            registry=registry if registry is not None else build_default_registry(),
            client=client,
            config=make_settings(**overrides),
        )

    yield factory

    for client in clients:
        await client.aclose()
