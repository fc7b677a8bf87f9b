import pytest

from arbitrage_aggregator.adapters.base import BaseExchangeAdapter, UnknownExchange
from arbitrage_aggregator.adapters.binance_adapter import BinanceAdapter
from arbitrage_aggregator.adapters.registry import ExchangeRegistry, build_default_registry
from arbitrage_aggregator.api.schemas import ErrorCode, RequestDescriptor


class EchoAdapter(BaseExchangeAdapter):
    def __init__(self):
        super().__init__(name="Echo", base_url="https://echo.example/")

    def build_request(self, symbol, base_currency):
        asset, quote = self._normalize_pair(symbol, base_currency)
        return RequestDescriptor(url=f"{self.base_url}/{asset}/{quote}")

    def parse_response(self, body, symbol, base_currency):
        return body.get("last") if isinstance(body, dict) else None


def test_default_registry_catalog():
    registry = build_default_registry()
    assert registry.names == [
        "Binance", "Coinbase", "CoinMarketCap", "CoinGecko", "CryptoCompare", "Bitfinex", "Kraken"
    ]
    assert len(registry) == 7


def test_resolve_is_case_insensitive():
    registry = build_default_registry()
    assert isinstance(registry.resolve("binance"), BinanceAdapter)
    assert registry.resolve(" BINANCE ") is registry.resolve("Binance")
    assert "coinbase" in registry
    assert "Mt.Gox" not in registry


def test_resolve_unknown_exchange():
    with pytest.raises(UnknownExchange) as exc_info:
        build_default_registry().resolve("Mt.Gox")
    assert exc_info.value.exchange == "Mt.Gox"
    assert exc_info.value.error_code is ErrorCode.UNKNOWN_EXCHANGE


def test_register_adds_exchange():
    registry = ExchangeRegistry([BinanceAdapter()])
    registry.register(EchoAdapter())
    assert registry.names == ["Binance", "Echo"]
    request = registry.resolve("echo").build_request("SOLUSDT", "USDT")
    assert request.url == "https://echo.example/SOL/USDT"


def test_register_duplicate_name_rejected():
    registry = ExchangeRegistry([BinanceAdapter()])
    with pytest.raises(ValueError):
        registry.register(BinanceAdapter())
