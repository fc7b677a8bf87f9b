"""
Exchange adapter registry.
Catalog of supported price sources, keyed by exchange name.
"""

from typing import Dict, Iterable, List, Optional

from .base import BaseExchangeAdapter, UnknownExchange
from .binance_adapter import BinanceAdapter
from .bitfinex_adapter import BitfinexAdapter
from .coinbase_adapter import CoinbaseAdapter
from .coingecko_adapter import CoinGeckoAdapter
from .coinmarketcap_adapter import CoinMarketCapAdapter
from .cryptocompare_adapter import CryptoCompareAdapter
from .kraken_adapter import KrakenAdapter
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class ExchangeRegistry:
    """
    Maps exchange names to adapter instances.

    Names are matched case-insensitively; ``names`` keeps the registered
    spelling and registration order.
    """

    def __init__(self, adapters: Optional[Iterable[BaseExchangeAdapter]] = None):
        self._adapters: Dict[str, BaseExchangeAdapter] = {}
        for adapter in adapters or ():
            self.register(adapter)

    def register(self, adapter: BaseExchangeAdapter) -> None:
        """Register an adapter under its name. Re-registering a name is an error."""
        key = adapter.name.lower()
        if key in self._adapters:
            raise ValueError(f"Exchange '{adapter.name}' is already registered")
        self._adapters[key] = adapter
        logger.debug("Registered exchange adapter", extra={"exchange": adapter.name})

    def resolve(self, name: str) -> BaseExchangeAdapter:
        """Get the adapter for an exchange name, raising UnknownExchange if absent."""
        adapter = self._adapters.get(name.strip().lower())
        if adapter is None:
            raise UnknownExchange(
                f"Unsupported exchange '{name}'. Available: {', '.join(self.names)}",
                name
            )
        return adapter

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    @property
    def names(self) -> List[str]:
        return [adapter.name for adapter in self._adapters.values()]


def build_default_registry() -> ExchangeRegistry:
    """Build a registry holding every built-in adapter."""
    return ExchangeRegistry([
        BinanceAdapter(),
        CoinbaseAdapter(),
        CoinMarketCapAdapter(),
        CoinGeckoAdapter(),
        CryptoCompareAdapter(),
        BitfinexAdapter(),
        KrakenAdapter(),
    ])


# Global registry instance
exchange_registry = build_default_registry()
