"""
Abstract base class for exchange adapters in Arbitrage Price Aggregator.
Defines the interface that every price source must implement.

An adapter is pure: it turns a (symbol, base currency) pair into a
RequestDescriptor and turns a decoded response body back into a price.
All network I/O happens in the aggregation engine.
"""

import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from ..api.schemas import ErrorCode, RequestDescriptor


class AggregatorError(Exception):
    """Base exception for aggregator errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class AdapterError(AggregatorError):
    """Base exception for failures scoped to a single price query."""

    error_code: ErrorCode = ErrorCode.SOURCE_UNAVAILABLE

    def __init__(self, message: str, exchange: str, symbol: Optional[str] = None):
        self.exchange = exchange
        self.symbol = symbol
        super().__init__(message)


class UnknownExchange(AdapterError):
    """Raised when no adapter is registered under the requested name."""
    error_code = ErrorCode.UNKNOWN_EXCHANGE


class SourceUnavailable(AdapterError):
    """Raised on network failure, non-success status or timeout."""
    error_code = ErrorCode.SOURCE_UNAVAILABLE


class UnparseablePrice(AdapterError):
    """Raised when a successful response carries no usable price."""
    error_code = ErrorCode.UNPARSEABLE_PRICE


def split_pair(symbol: str, base_currency: str) -> Tuple[str, str]:
    """
    Split a symbol into (asset, quote).

    ``BTCUSDT`` with base ``USDT`` gives ``("BTC", "USDT")``; a bare ``BTC``
    gives the same. A symbol equal to the base currency is kept whole.
    """
    symbol = symbol.strip().upper()
    quote = base_currency.strip().upper()
    if quote and symbol.endswith(quote) and len(symbol) > len(quote):
        return symbol[:-len(quote)], quote
    return symbol, quote


def coerce_price(value: Any) -> Optional[float]:
    """
    Coerce a raw field into a price.

    Numbers and numeric text are accepted; anything else, including booleans,
    NaN, infinities and non-positive values, is treated as absent.
    """
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        price = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def dig(body: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None on the first mismatch."""
    current = body
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, dict) or key not in current:
                return None
            current = current[key]
    return current


class BaseExchangeAdapter(ABC):
    """Abstract base class for public ticker price sources."""

    # Quote currencies a source does not list, mapped to the one it does
    currency_aliases: Dict[str, str] = {}

    # Assets the source lists under a different code
    asset_aliases: Dict[str, str] = {}

    def __init__(self, name: str, base_url: str):
        self.name = name
        self.base_url = base_url.rstrip('/')

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    def _normalize_pair(self, symbol: str, base_currency: str) -> Tuple[str, str]:
        """
        Normalize a pair for this source.
        Applies the adapter's asset and currency substitutions.
        """
        asset, quote = split_pair(symbol, base_currency)
        return self.asset_aliases.get(asset, asset), self.currency_aliases.get(quote, quote)

    @abstractmethod
    def build_request(self, symbol: str, base_currency: str) -> RequestDescriptor:
        """
        Build the ticker request for a pair.

        Args:
            symbol: Trading symbol, with or without the base currency suffix
            base_currency: Quote currency of the pair

        Returns:
            RequestDescriptor for a GET against the public ticker endpoint
        """
        pass

    @abstractmethod
    def parse_response(self, body: Any, symbol: str, base_currency: str) -> Optional[float]:
        """
        Extract the price from a decoded response body.

        Args:
            body: Decoded JSON body
            symbol: Symbol the request was built for
            base_currency: Base currency the request was built for

        Returns:
            The price, or None when the body has no usable price
        """
        pass
