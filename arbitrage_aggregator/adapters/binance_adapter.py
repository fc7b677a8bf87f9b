"""
Binance exchange adapter.
Reads the last trade price from the public spot ticker endpoint.
"""

from typing import Any, Optional

from .base import BaseExchangeAdapter, coerce_price, dig
from ..api.schemas import RequestDescriptor


class BinanceAdapter(BaseExchangeAdapter):
    """Binance spot ticker: ``GET /api/v3/ticker/price?symbol=BTCUSDT``."""

    def __init__(self):
        super().__init__(name="Binance", base_url="https://api.binance.com/api/v3")

    def build_request(self, symbol: str, base_currency: str) -> RequestDescriptor:
        asset, quote = self._normalize_pair(symbol, base_currency)
        return RequestDescriptor(
            url=f"{self.base_url}/ticker/price",
            params={'symbol': f"{asset}{quote}"}
        )

    def parse_response(self, body: Any, symbol: str, base_currency: str) -> Optional[float]:
        # {"symbol": "BTCUSDT", "price": "65000.12000000"}
        return coerce_price(dig(body, 'price'))
