"""
Coinbase exchange adapter.
Uses the public spot price endpoint, which quotes fiat rather than stablecoins.
"""

from typing import Any, Optional

from .base import BaseExchangeAdapter, coerce_price, dig
from ..api.schemas import RequestDescriptor


class CoinbaseAdapter(BaseExchangeAdapter):
    """Coinbase spot price: ``GET /v2/prices/BTC-USD/spot``."""

    currency_aliases = {'USDT': 'USD'}

    def __init__(self):
        super().__init__(name="Coinbase", base_url="https://api.coinbase.com/v2")

    def build_request(self, symbol: str, base_currency: str) -> RequestDescriptor:
        asset, quote = self._normalize_pair(symbol, base_currency)
        return RequestDescriptor(url=f"{self.base_url}/prices/{asset}-{quote}/spot")

    def parse_response(self, body: Any, symbol: str, base_currency: str) -> Optional[float]:
        # {"data": {"amount": "65010.5", "base": "BTC", "currency": "USD"}}
        return coerce_price(dig(body, 'data', 'amount'))
