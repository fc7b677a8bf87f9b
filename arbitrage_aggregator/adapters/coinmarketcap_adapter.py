"""
CoinMarketCap aggregator adapter.
Reads the aggregated quote for an asset from the latest quotes endpoint.
"""

from typing import Any, Dict, Optional

from .base import BaseExchangeAdapter, coerce_price, dig
from ..api.schemas import RequestDescriptor
from ..core.config import settings


class CoinMarketCapAdapter(BaseExchangeAdapter):
    """CoinMarketCap latest quotes: ``GET /v1/cryptocurrency/quotes/latest``."""

    currency_aliases = {'USDT': 'USD'}

    def __init__(self, api_key: Optional[str] = None):
        super().__init__(
            name="CoinMarketCap",
            base_url="https://pro-api.coinmarketcap.com/v1"
        )
        self.api_key = api_key if api_key is not None else settings.coinmarketcap_api_key

    def _get_auth_headers(self) -> Dict[str, str]:
        """CoinMarketCap takes its API key in a header; without one the call is rejected upstream."""
        if not self.api_key:
            return {}
        return {'X-CMC_PRO_API_KEY': self.api_key}

    def build_request(self, symbol: str, base_currency: str) -> RequestDescriptor:
        asset, quote = self._normalize_pair(symbol, base_currency)
        return RequestDescriptor(
            url=f"{self.base_url}/cryptocurrency/quotes/latest",
            params={'symbol': asset, 'convert': quote},
            headers=self._get_auth_headers()
        )

    def parse_response(self, body: Any, symbol: str, base_currency: str) -> Optional[float]:
        # {"data": {"BTC": {"quote": {"USD": {"price": 65003.2}}}}}
        asset, quote = self._normalize_pair(symbol, base_currency)
        coin_data = dig(body, 'data', asset)
        # Some API versions return a list of matches per symbol
        if isinstance(coin_data, list):
            coin_data = dig(coin_data, 0)
        return coerce_price(dig(coin_data, 'quote', quote, 'price'))
