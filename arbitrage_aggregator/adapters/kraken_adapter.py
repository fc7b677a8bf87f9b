"""
Kraken exchange adapter.
Kraken uses its own asset codes (XBT for bitcoin) and keys the ticker result
by an internal pair name, so the first result entry is used.
"""

from typing import Any, Optional

from .base import BaseExchangeAdapter, coerce_price, dig
from ..api.schemas import RequestDescriptor


class KrakenAdapter(BaseExchangeAdapter):
    """Kraken ticker: ``GET /0/public/Ticker?pair=XBTUSDT``."""

    asset_aliases = {'BTC': 'XBT', 'DOGE': 'XDG'}

    def __init__(self):
        super().__init__(name="Kraken", base_url="https://api.kraken.com/0/public")

    def build_request(self, symbol: str, base_currency: str) -> RequestDescriptor:
        asset, quote = self._normalize_pair(symbol, base_currency)
        return RequestDescriptor(
            url=f"{self.base_url}/Ticker",
            params={'pair': f"{asset}{quote}"}
        )

    def parse_response(self, body: Any, symbol: str, base_currency: str) -> Optional[float]:
        # {"error": [], "result": {"XXBTZUSD": {"c": ["65002.10000", "0.001"], ...}}}
        if dig(body, 'error'):
            return None
        result = dig(body, 'result')
        if not isinstance(result, dict) or not result:
            return None
        ticker = next(iter(result.values()))
        return coerce_price(dig(ticker, 'c', 0))
