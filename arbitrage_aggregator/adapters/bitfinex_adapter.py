"""
Bitfinex exchange adapter.
Uses the v2 public ticker, which returns a positional array rather than an object.
"""

from typing import Any, Optional

from .base import BaseExchangeAdapter, coerce_price, dig
from ..api.schemas import RequestDescriptor

# Position of LAST_PRICE in a trading pair ticker array
LAST_PRICE_INDEX = 6


class BitfinexAdapter(BaseExchangeAdapter):
    """Bitfinex ticker: ``GET /v2/ticker/tBTCUST``."""

    # Bitfinex lists Tether as UST
    currency_aliases = {'USDT': 'UST'}

    def __init__(self):
        super().__init__(name="Bitfinex", base_url="https://api-pub.bitfinex.com/v2")

    def _pair_symbol(self, asset: str, quote: str) -> str:
        # Codes longer than three letters need an explicit separator
        if len(asset) > 3 or len(quote) > 3:
            return f"t{asset}:{quote}"
        return f"t{asset}{quote}"

    def build_request(self, symbol: str, base_currency: str) -> RequestDescriptor:
        asset, quote = self._normalize_pair(symbol, base_currency)
        return RequestDescriptor(url=f"{self.base_url}/ticker/{self._pair_symbol(asset, quote)}")

    def parse_response(self, body: Any, symbol: str, base_currency: str) -> Optional[float]:
        # [BID, BID_SIZE, ASK, ASK_SIZE, DAILY_CHANGE, DAILY_CHANGE_RELATIVE, LAST_PRICE, ...]
        # Errors come back as ["error", 10020, "symbol: invalid"]
        if dig(body, 0) == 'error':
            return None
        return coerce_price(dig(body, LAST_PRICE_INDEX))
