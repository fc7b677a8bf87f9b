"""
CryptoCompare aggregator adapter.
"""

from typing import Any, Optional

from .base import BaseExchangeAdapter, coerce_price, dig
from ..api.schemas import RequestDescriptor


class CryptoCompareAdapter(BaseExchangeAdapter):
    """CryptoCompare single price: ``GET /data/price?fsym=BTC&tsyms=USDT``."""

    def __init__(self):
        super().__init__(name="CryptoCompare", base_url="https://min-api.cryptocompare.com/data")

    def build_request(self, symbol: str, base_currency: str) -> RequestDescriptor:
        asset, quote = self._normalize_pair(symbol, base_currency)
        return RequestDescriptor(
            url=f"{self.base_url}/price",
            params={'fsym': asset, 'tsyms': quote}
        )

    def parse_response(self, body: Any, symbol: str, base_currency: str) -> Optional[float]:
        # {"USDT": 65001.4}, or {"Response": "Error", "Message": ...} with a 200 status
        if dig(body, 'Response') == 'Error':
            return None
        _, quote = self._normalize_pair(symbol, base_currency)
        return coerce_price(dig(body, quote))
