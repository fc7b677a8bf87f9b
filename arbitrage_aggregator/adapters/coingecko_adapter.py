"""
CoinGecko aggregator adapter.
Provides aggregated prices from the CoinGecko simple price endpoint.
"""

from typing import Any, Optional

from .base import BaseExchangeAdapter, coerce_price, dig
from ..api.schemas import RequestDescriptor


# Common cryptocurrency symbol mappings to CoinGecko coin ids
COINGECKO_IDS = {
    'BTC': 'bitcoin',
    'ETH': 'ethereum',
    'ADA': 'cardano',
    'DOT': 'polkadot',
    'XRP': 'ripple',
    'LTC': 'litecoin',
    'BCH': 'bitcoin-cash',
    'LINK': 'chainlink',
    'XLM': 'stellar',
    'DOGE': 'dogecoin',
    'UNI': 'uniswap',
    'AAVE': 'aave',
    'SUSHI': 'sushi',
    'COMP': 'compound-governance-token',
    'MKR': 'maker',
    'SNX': 'havven',
    'CRV': 'curve-dao-token',
    'YFI': 'yearn-finance',
    '1INCH': '1inch',
    'MATIC': 'matic-network',
    'AVAX': 'avalanche-2',
    'SOL': 'solana',
    'ALGO': 'algorand',
    'VET': 'vechain',
    'ICP': 'internet-computer',
    'FIL': 'filecoin',
    'TRX': 'tron',
    'XTZ': 'tezos',
    'EOS': 'eos',
    'ATOM': 'cosmos',
    'XMR': 'monero',
    'NEO': 'neo',
    'ZEC': 'zcash',
    'DASH': 'dash',
    'BNB': 'binancecoin',
}


class CoinGeckoAdapter(BaseExchangeAdapter):
    """CoinGecko simple price: ``GET /api/v3/simple/price?ids=bitcoin&vs_currencies=usd``."""

    currency_aliases = {'USDT': 'USD'}

    def __init__(self):
        super().__init__(name="CoinGecko", base_url="https://api.coingecko.com/api/v3")

    def _coin_id(self, asset: str) -> str:
        """Convert symbol to CoinGecko ID, falling back to the lower-cased symbol."""
        return COINGECKO_IDS.get(asset, asset.lower())

    def build_request(self, symbol: str, base_currency: str) -> RequestDescriptor:
        asset, quote = self._normalize_pair(symbol, base_currency)
        return RequestDescriptor(
            url=f"{self.base_url}/simple/price",
            params={'ids': self._coin_id(asset), 'vs_currencies': quote.lower()}
        )

    def parse_response(self, body: Any, symbol: str, base_currency: str) -> Optional[float]:
        # {"bitcoin": {"usd": 64990}}
        asset, quote = self._normalize_pair(symbol, base_currency)
        return coerce_price(dig(body, self._coin_id(asset), quote.lower()))
