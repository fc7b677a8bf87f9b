"""
Arbitrage spread derivation over an aggregated price report.
"""

from typing import List, Mapping, Optional

from ..api.schemas import AggregateReport, SpreadInfo


def compute_spread(symbol: str, prices: Mapping[str, Optional[float]]) -> Optional[SpreadInfo]:
    """
    Spread between the cheapest and the most expensive source for one symbol.

    Absent prices are ignored. Returns None when fewer than two sources have
    a price. On ties the first exchange in mapping order wins.

    Engine reports only ever hold positive prices, but any mapping is accepted
    here; a zero or negative minimum has no meaningful spread and gives None.
    """
    present = {exchange: price for exchange, price in prices.items() if price is not None}
    if len(present) < 2:
        return None

    buy_exchange = min(present, key=present.get)
    sell_exchange = max(present, key=present.get)
    buy_price = present[buy_exchange]
    sell_price = present[sell_exchange]
    if buy_price <= 0:
        return None

    return SpreadInfo(
        symbol=symbol,
        buy_exchange=buy_exchange,
        buy_price=buy_price,
        sell_exchange=sell_exchange,
        sell_price=sell_price,
        spread_pct=(sell_price - buy_price) / buy_price * 100,
        sources=len(present)
    )


def find_opportunities(report: AggregateReport, min_spread: float = 0.0) -> List[SpreadInfo]:
    """Spreads for every symbol with at least two prices, at or above min_spread, largest first."""
    spreads = []
    for symbol, prices in report.items():
        info = compute_spread(symbol, prices)
        if info is not None and info.spread_pct >= min_spread:
            spreads.append(info)
    # sorted() is stable, so equal spreads keep report order
    return sorted(spreads, key=lambda info: info.spread_pct, reverse=True)
