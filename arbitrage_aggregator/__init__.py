"""
Arbitrage Price Aggregator
Queries many exchanges for the same trading pairs and reports a price per source.
"""

__version__ = "1.0.0"
__description__ = "Cross-exchange cryptocurrency price aggregation for arbitrage detection"
