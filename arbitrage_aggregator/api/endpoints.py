"""
FastAPI endpoints for Arbitrage Price Aggregator.
Parses query parameters and delegates to the price aggregation service.
"""

from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from ..api.schemas import (
    AggregateReport, ExchangeListResponse, HealthResponse, SpreadResponse
)
from ..core.config import settings
from ..core.logging_config import create_logger
from ..services.arbitrage import find_opportunities
from ..services.price_aggregator import PriceAggregatorService, aggregator_service

logger = create_logger(__name__)

# Create API router
router = APIRouter()

# Application startup time for uptime calculation
app_start_time = datetime.now(timezone.utc)


def get_aggregator() -> PriceAggregatorService:
    """Dependency returning the process-wide aggregation service."""
    return aggregator_service


def split_values(values: Optional[List[str]]) -> Optional[List[str]]:
    """
    Flatten repeated and comma-separated query values.
    Returns None when the parameter was not supplied at all.
    """
    if values is None:
        return None
    return [part for value in values for part in value.split(',')]


async def _fetch_report(
    aggregator: PriceAggregatorService,
    symbols: Optional[List[str]],
    symbol: Optional[str],
    exchanges: Optional[List[str]],
    base_currency: Optional[str],
) -> AggregateReport:
    symbol_list = split_values(symbols) or []
    if symbol:
        symbol_list.extend(symbol.split(','))

    exchange_list = split_values(exchanges)
    if exchange_list is None:
        exchange_list = settings.get_enabled_exchanges_list()

    if base_currency is None:
        base_currency = settings.default_base_currency

    logger.info("Arbitrage request received", extra={
        "symbols": symbol_list,
        "exchanges": exchange_list,
        "base_currency": base_currency
    })

    # InvalidRequest propagates to the application exception handler
    return await aggregator.run(symbol_list, exchange_list, base_currency)


@router.get("/arbitrage", response_model=AggregateReport)
async def get_arbitrage_prices(
    symbols: Optional[List[str]] = Query(
        None,
        description="Symbols to price, comma-separated or repeated",
        examples=["BTCUSDT,ETHUSDT"]
    ),
    symbol: Optional[str] = Query(None, description="Single symbol, merged into symbols"),
    exchanges: Optional[List[str]] = Query(
        None,
        description="Exchanges to query, comma-separated or repeated; defaults to all enabled exchanges",
        examples=["Binance,Coinbase"]
    ),
    base_currency: Optional[str] = Query(
        None,
        alias="baseCurrency",
        description="Quote currency of the pairs; defaults to the configured base currency"
    ),
    aggregator: PriceAggregatorService = Depends(get_aggregator),
):
    """
    Get the price of every requested symbol on every requested exchange.

    Returns:
        Mapping of symbol to exchange to price, with null where a source had no price
    """
    return await _fetch_report(aggregator, symbols, symbol, exchanges, base_currency)


@router.get("/arbitrage/spreads", response_model=SpreadResponse)
async def get_arbitrage_spreads(
    symbols: Optional[List[str]] = Query(None, description="Symbols to price, comma-separated or repeated"),
    symbol: Optional[str] = Query(None, description="Single symbol, merged into symbols"),
    exchanges: Optional[List[str]] = Query(None, description="Exchanges to query"),
    base_currency: Optional[str] = Query(None, alias="baseCurrency", description="Quote currency"),
    min_spread: float = Query(0.0, ge=0.0, description="Minimum spread in percent"),
    aggregator: PriceAggregatorService = Depends(get_aggregator),
):
    """
    Get the arbitrage spread per symbol across the requested exchanges.
    Symbols with fewer than two prices are left out of the spread list.
    """
    report = await _fetch_report(aggregator, symbols, symbol, exchanges, base_currency)
    spreads = find_opportunities(report, min_spread=min_spread)

    logger.info("Spreads computed", extra={
        "symbols": list(report),
        "opportunities": len(spreads),
        "min_spread": min_spread
    })

    return SpreadResponse(spreads=spreads, prices=report)


@router.get("/exchanges", response_model=ExchangeListResponse)
async def list_exchanges(aggregator: PriceAggregatorService = Depends(get_aggregator)):
    """List the registered exchanges and the ones queried by default."""
    return ExchangeListResponse(
        exchanges=aggregator.registry.names,
        enabled=settings.get_enabled_exchanges_list()
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(aggregator: PriceAggregatorService = Depends(get_aggregator)):
    """
    Health check endpoint.
    The service is healthy as long as at least one exchange is registered.
    """
    uptime_seconds = (datetime.now(timezone.utc) - app_start_time).total_seconds()
    exchange_count = len(aggregator.registry)

    return HealthResponse(
        status="healthy" if exchange_count > 0 else "unhealthy",
        version=settings.app_version,
        uptime_seconds=uptime_seconds,
        exchanges=exchange_count
    )
