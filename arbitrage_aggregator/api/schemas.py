"""
Pydantic schemas for Arbitrage Price Aggregator.
Shared by the exchange adapters, the aggregation engine and the HTTP layer.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorCode(str, Enum):
    """Per-query failure kinds recorded alongside an absent price."""
    UNKNOWN_EXCHANGE = "unknown_exchange"
    SOURCE_UNAVAILABLE = "source_unavailable"
    UNPARSEABLE_PRICE = "unparseable_price"


class RequestDescriptor(BaseModel):
    """Everything needed to issue one public ticker GET."""
    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Absolute endpoint URL")
    params: Dict[str, str] = Field(default_factory=dict, description="Query string parameters")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")


class PriceQuery(BaseModel):
    """One unit of work: a single (exchange, symbol, base currency) lookup."""
    model_config = ConfigDict(frozen=True)

    exchange: str = Field(..., description="Exchange name as requested")
    symbol: str = Field(..., description="Trading symbol, e.g. BTCUSDT or BTC")
    base_currency: str = Field(..., description="Quote currency of the pair")


class PriceResult(BaseModel):
    """Outcome of a PriceQuery: a price, or an explicit absence with its cause."""
    model_config = ConfigDict(frozen=True)

    query: PriceQuery
    price: Optional[float] = Field(None, description="Price, or None when absent")
    error: Optional[ErrorCode] = Field(None, description="Failure kind when absent")
    detail: Optional[str] = Field(None, description="Failure reason when absent")

    @property
    def is_present(self) -> bool:
        return self.price is not None

    @classmethod
    def absent(cls, query: PriceQuery, error: ErrorCode, detail: str) -> "PriceResult":
        return cls(query=query, price=None, error=error, detail=detail)


# symbol -> exchange -> price (None marks absence)
AggregateReport = Dict[str, Dict[str, Optional[float]]]


class SpreadInfo(BaseModel):
    """Arbitrage spread for one symbol across the sources that returned a price."""
    symbol: str = Field(..., description="Trading symbol")
    buy_exchange: str = Field(..., description="Exchange quoting the lowest price")
    buy_price: float = Field(..., description="Lowest present price")
    sell_exchange: str = Field(..., description="Exchange quoting the highest price")
    sell_price: float = Field(..., description="Highest present price")
    spread_pct: float = Field(..., description="(max - min) / min * 100")
    sources: int = Field(..., description="Number of sources with a price")


class SpreadResponse(BaseModel):
    """Response model for spread lookups."""
    spreads: List[SpreadInfo] = Field(default_factory=list, description="Spreads sorted by size, largest first")
    prices: AggregateReport = Field(default_factory=dict, description="Underlying price report")


class ExchangeListResponse(BaseModel):
    """Response model for the exchange catalog."""
    exchanges: List[str] = Field(..., description="All registered exchanges")
    enabled: List[str] = Field(..., description="Exchanges queried when none are requested")


class HealthResponse(BaseModel):
    """Model for health check response."""
    status: Literal["healthy", "unhealthy"] = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=utcnow, description="Health check timestamp")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    exchanges: int = Field(..., description="Number of registered exchanges")


class ErrorResponse(BaseModel):
    """Model for error responses."""
    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Error code")
    timestamp: datetime = Field(default_factory=utcnow, description="Error timestamp")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
