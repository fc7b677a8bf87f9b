"""
Price aggregation service for Arbitrage Price Aggregator.
Fans one ticker lookup out per (symbol, exchange) pair and folds the outcomes
into a symbol -> exchange -> price report.
"""

import asyncio
import time
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import httpx

from ..adapters.base import (
    AdapterError, AggregatorError, BaseExchangeAdapter, SourceUnavailable, UnparseablePrice
)
from ..adapters.registry import ExchangeRegistry, exchange_registry
from ..api.schemas import AggregateReport, ErrorCode, PriceQuery, PriceResult, RequestDescriptor
from ..core.config import Settings, settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)

# Base delay between attempts; doubled on every retry
RETRY_BACKOFF = 0.25


class InvalidRequest(AggregatorError):
    """Raised when the request is malformed. Nothing is fetched."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


def _normalize_tokens(values: Optional[Iterable[str]]) -> List[str]:
    """
    Strip, drop blanks and drop exact repeats, keeping first occurrence.
    Spelling is preserved so report keys match what the caller asked for.
    """
    tokens: List[str] = []
    seen = set()
    for value in values or ():
        if value is None:
            continue
        token = str(value).strip()
        if not token or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


class PriceAggregatorService:
    """Service that queries every selected exchange for every requested symbol."""

    def __init__(
        self,
        registry: Optional[ExchangeRegistry] = None,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
    ):
        self.registry = registry if registry is not None else exchange_registry
        self.settings = config if config is not None else settings
        self.client = client
        self._owns_client = client is None
        self._connection_lock = asyncio.Lock()

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """Initialize the shared HTTP client."""
        async with self._connection_lock:
            if self.client is None:
                timeout = httpx.Timeout(self.settings.call_timeout, connect=self.settings.connect_timeout)
                limits = httpx.Limits(
                    max_keepalive_connections=self.settings.max_concurrency,
                    max_connections=self.settings.max_concurrency * 2
                )
                self.client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    headers=self._get_default_headers(),
                    follow_redirects=True
                )
                self._owns_client = True
                logger.debug("HTTP client created", extra={
                    "max_concurrency": self.settings.max_concurrency,
                    "call_timeout": self.settings.call_timeout
                })

    async def disconnect(self) -> None:
        """Close the HTTP client if this service created it."""
        async with self._connection_lock:
            if self.client is not None and self._owns_client:
                await self.client.aclose()
                self.client = None
                logger.debug("HTTP client closed")

    def _get_default_headers(self) -> dict:
        return {
            'User-Agent': self.settings.user_agent,
            'Accept': 'application/json',
        }

    def validate(
        self,
        symbols: Optional[Sequence[str]],
        exchanges: Optional[Sequence[str]],
        base_currency: Optional[str],
    ) -> Tuple[List[str], List[str], str]:
        """
        Normalize and validate request input.

        Returns:
            (symbols, exchanges, base_currency) ready for fan-out

        Raises:
            InvalidRequest: If a list is empty, the base currency is missing
                or a token is malformed
        """
        if isinstance(symbols, str) or isinstance(exchanges, str):
            raise InvalidRequest("symbols and exchanges must be sequences of strings")

        symbol_list = _normalize_tokens(symbols)
        if not symbol_list:
            raise InvalidRequest("At least one symbol is required", field="symbols")

        for symbol in symbol_list:
            if not symbol.isalnum():
                raise InvalidRequest(f"Invalid symbol format: {symbol}", field="symbols")

        exchange_list = _normalize_tokens(exchanges)
        if not exchange_list:
            raise InvalidRequest("At least one exchange is required", field="exchanges")

        base = (base_currency or "").strip().upper()
        if not base:
            raise InvalidRequest("Base currency is required", field="base_currency")
        if not base.isalnum():
            raise InvalidRequest(f"Invalid base currency: {base}", field="base_currency")

        return symbol_list, exchange_list, base

    @staticmethod
    def build_queries(symbols: Sequence[str], exchanges: Sequence[str], base_currency: str) -> List[PriceQuery]:
        """Cross product of symbols and exchanges, symbol-major, in input order."""
        return [
            PriceQuery(exchange=exchange, symbol=symbol, base_currency=base_currency)
            for symbol in symbols
            for exchange in exchanges
        ]

    @staticmethod
    def merge(results: Iterable[PriceResult]) -> AggregateReport:
        """Fold results into a symbol -> exchange -> price mapping, in iteration order."""
        report: AggregateReport = {}
        for result in results:
            report.setdefault(result.query.symbol, {})[result.query.exchange] = result.price
        return report

    async def run(
        self,
        symbols: Sequence[str],
        exchanges: Sequence[str],
        base_currency: str,
        timeout: Optional[float] = None,
    ) -> AggregateReport:
        """
        Fetch a price for every (symbol, exchange) pair.

        Args:
            symbols: Symbols to price, e.g. ["BTCUSDT", "ETHUSDT"]
            exchanges: Exchange names, e.g. ["Binance", "Coinbase"]
            base_currency: Quote currency, e.g. "USDT"
            timeout: Request deadline in seconds; defaults to settings.request_timeout

        Returns:
            Report with one entry per pair; None where no price was obtained

        Raises:
            InvalidRequest: If the input is malformed
        """
        results = await self.collect(symbols, exchanges, base_currency, timeout=timeout)
        return self.merge(results)

    async def collect(
        self,
        symbols: Sequence[str],
        exchanges: Sequence[str],
        base_currency: str,
        timeout: Optional[float] = None,
    ) -> List[PriceResult]:
        """Run the fan-out and return one PriceResult per query, in query order."""
        symbol_list, exchange_list, base = self.validate(symbols, exchanges, base_currency)

        deadline = self.settings.request_timeout if timeout is None else timeout
        if deadline <= 0:
            raise InvalidRequest("timeout must be positive", field="timeout")

        queries = self.build_queries(symbol_list, exchange_list, base)

        if self.client is None:
            await self.connect()

        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        tasks = [asyncio.create_task(self._fetch_price(query, semaphore)) for query in queries]

        try:
            done, pending = await asyncio.wait(tasks, timeout=deadline)
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.wait(pending, timeout=self.settings.cancel_grace)
                logger.warning("Request deadline exceeded", extra={
                    "deadline": deadline,
                    "outstanding": len(pending)
                })
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        results = []
        for query, task in zip(queries, tasks):
            if task in done:
                results.append(task.result())
            else:
                results.append(PriceResult.absent(
                    query, ErrorCode.SOURCE_UNAVAILABLE, f"Request deadline of {deadline}s exceeded"
                ))

        logger.info("Price fetch completed", extra={
            "symbols": symbol_list,
            "exchanges": exchange_list,
            "base_currency": base,
            "queries": len(queries),
            "prices_received": sum(1 for result in results if result.is_present),
            "duration_seconds": round(time.monotonic() - start_time, 4)
        })

        return results

    async def _fetch_price(self, query: PriceQuery, semaphore: asyncio.Semaphore) -> PriceResult:
        """Execute one query, converting every failure into an absent result."""
        async with semaphore:
            try:
                price = await asyncio.wait_for(self._execute(query), timeout=self.settings.call_timeout)
                return PriceResult(query=query, price=price)

            except AdapterError as e:
                logger.warning("Price query failed", extra={
                    "exchange": query.exchange,
                    "symbol": query.symbol,
                    "error_code": e.error_code.value,
                    "error": e.message
                })
                return PriceResult.absent(query, e.error_code, e.message)

            except asyncio.TimeoutError:
                logger.warning("Price query timed out", extra={
                    "exchange": query.exchange,
                    "symbol": query.symbol,
                    "timeout": self.settings.call_timeout
                })
                return PriceResult.absent(
                    query, ErrorCode.SOURCE_UNAVAILABLE,
                    f"Timed out after {self.settings.call_timeout}s"
                )

            except Exception as e:
                logger.error("Unexpected error during price query", extra={
                    "exchange": query.exchange,
                    "symbol": query.symbol,
                    "error": str(e)
                })
                return PriceResult.absent(query, ErrorCode.SOURCE_UNAVAILABLE, f"Unexpected error: {e}")

    async def _execute(self, query: PriceQuery) -> float:
        """Resolve, build, fetch and parse for a single query."""
        adapter = self.registry.resolve(query.exchange)
        descriptor = adapter.build_request(query.symbol, query.base_currency)
        body = await self._request(adapter, descriptor, query)

        try:
            price = adapter.parse_response(body, query.symbol, query.base_currency)
        except Exception as e:
            raise UnparseablePrice(
                f"Failed to parse {adapter.name} response: {e}", adapter.name, query.symbol
            ) from e

        if price is None:
            raise UnparseablePrice(f"No price in {adapter.name} response", adapter.name, query.symbol)

        return price

    async def _request(
        self,
        adapter: BaseExchangeAdapter,
        descriptor: RequestDescriptor,
        query: PriceQuery,
    ) -> Any:
        """
        Issue the GET with retries on transient failures and decode the JSON body.

        The per-call timeout is shared out between the remaining attempts, so
        a hung first attempt still leaves time for a retry.
        """
        attempts = self.settings.call_attempts
        budget_ends = time.monotonic() + self.settings.call_timeout
        last_error = f"No response from {adapter.name}"

        for attempt in range(attempts):
            remaining = budget_ends - time.monotonic()
            if remaining <= 0:
                break
            attempt_timeout = remaining / (attempts - attempt)

            logger.debug("Making request to exchange", extra={
                "exchange": adapter.name,
                "url": descriptor.url,
                "params": descriptor.params,
                "attempt": attempt + 1,
                "timeout": round(attempt_timeout, 3)
            })

            try:
                response = await asyncio.wait_for(
                    self.client.get(
                        descriptor.url,
                        params=descriptor.params,
                        headers=descriptor.headers,
                        timeout=httpx.Timeout(
                            attempt_timeout,
                            connect=min(self.settings.connect_timeout, attempt_timeout)
                        )
                    ),
                    timeout=attempt_timeout
                )

            except (httpx.TimeoutException, asyncio.TimeoutError):
                last_error = f"Timed out after {attempt_timeout:.3g}s waiting for {adapter.name}"

            except httpx.HTTPError as e:
                last_error = f"HTTP error for {adapter.name}: {e}"

            else:
                if response.status_code == 429:
                    raise SourceUnavailable(f"Rate limited by {adapter.name}", adapter.name, query.symbol)

                if response.status_code >= 500:
                    last_error = f"{adapter.name} returned HTTP {response.status_code}"

                elif not response.is_success:
                    raise SourceUnavailable(
                        f"{adapter.name} returned HTTP {response.status_code}", adapter.name, query.symbol
                    )

                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise UnparseablePrice(
                            f"Invalid JSON response from {adapter.name}: {e}", adapter.name, query.symbol
                        )

            if attempt < attempts - 1:
                logger.debug("Retrying request", extra={
                    "exchange": adapter.name,
                    "error": last_error,
                    "attempt": attempt + 1
                })
                await asyncio.sleep(min(RETRY_BACKOFF * 2 ** attempt, max(budget_ends - time.monotonic(), 0)))

        raise SourceUnavailable(last_error, adapter.name, query.symbol)


# Global aggregator service instance
aggregator_service = PriceAggregatorService()
