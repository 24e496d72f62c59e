"""Abstract financial data provider interface and shared HTTP infrastructure."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from email.utils import parsedate_to_datetime
from typing import Any, TypeVar

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..utils.logging import get_logger
from .errors import (
    AuthenticationError,
    CapabilityNotSupportedError,
    ErrorCode,
    FinancialDataError,
    InvalidSymbolError,
    NotFoundError,
    ProviderConfigError,
    ProviderUnavailableError,
    RateLimitError,
)
from .models import (
    CompanyProfile,
    CompanyProfileRequest,
    CorporateActionsRequest,
    Dividend,
    Earnings,
    EarningsRequest,
    HistoricalDataRequest,
    HistoricalPrice,
    NewsItem,
    NewsRequest,
    Operation,
    ProviderCapabilities,
    ProviderConfig,
    ProviderResponse,
    Quote,
    QuoteRequest,
    RateLimitInfo,
    SearchRequest,
    SearchResult,
    Split,
)

logger = get_logger(__name__, component="FinancialDataProvider")

T = TypeVar("T")

# Failures that never produced a classifiable response; only these are retried.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
)

PERIOD_DAYS = {
    "1d": 1,
    "5d": 5,
    "1mo": 30,
    "3mo": 90,
    "6mo": 180,
    "1y": 365,
    "2y": 2 * 365,
    "5y": 5 * 365,
    "10y": 10 * 365,
}


def validate_provider_config(config: ProviderConfig) -> None:
    """Validate a provider configuration.

    Raises:
        ProviderConfigError: If any field is missing or out of range
    """
    if not config.name or not config.name.strip():
        raise ProviderConfigError("Provider name is required")

    rate_limit = config.rate_limit
    if rate_limit is not None:
        if rate_limit.requests_per_minute is not None and rate_limit.requests_per_minute <= 0:
            raise ProviderConfigError(
                "Rate limit requests_per_minute must be positive", provider=config.name
            )
        if rate_limit.requests_per_day is not None and rate_limit.requests_per_day <= 0:
            raise ProviderConfigError(
                "Rate limit requests_per_day must be positive", provider=config.name
            )

    for field_name in ("timeout", "retries", "priority"):
        value = getattr(config, field_name)
        if value is not None and value < 0:
            raise ProviderConfigError(f"{field_name} must be non-negative", provider=config.name)


def _lower_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    return {k.lower(): v for k, v in (headers or {}).items()}


def parse_reset_time(headers: Mapping[str, str] | None) -> datetime | None:
    """Parse a quota reset time from ``Retry-After`` or ``X-RateLimit-Reset``."""
    lowered = _lower_headers(headers)
    now = datetime.now(timezone.utc)

    retry_after = lowered.get("retry-after")
    if retry_after:
        if retry_after.strip().isdigit():
            return now + timedelta(seconds=int(retry_after))
        try:
            return parsedate_to_datetime(retry_after)
        except (TypeError, ValueError):
            pass

    reset = lowered.get("x-ratelimit-reset")
    if reset:
        try:
            value = float(reset)
        except ValueError:
            return None
        # Small values are a delay in seconds, large ones an epoch timestamp
        if value < 1_000_000_000:
            return now + timedelta(seconds=value)
        return datetime.fromtimestamp(value, tz=timezone.utc)

    return None


def parse_rate_limit_headers(headers: Mapping[str, str] | None) -> RateLimitInfo | None:
    """Extract quota information from ``X-RateLimit-*`` headers, if present."""
    lowered = _lower_headers(headers)

    def to_int(key: str) -> int | None:
        try:
            return int(lowered[key])
        except (KeyError, ValueError):
            return None

    remaining = to_int("x-ratelimit-remaining")
    limit = to_int("x-ratelimit-limit")
    if remaining is None and limit is None:
        return None
    return RateLimitInfo(remaining=remaining, limit=limit, reset_at=parse_reset_time(headers))


def classify_http_error(
    status: int, headers: Mapping[str, str] | None, body: str, provider: str
) -> FinancialDataError:
    """Map an HTTP error response to a typed error."""
    detail = body.strip()[:200]
    if status == 429:
        return RateLimitError(provider, reset_at=parse_reset_time(headers))
    if status in (401, 403):
        return AuthenticationError(provider, f"Authentication failed (HTTP {status})")
    if status == 404:
        return NotFoundError(provider, f"Resource not found (HTTP 404) {detail}".strip())
    if status >= 500:
        return ProviderUnavailableError(provider, f"Server error (HTTP {status})")
    return FinancialDataError(f"HTTP {status}: {detail}", ErrorCode.PROVIDER_ERROR, provider)


def filter_by_date_range(
    items: list[T],
    key: Callable[[T], date],
    start_date: date | None,
    end_date: date | None,
) -> list[T]:
    """Keep items whose date falls inside [start_date, end_date]."""
    return [
        item
        for item in items
        if (start_date is None or key(item) >= start_date)
        and (end_date is None or key(item) <= end_date)
    ]


def period_start(period: str, today: date | None = None) -> date | None:
    """First date covered by a TimePeriod ('max' has no lower bound)."""
    days = PERIOD_DAYS.get(period)
    if days is None:
        return None
    return (today or date.today()) - timedelta(days=days)


def match_score(query: str, symbol: str, name: str) -> float:
    """Simple relevance score: exact symbol 1.0, partial symbol 0.8, name 0.6."""
    q = query.lower()
    if symbol.lower() == q:
        return 1.0
    if q in symbol.lower():
        return 0.8
    if q in name.lower():
        return 0.6
    return 0.0


class FinancialDataProvider(ABC):
    """Abstract base class for financial data providers.

    Subclasses implement the three required operations and any optional ones
    they declare in ``capabilities``; transport, retries, throttling and error
    classification are shared here so adapters only map vendor payloads.
    """

    capabilities: ProviderCapabilities = ProviderCapabilities()
    health_check_symbol: str = "AAPL"

    def __init__(self, config: ProviderConfig, session: aiohttp.ClientSession | None = None) -> None:
        """Initialize the provider.

        Args:
            config: Provider configuration
            session: Optional shared aiohttp session; a short-lived session is
                opened per request when omitted
        """
        self.config = config
        self._session = session
        self._last_rate_limit: RateLimitInfo | None = None
        self._last_request_time = 0.0

        rpm = config.rate_limit.requests_per_minute if config.rate_limit else None
        self.rate_limit_delay = 60.0 / rpm if rpm else 0.0

    @property
    def name(self) -> str:
        return self.config.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.config.priority})"

    # Capability gating

    def supports(self, operation: Operation) -> bool:
        """Check whether this provider implements ``operation``."""
        return self.capabilities.supports(operation)

    def require_capability(self, operation: Operation) -> None:
        """Fail fast, before any I/O, when ``operation`` is not supported.

        Raises:
            CapabilityNotSupportedError: If the capability flag is false
        """
        if not self.supports(operation):
            raise CapabilityNotSupportedError(self.name, operation.value)

    def handler_for(self, operation: Operation) -> Callable[[Any], Awaitable[ProviderResponse[Any]]]:
        """Return the bound coroutine function implementing ``operation``."""
        handlers: dict[Operation, Callable[[Any], Awaitable[ProviderResponse[Any]]]] = {
            Operation.QUOTES: self.get_quotes,
            Operation.HISTORICAL_DATA: self.get_historical_data,
            Operation.COMPANY_PROFILE: self.get_company_profile,
            Operation.DIVIDENDS: self.get_dividends,
            Operation.SPLITS: self.get_splits,
            Operation.EARNINGS: self.get_earnings,
            Operation.NEWS: self.get_news,
            Operation.SEARCH: self.search,
        }
        return handlers[operation]

    async def invoke(self, operation: Operation, request: Any) -> ProviderResponse[Any]:
        """Run ``operation`` after the capability guard."""
        self.require_capability(operation)
        return await self.handler_for(operation)(request)

    # Required operations

    @abstractmethod
    async def get_quotes(self, request: QuoteRequest) -> ProviderResponse[list[Quote]]:
        """Get current quotes for one or more symbols.

        Raises:
            InvalidSymbolError: If no symbol resolves
            FinancialDataError: On any other vendor failure
        """

    @abstractmethod
    async def get_historical_data(
        self, request: HistoricalDataRequest
    ) -> ProviderResponse[list[HistoricalPrice]]:
        """Get daily prices in chronological order."""

    @abstractmethod
    async def get_company_profile(
        self, request: CompanyProfileRequest
    ) -> ProviderResponse[CompanyProfile]:
        """Get descriptive company information."""

    # Optional operations, gated by capability flags

    async def get_dividends(
        self, request: CorporateActionsRequest
    ) -> ProviderResponse[list[Dividend]]:
        self.require_capability(Operation.DIVIDENDS)
        raise NotImplementedError(f"{self.name} declares dividends but does not implement them")

    async def get_splits(self, request: CorporateActionsRequest) -> ProviderResponse[list[Split]]:
        self.require_capability(Operation.SPLITS)
        raise NotImplementedError(f"{self.name} declares splits but does not implement them")

    async def get_earnings(self, request: EarningsRequest) -> ProviderResponse[list[Earnings]]:
        self.require_capability(Operation.EARNINGS)
        raise NotImplementedError(f"{self.name} declares earnings but does not implement them")

    async def get_news(self, request: NewsRequest) -> ProviderResponse[list[NewsItem]]:
        self.require_capability(Operation.NEWS)
        raise NotImplementedError(f"{self.name} declares news but does not implement it")

    async def search(self, request: SearchRequest) -> ProviderResponse[list[SearchResult]]:
        self.require_capability(Operation.SEARCH)
        raise NotImplementedError(f"{self.name} declares search but does not implement it")

    # Health and quota

    async def is_healthy(self) -> bool:
        """Check the provider with one quote lookup.

        A rate-limit response still counts as healthy: throttling is not an outage.
        """
        try:
            await self.get_quotes(QuoteRequest(symbols=[self.health_check_symbol]))
        except RateLimitError:
            logger.debug("health_check_rate_limited", provider=self.name)
            return True
        except FinancialDataError as e:
            logger.warning("health_check_failed", provider=self.name, code=e.code.value, error=e.message)
            return False
        return True

    async def get_rate_limit(self) -> RateLimitInfo | None:
        """Quota information from the last response, or None when unknown."""
        return self._last_rate_limit

    # Shared infrastructure

    def create_response(self, data: T) -> ProviderResponse[T]:
        """Wrap ``data`` in a response envelope sourced from this provider."""
        return ProviderResponse(
            data=data,
            source=self.name,
            timestamp=datetime.now(timezone.utc),
            cached=False,
            rate_limit=self._last_rate_limit,
        )

    async def _throttle(self) -> None:
        """Space requests according to the configured requests_per_minute."""
        if not self.rate_limit_delay:
            return
        loop = asyncio.get_running_loop()
        time_since_last = loop.time() - self._last_request_time
        if time_since_last < self.rate_limit_delay:
            await asyncio.sleep(self.rate_limit_delay - time_since_last)
        self._last_request_time = loop.time()

    async def with_retries(self, call: Callable[[], Awaitable[T]], context: str) -> T:
        """Run ``call`` with exponential backoff on transport failures.

        Typed errors raised by ``call`` propagate immediately. Transport
        failures are retried up to ``config.retries`` extra times and then
        surface as ProviderUnavailableError.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.retries + 1),
            wait=wait_exponential(multiplier=self.config.retry_delay, max=10),
            retry=retry_if_exception_type(TRANSPORT_ERRORS),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return await retrying(call)
        except TRANSPORT_ERRORS as e:
            raise ProviderUnavailableError(
                self.name, f"{context} failed: {type(e).__name__}: {e}", cause=e
            ) from e

    def _log_retry(self, retry_state: Any) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "provider_request_retry",
            provider=self.name,
            attempt=retry_state.attempt_number,
            error=str(outcome.exception()) if outcome else None,
        )

    async def make_http_request(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """GET ``url`` and return the decoded JSON body.

        Raises:
            RateLimitError: HTTP 429
            AuthenticationError: HTTP 401/403
            NotFoundError: HTTP 404
            ProviderUnavailableError: HTTP 5xx or exhausted transport retries
            FinancialDataError: Any other failure
        """

        async def send() -> Any:
            await self._throttle()
            if self._session is not None:
                return await self._fetch(self._session, url, params, headers)
            async with aiohttp.ClientSession() as session:
                return await self._fetch(session, url, params, headers)

        return await self.with_retries(send, context=f"GET {url}")

    async def _fetch(
        self,
        session: aiohttp.ClientSession,
        url: str,
        params: Mapping[str, Any] | None,
        headers: Mapping[str, str] | None,
    ) -> Any:
        logger.debug("provider_http_request", provider=self.name, url=url)

        timeout = aiohttp.ClientTimeout(total=self.config.timeout or None)
        async with session.get(url, params=params, headers=headers, timeout=timeout) as response:
            rate_limit = parse_rate_limit_headers(response.headers)
            if rate_limit is not None:
                self._last_rate_limit = rate_limit

            if response.status >= 400:
                body = await response.text()
                raise classify_http_error(response.status, response.headers, body, self.name)

            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise FinancialDataError(
                    f"Invalid JSON response from {url}", ErrorCode.PROVIDER_ERROR, self.name, e
                ) from e


class MockDataProvider(FinancialDataProvider):
    """Mock data provider for development and offline use.

    Returns fake but realistic data for every operation and never touches
    the network.
    """

    capabilities = ProviderCapabilities(
        dividends=True,
        splits=True,
        earnings=True,
        news=True,
        search=True,
    )

    def __init__(self, config: ProviderConfig | None = None) -> None:
        """Initialize mock provider with sample data."""
        super().__init__(config or ProviderConfig(name="mock", priority=99))
        self._mock_price = Decimal("150.00")

    async def get_quotes(self, request: QuoteRequest) -> ProviderResponse[list[Quote]]:
        """Return one mock quote per requested symbol."""
        quotes = [
            Quote(
                symbol=symbol,
                price=self._mock_price,
                timestamp=datetime.now(timezone.utc),
                open=Decimal("148.00"),
                day_high=Decimal("151.00"),
                day_low=Decimal("147.50"),
                previous_close=Decimal("149.00"),
                volume=1_000_000,
                exchange="NASDAQ",
                currency="USD",
            )
            for symbol in request.symbols
        ]
        return self.create_response(quotes)

    async def get_historical_data(
        self, request: HistoricalDataRequest
    ) -> ProviderResponse[list[HistoricalPrice]]:
        """Return five mock daily bars ending at end_date (or today)."""
        end = request.end_date or date.today()
        data = []
        for i in range(5):
            price = self._mock_price + Decimal(i)
            data.append(
                HistoricalPrice(
                    date=end - timedelta(days=4 - i),
                    open=price - Decimal("1"),
                    high=price + Decimal("2"),
                    low=price - Decimal("2"),
                    close=price,
                    volume=1_000_000 + i * 10_000,
                    adjusted_close=price,
                )
            )
        data = filter_by_date_range(data, lambda p: p.date, request.start_date, request.end_date)
        return self.create_response(data)

    async def get_company_profile(
        self, request: CompanyProfileRequest
    ) -> ProviderResponse[CompanyProfile]:
        return self.create_response(
            CompanyProfile(
                symbol=request.symbol,
                name=f"{request.symbol} Inc.",
                exchange="NASDAQ",
                sector="Technology",
                industry="Software",
                country="USA",
                currency="USD",
                market_cap=1_000_000_000_000,  # $1T
                employees=100_000,
            )
        )

    async def get_dividends(
        self, request: CorporateActionsRequest
    ) -> ProviderResponse[list[Dividend]]:
        ex_date = date.today() - timedelta(days=30)
        dividends = [Dividend(symbol=request.symbol, ex_date=ex_date, amount=Decimal("0.24"), currency="USD")]
        dividends = filter_by_date_range(dividends, lambda d: d.ex_date, request.start_date, request.end_date)
        return self.create_response(dividends)

    async def get_splits(self, request: CorporateActionsRequest) -> ProviderResponse[list[Split]]:
        splits = [Split(symbol=request.symbol, date=date(2020, 8, 31), ratio=Decimal("4"))]
        splits = filter_by_date_range(splits, lambda s: s.date, request.start_date, request.end_date)
        return self.create_response(splits)

    async def get_earnings(self, request: EarningsRequest) -> ProviderResponse[list[Earnings]]:
        earnings = [
            Earnings(
                symbol=request.symbol,
                fiscal_date_ending=date.today() - timedelta(days=45),
                reported_eps=Decimal("1.52"),
                estimated_eps=Decimal("1.43"),
                surprise=Decimal("0.09"),
                surprise_percent=6.29,
            )
        ]
        return self.create_response(earnings[: request.limit] if request.limit else earnings)

    async def get_news(self, request: NewsRequest) -> ProviderResponse[list[NewsItem]]:
        symbols = tuple(request.symbols)
        topic = symbols[0] if symbols else "Market"
        news = [
            NewsItem(
                id=f"mock_{topic}_{i}",
                headline=f"{topic} headline {i + 1}",
                url=f"https://example.com/news/{topic.lower()}/{i}",
                published_at=datetime.now(timezone.utc) - timedelta(hours=i),
                source="Mock Wire",
                symbols=symbols,
            )
            for i in range(request.limit)
        ]
        return self.create_response(news)

    async def search(self, request: SearchRequest) -> ProviderResponse[list[SearchResult]]:
        symbol = request.query.upper()
        results = [
            SearchResult(
                symbol=symbol,
                name=f"{symbol} Inc.",
                exchange="NASDAQ",
                asset_type="stock",
                currency="USD",
                country="USA",
                match_score=match_score(request.query, symbol, f"{symbol} Inc."),
            )
        ]
        return self.create_response(results[: request.limit] if request.limit else results)
