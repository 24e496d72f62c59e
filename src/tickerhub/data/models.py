"""Data models for normalized market data, requests and provider metadata."""

from collections.abc import Sequence
from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, Literal, TypeVar

T = TypeVar("T")

TimePeriod = Literal["1d", "5d", "1mo", "3mo", "6mo", "1y", "2y", "5y", "10y", "max"]
AssetType = Literal["stock", "etf", "mutual_fund", "crypto", "forex", "index", "commodity"]

TIME_PERIODS: tuple[str, ...] = ("1d", "5d", "1mo", "3mo", "6mo", "1y", "2y", "5y", "10y", "max")


def normalize_symbol(symbol: str) -> str:
    """Normalize a ticker symbol (trim whitespace, uppercase)."""
    return symbol.strip().upper()


class Operation(str, Enum):
    """Provider operations that can be routed through the manager."""

    QUOTES = "get_quotes"
    HISTORICAL_DATA = "get_historical_data"
    COMPANY_PROFILE = "get_company_profile"
    DIVIDENDS = "get_dividends"
    SPLITS = "get_splits"
    EARNINGS = "get_earnings"
    NEWS = "get_news"
    SEARCH = "search"

    @property
    def capability(self) -> str:
        """Name of the ProviderCapabilities flag gating this operation."""
        return _OPERATION_CAPABILITIES[self]


_OPERATION_CAPABILITIES = {
    Operation.QUOTES: "quotes",
    Operation.HISTORICAL_DATA: "historical_data",
    Operation.COMPANY_PROFILE: "company_profile",
    Operation.DIVIDENDS: "dividends",
    Operation.SPLITS: "splits",
    Operation.EARNINGS: "earnings",
    Operation.NEWS: "news",
    Operation.SEARCH: "search",
}


@dataclass(frozen=True)
class Quote:
    """Real-time (or delayed) quote for a symbol."""

    symbol: str
    price: Decimal
    timestamp: datetime
    open: Decimal | None = None
    day_high: Decimal | None = None
    day_low: Decimal | None = None
    previous_close: Decimal | None = None
    change: Decimal | None = None
    change_percent: float | None = None
    volume: int | None = None
    market_cap: int | None = None
    exchange: str | None = None
    currency: str | None = None

    def __post_init__(self) -> None:
        """Calculate derived fields if not provided."""
        if self.previous_close and self.change is None:
            object.__setattr__(self, "change", self.price - self.previous_close)
        if self.previous_close and self.change_percent is None:
            object.__setattr__(
                self,
                "change_percent",
                float((self.price - self.previous_close) / self.previous_close * 100),
            )


@dataclass(frozen=True)
class HistoricalPrice:
    """Daily OHLCV bar."""

    date: date
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int
    adjusted_close: Decimal | None = None

    @property
    def price_range(self) -> Decimal:
        """Calculate price range for the period."""
        return self.high - self.low

    @property
    def body_size(self) -> Decimal:
        """Calculate candle body size."""
        return abs(self.close - self.open)


@dataclass(frozen=True)
class CompanyProfile:
    """Company descriptive information."""

    symbol: str
    name: str
    description: str | None = None
    sector: str | None = None
    industry: str | None = None
    exchange: str | None = None
    country: str | None = None
    currency: str | None = None
    market_cap: int | None = None
    employees: int | None = None
    headquarters: str | None = None
    website: str | None = None


@dataclass(frozen=True)
class Dividend:
    """Cash dividend event."""

    symbol: str
    ex_date: date
    amount: Decimal
    payment_date: date | None = None
    record_date: date | None = None
    declaration_date: date | None = None
    currency: str | None = None


@dataclass(frozen=True)
class Split:
    """Stock split event. ``ratio`` is new shares per old share (4 for a 4:1 split)."""

    symbol: str
    date: date
    ratio: Decimal

    @property
    def is_reverse(self) -> bool:
        return self.ratio < 1


@dataclass(frozen=True)
class Earnings:
    """Quarterly earnings report."""

    symbol: str
    fiscal_date_ending: date
    reported_date: date | None = None
    reported_eps: Decimal | None = None
    estimated_eps: Decimal | None = None
    surprise: Decimal | None = None
    surprise_percent: float | None = None


@dataclass(frozen=True)
class NewsItem:
    """News article."""

    id: str
    headline: str
    url: str
    published_at: datetime
    source: str
    summary: str | None = None
    symbols: tuple[str, ...] = ()


@dataclass(frozen=True)
class SearchResult:
    """Symbol search match."""

    symbol: str
    name: str
    exchange: str | None = None
    asset_type: AssetType = "stock"
    currency: str | None = None
    country: str | None = None
    match_score: float = 0.0


@dataclass(frozen=True)
class ProviderCapabilities:
    """Operations and markets a provider supports.

    The three required operations default to True; everything else must be
    declared explicitly by the adapter.
    """

    quotes: bool = True
    historical_data: bool = True
    company_profile: bool = True
    dividends: bool = False
    splits: bool = False
    earnings: bool = False
    news: bool = False
    search: bool = False
    realtime: bool = False
    extended_hours: bool = False
    international_markets: bool = False
    crypto_currency: bool = False
    forex: bool = False
    commodities: bool = False

    def supports(self, operation: Operation) -> bool:
        """Check whether the provider implements an operation."""
        return bool(getattr(self, operation.capability))

    def as_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class RateLimit:
    """Vendor quota descriptor."""

    requests_per_minute: int | None = None
    requests_per_day: int | None = None


@dataclass(frozen=True)
class RateLimitInfo:
    """Remaining quota as last reported by a vendor."""

    remaining: int | None = None
    limit: int | None = None
    reset_at: datetime | None = None


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for a single provider.

    Attributes:
        name: Registry name of the provider
        api_key: Vendor API key, if the vendor needs one
        base_url: Override for the vendor endpoint
        rate_limit: Vendor quota, used for client-side throttling
        timeout: Per-request timeout in seconds
        retries: Extra attempts for transport-level failures
        priority: Fallback priority (lower is preferred)
        retry_delay: Backoff multiplier in seconds
    """

    name: str
    api_key: str | None = None
    base_url: str | None = None
    rate_limit: RateLimit | None = None
    timeout: float = 10.0
    retries: int = 3
    priority: int = 0
    retry_delay: float = 1.0


@dataclass
class ProviderHealth:
    """Current believed availability of a provider."""

    healthy: bool
    last_check: datetime
    last_error: str | None = None


@dataclass(frozen=True)
class ProviderResponse(Generic[T]):
    """Envelope returned by every provider operation."""

    data: T
    source: str
    timestamp: datetime
    cached: bool = False
    rate_limit: RateLimitInfo | None = None


@dataclass(frozen=True)
class QuoteRequest:
    """Request for current quotes."""

    symbols: Sequence[str]

    def __post_init__(self) -> None:
        symbols = [self.symbols] if isinstance(self.symbols, str) else self.symbols
        normalized = tuple(normalize_symbol(s) for s in symbols if s and s.strip())
        if not normalized:
            raise ValueError("At least one symbol is required")
        object.__setattr__(self, "symbols", normalized)


@dataclass(frozen=True)
class HistoricalDataRequest:
    """Request for daily historical prices."""

    symbol: str
    period: TimePeriod = "1y"
    start_date: date | None = None
    end_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", _required_symbol(self.symbol))
        if self.period not in TIME_PERIODS:
            raise ValueError(f"Unsupported period: {self.period}")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")


@dataclass(frozen=True)
class CompanyProfileRequest:
    symbol: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", _required_symbol(self.symbol))


@dataclass(frozen=True)
class CorporateActionsRequest:
    """Request for dividends or splits, optionally bounded by date."""

    symbol: str
    start_date: date | None = None
    end_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", _required_symbol(self.symbol))


@dataclass(frozen=True)
class EarningsRequest:
    symbol: str
    limit: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", _required_symbol(self.symbol))
        _check_limit(self.limit)


@dataclass(frozen=True)
class NewsRequest:
    """Request for news; without symbols it asks for general market news."""

    symbols: Sequence[str] = ()
    limit: int = 10

    def __post_init__(self) -> None:
        symbols = self.symbols or ()
        if isinstance(symbols, str):
            symbols = (symbols,)
        object.__setattr__(
            self, "symbols", tuple(normalize_symbol(s) for s in symbols if s and s.strip())
        )
        if self.limit <= 0:
            raise ValueError("limit must be positive")


@dataclass(frozen=True)
class SearchRequest:
    query: str
    limit: int | None = None

    def __post_init__(self) -> None:
        query = self.query.strip()
        if not query:
            raise ValueError("Search query is required")
        object.__setattr__(self, "query", query)
        _check_limit(self.limit)


def _check_limit(limit: int | None) -> None:
    if limit is not None and limit <= 0:
        raise ValueError("limit must be positive")


def _required_symbol(symbol: str) -> str:
    normalized = normalize_symbol(symbol or "")
    if not normalized:
        raise ValueError("Symbol is required")
    return normalized
