"""Data layer: provider contract, vendor adapters and the provider manager."""

from .cache import ResponseCache, make_cache_key
from .errors import (
    AllProvidersFailedError,
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
from .manager import ProviderManager
from .models import (
    CompanyProfile,
    Dividend,
    Earnings,
    HistoricalPrice,
    NewsItem,
    Operation,
    ProviderCapabilities,
    ProviderConfig,
    ProviderHealth,
    ProviderResponse,
    Quote,
    RateLimit,
    RateLimitInfo,
    SearchResult,
    Split,
)
from .provider import FinancialDataProvider, MockDataProvider
from .providers import AlphaVantageProvider, YahooFinanceProvider

__all__ = [
    "AllProvidersFailedError",
    "AlphaVantageProvider",
    "AuthenticationError",
    "CapabilityNotSupportedError",
    "CompanyProfile",
    "Dividend",
    "Earnings",
    "ErrorCode",
    "FinancialDataError",
    "FinancialDataProvider",
    "HistoricalPrice",
    "InvalidSymbolError",
    "MockDataProvider",
    "NewsItem",
    "NotFoundError",
    "Operation",
    "ProviderCapabilities",
    "ProviderConfig",
    "ProviderConfigError",
    "ProviderHealth",
    "ProviderManager",
    "ProviderResponse",
    "ProviderUnavailableError",
    "Quote",
    "RateLimit",
    "RateLimitError",
    "RateLimitInfo",
    "ResponseCache",
    "SearchResult",
    "Split",
    "YahooFinanceProvider",
    "make_cache_key",
]
