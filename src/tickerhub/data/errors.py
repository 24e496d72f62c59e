"""Typed failures raised by providers and the provider manager."""

from datetime import datetime
from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_SYMBOL = "INVALID_SYMBOL"
    NOT_FOUND = "NOT_FOUND"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    CAPABILITY_NOT_SUPPORTED = "CAPABILITY_NOT_SUPPORTED"
    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"
    INVALID_CONFIG = "INVALID_CONFIG"
    PROVIDER_ERROR = "PROVIDER_ERROR"


class FinancialDataError(Exception):
    """Base class for market data failures.

    Attributes:
        code: Machine-readable error code
        provider: Name of the provider that raised the error
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.PROVIDER_ERROR,
        provider: str = "unknown",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.provider = provider
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.provider}] {self.message}"


class RateLimitError(FinancialDataError):
    """Vendor throttled the request."""

    def __init__(
        self,
        provider: str,
        message: str | None = None,
        reset_at: datetime | None = None,
        cause: BaseException | None = None,
    ) -> None:
        if message is None:
            message = "Rate limit exceeded"
            if reset_at is not None:
                message += f", resets at {reset_at.isoformat()}"
        super().__init__(message, ErrorCode.RATE_LIMIT_EXCEEDED, provider, cause)
        self.reset_at = reset_at


class NotFoundError(FinancialDataError):
    """Vendor reports that the requested resource does not exist."""

    def __init__(
        self,
        provider: str,
        message: str = "Resource not found",
        cause: BaseException | None = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ) -> None:
        super().__init__(message, code, provider, cause)


class InvalidSymbolError(NotFoundError):
    """Vendor confirmed that a symbol (or query) does not resolve."""

    def __init__(self, symbol: str, provider: str, cause: BaseException | None = None) -> None:
        super().__init__(
            provider,
            f"Invalid or unknown symbol: {symbol}",
            cause,
            code=ErrorCode.INVALID_SYMBOL,
        )
        self.symbol = symbol


class AuthenticationError(FinancialDataError):
    """Credentials were rejected or missing."""

    def __init__(
        self,
        provider: str,
        message: str = "Authentication failed",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.AUTHENTICATION_FAILED, provider, cause)


class ProviderUnavailableError(FinancialDataError):
    """Connection failure or server-side (5xx) error."""

    def __init__(
        self,
        provider: str,
        message: str = "Provider unavailable",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.PROVIDER_UNAVAILABLE, provider, cause)


class CapabilityNotSupportedError(FinancialDataError):
    """Operation invoked on a provider that does not declare it."""

    def __init__(self, provider: str, operation: str) -> None:
        super().__init__(
            f"{provider} does not support {operation}",
            ErrorCode.CAPABILITY_NOT_SUPPORTED,
            provider,
        )
        self.operation = operation


class AllProvidersFailedError(FinancialDataError):
    """No provider in the fallback chain could serve the request."""

    def __init__(self, operation: str, message: str | None = None) -> None:
        super().__init__(
            message or f"All providers failed for {operation}",
            ErrorCode.ALL_PROVIDERS_FAILED,
            "ProviderManager",
        )
        self.operation = operation


class ProviderConfigError(FinancialDataError, ValueError):
    """Provider configuration failed validation."""

    def __init__(self, message: str, provider: str = "unknown") -> None:
        super().__init__(message, ErrorCode.INVALID_CONFIG, provider)
