"""Application configuration loaded from environment variables.

Nested values use ``__`` as delimiter, for example::

    MANAGER__PRIMARY_PROVIDER=yahoo_finance
    MANAGER__FALLBACK_PROVIDERS='["alpha_vantage"]'
    ALPHA_VANTAGE__API_KEY=demo
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ManagerConfig(BaseModel):
    """Provider manager settings.

    Attributes:
        primary_provider: Provider tried first for every operation
        fallback_providers: Providers tried next, ordered by their priority
        enable_fallback: Try fallbacks and skip unhealthy providers
        enable_caching: Memoize successful responses
        cache_ttl_seconds: Lifetime of a cached response
        cache_max_size: Maximum number of cached responses
        health_check_interval_ms: Cadence of background health checks (0 disables)
        max_retries: Default transport retry count for providers built by the factory
        race_width: Number of candidates queried concurrently (1 = sequential)
        request_timeout_seconds: Optional deadline across a whole fallback chain
    """

    primary_provider: str
    fallback_providers: list[str] = Field(default_factory=list)
    enable_fallback: bool = True
    enable_caching: bool = True
    cache_ttl_seconds: float = Field(default=300, ge=0)
    cache_max_size: int = Field(default=1024, gt=0)
    health_check_interval_ms: int = Field(default=60_000, ge=0)
    max_retries: int = Field(default=3, ge=0)
    race_width: int = Field(default=1, ge=1)
    request_timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("primary_provider")
    @classmethod
    def primary_provider_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Primary provider must be specified")
        return v


class VendorConfig(BaseModel):
    """Settings for one vendor adapter."""

    enabled: bool = True
    api_key: str | None = None
    base_url: str | None = None
    timeout: float = Field(default=10.0, ge=0)
    retries: int | None = Field(default=None, ge=0)
    priority: int = Field(default=0, ge=0)
    requests_per_minute: int | None = Field(default=None, gt=0)
    requests_per_day: int | None = Field(default=None, gt=0)


# Environment overrides replace a nested model wholesale, so defaults that
# differ per section live on the section's own class.
class DefaultManagerConfig(ManagerConfig):
    primary_provider: str = "yahoo_finance"
    fallback_providers: list[str] = Field(default_factory=lambda: ["alpha_vantage"])


class YahooFinanceConfig(VendorConfig):
    priority: int = Field(default=0, ge=0)


class AlphaVantageConfig(VendorConfig):
    priority: int = Field(default=1, ge=0)
    requests_per_minute: int | None = Field(default=5, gt=0)
    requests_per_day: int | None = Field(default=500, gt=0)


class MockConfig(VendorConfig):
    enabled: bool = False
    priority: int = Field(default=99, ge=0)


class Config(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    manager: DefaultManagerConfig = Field(default_factory=DefaultManagerConfig)
    yahoo_finance: YahooFinanceConfig = Field(default_factory=YahooFinanceConfig)
    alpha_vantage: AlphaVantageConfig = Field(default_factory=AlphaVantageConfig)
    mock: MockConfig = Field(default_factory=MockConfig)
