"""Build providers and a provider manager from application configuration."""

from collections.abc import Iterable

from .config import Config, ManagerConfig, VendorConfig
from .data.manager import ProviderManager
from .data.models import ProviderConfig, RateLimit
from .data.provider import FinancialDataProvider, MockDataProvider
from .data.providers import AlphaVantageProvider, YahooFinanceProvider
from .utils.logging import get_logger

logger = get_logger(__name__, component="ProviderFactory")


def to_provider_config(name: str, vendor: VendorConfig, default_retries: int) -> ProviderConfig:
    """Convert a vendor settings section into a ProviderConfig.

    Args:
        name: Provider name (the key used in primary/fallback lists)
        vendor: Vendor settings
        default_retries: Retry count used when the vendor does not set one

    Returns:
        ProviderConfig for the adapter
    """
    rate_limit = None
    if vendor.requests_per_minute or vendor.requests_per_day:
        rate_limit = RateLimit(
            requests_per_minute=vendor.requests_per_minute,
            requests_per_day=vendor.requests_per_day,
        )

    return ProviderConfig(
        name=name,
        api_key=vendor.api_key,
        base_url=vendor.base_url,
        rate_limit=rate_limit,
        timeout=vendor.timeout,
        retries=vendor.retries if vendor.retries is not None else default_retries,
        priority=vendor.priority,
    )


def build_providers(config: Config) -> list[FinancialDataProvider]:
    """Instantiate every enabled vendor adapter.

    Alpha Vantage is skipped (with a warning) when no API key is configured.
    """
    retries = config.manager.max_retries
    providers: list[FinancialDataProvider] = []

    if config.yahoo_finance.enabled:
        providers.append(
            YahooFinanceProvider(to_provider_config("yahoo_finance", config.yahoo_finance, retries))
        )

    if config.alpha_vantage.enabled:
        if config.alpha_vantage.api_key:
            providers.append(
                AlphaVantageProvider(to_provider_config("alpha_vantage", config.alpha_vantage, retries))
            )
        else:
            logger.warning("provider_not_configured", provider="alpha_vantage", reason="missing_api_key")

    if config.mock.enabled:
        providers.append(MockDataProvider(to_provider_config("mock", config.mock, retries)))

    logger.info("providers_built", providers=[p.name for p in providers])
    return providers


def create_provider_manager(
    manager_config: ManagerConfig, providers: Iterable[FinancialDataProvider]
) -> ProviderManager:
    """Create a manager and register ``providers`` with it."""
    manager = ProviderManager(manager_config)
    for provider in providers:
        manager.register_provider(provider)

    if manager_config.primary_provider not in manager.providers:
        logger.warning("primary_provider_not_registered", primary=manager_config.primary_provider)
    return manager


def build_provider_manager(config: Config | None = None) -> ProviderManager:
    """Build a ready-to-use manager from ``config`` (environment when omitted)."""
    config = config or Config()
    return create_provider_manager(config.manager, build_providers(config))
