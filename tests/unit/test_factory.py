"""Tests for building providers and managers from configuration."""

import pytest
from tickerhub.config import Config, ManagerConfig
from tickerhub.data.models import Operation
from tickerhub.data.provider import MockDataProvider
from tickerhub.data.providers import AlphaVantageProvider, YahooFinanceProvider
from tickerhub.factory import (
    build_provider_manager,
    build_providers,
    create_provider_manager,
    to_provider_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ALPHA_VANTAGE__API_KEY", raising=False)


class TestBuildProviders:
    """Tests for build_providers."""

    def test_alpha_vantage_skipped_without_key(self) -> None:
        """Only Yahoo is built when no Alpha Vantage key is configured."""
        providers = build_providers(Config(_env_file=None))

        assert [p.name for p in providers] == ["yahoo_finance"]
        assert isinstance(providers[0], YahooFinanceProvider)

    def test_all_enabled_vendors(self) -> None:
        config = Config(
            _env_file=None,
            alpha_vantage={"api_key": "k"},
            mock={"enabled": True},
            manager={"max_retries": 1},
        )

        providers = {p.name: p for p in build_providers(config)}

        assert set(providers) == {"yahoo_finance", "alpha_vantage", "mock"}
        assert isinstance(providers["alpha_vantage"], AlphaVantageProvider)
        assert isinstance(providers["mock"], MockDataProvider)
        # Manager-level retry default applies when the vendor sets none
        assert providers["alpha_vantage"].config.retries == 1
        # 5 requests per minute spaces calls 12 seconds apart
        assert providers["alpha_vantage"].rate_limit_delay == pytest.approx(12.0)

    def test_disabled_vendor_is_skipped(self) -> None:
        config = Config(_env_file=None, yahoo_finance={"enabled": False}, mock={"enabled": True})

        assert [p.name for p in build_providers(config)] == ["mock"]


class TestToProviderConfig:
    def test_vendor_retries_override_default(self) -> None:
        config = Config(_env_file=None, alpha_vantage={"api_key": "k", "retries": 0})

        provider_config = to_provider_config("alpha_vantage", config.alpha_vantage, default_retries=3)

        assert provider_config.retries == 0
        assert provider_config.api_key == "k"
        assert provider_config.rate_limit is not None
        assert provider_config.rate_limit.requests_per_day == 500

    def test_no_rate_limit_when_unset(self) -> None:
        config = Config(_env_file=None)
        assert to_provider_config("yahoo_finance", config.yahoo_finance, 3).rate_limit is None


class TestBuildProviderManager:
    """Tests for manager assembly."""

    def test_manager_orders_configured_providers(self) -> None:
        manager = build_provider_manager(Config(_env_file=None, alpha_vantage={"api_key": "k"}))

        assert manager.provider_order() == ["yahoo_finance", "alpha_vantage"]
        assert set(manager.get_provider_health()) == {"yahoo_finance", "alpha_vantage"}

    async def test_create_provider_manager_with_mock(self) -> None:
        manager = create_provider_manager(
            ManagerConfig(primary_provider="mock", health_check_interval_ms=0),
            [MockDataProvider()],
        )

        response = await manager.search("msft")

        assert response.source == "mock"
        assert manager.providers["mock"].supports(Operation.SEARCH)
        await manager.destroy()
