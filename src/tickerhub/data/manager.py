"""Provider manager: registry, fallback orchestration, caching and health monitoring.

The manager exposes one call site per logical operation. Each call tries the
primary provider and then the fallbacks in priority order, caches the first
success and keeps a health map so known-bad providers are skipped.

Example:
    >>> manager = ProviderManager(ManagerConfig(primary_provider="yahoo_finance"))
    >>> manager.register_provider(YahooFinanceProvider())
    >>> async with manager:
    ...     response = await manager.get_quotes(["AAPL"])
"""

import asyncio
import contextlib
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any

from ..config import ManagerConfig
from ..utils.logging import get_logger
from .cache import ResponseCache, make_cache_key
from .errors import (
    AllProvidersFailedError,
    AuthenticationError,
    FinancialDataError,
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
    ProviderHealth,
    ProviderResponse,
    Quote,
    QuoteRequest,
    SearchRequest,
    SearchResult,
    Split,
    TimePeriod,
)
from .provider import FinancialDataProvider, validate_provider_config

logger = get_logger(__name__, component="ProviderManager")

Candidate = tuple[str, FinancialDataProvider]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProviderManager:
    """Registry and fallback orchestrator for financial data providers.

    State is owned by the instance: separate managers never share providers,
    health or cache. Everything runs on one event loop, so no locking is done.
    """

    def __init__(
        self,
        config: ManagerConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Manager configuration (primary provider is required)
            clock: Monotonic clock used for cache expiry
        """
        self.config = config
        self._providers: dict[str, FinancialDataProvider] = {}
        self._health: dict[str, ProviderHealth] = {}
        self._cache = ResponseCache(
            ttl_seconds=config.cache_ttl_seconds,
            max_size=config.cache_max_size,
            timer=clock,
        )
        self._health_task: asyncio.Task[None] | None = None

        logger.info(
            "provider_manager_initialized",
            primary=config.primary_provider,
            fallbacks=config.fallback_providers,
            enable_fallback=config.enable_fallback,
            enable_caching=config.enable_caching,
        )

    # Registry

    def register_provider(self, provider: FinancialDataProvider) -> None:
        """Validate and register a provider; it starts out healthy.

        Raises:
            ProviderConfigError: If the provider configuration is invalid
        """
        validate_provider_config(provider.config)

        self._providers[provider.name] = provider
        self._health[provider.name] = ProviderHealth(healthy=True, last_check=_now())

        logger.info(
            "provider_registered",
            provider=provider.name,
            priority=provider.config.priority,
            capabilities=[k for k, v in provider.capabilities.as_dict().items() if v],
        )

    def unregister_provider(self, name: str) -> None:
        """Remove a provider and its health entry. Cached responses are kept."""
        removed = self._providers.pop(name, None)
        self._health.pop(name, None)
        if removed is not None:
            logger.info("provider_unregistered", provider=name)

    @property
    def providers(self) -> dict[str, FinancialDataProvider]:
        return dict(self._providers)

    def get_provider_health(self) -> dict[str, ProviderHealth]:
        """Snapshot of provider health; mutating it does not affect the manager."""
        return {name: replace(health) for name, health in self._health.items()}

    # Logical operations

    async def get_quotes(self, symbols: Sequence[str]) -> ProviderResponse[list[Quote]]:
        return await self.execute_with_fallback(Operation.QUOTES, QuoteRequest(symbols=symbols))

    async def get_historical_data(
        self,
        symbol: str,
        period: TimePeriod = "1y",
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> ProviderResponse[list[HistoricalPrice]]:
        request = HistoricalDataRequest(
            symbol=symbol, period=period, start_date=start_date, end_date=end_date
        )
        return await self.execute_with_fallback(Operation.HISTORICAL_DATA, request)

    async def get_company_profile(self, symbol: str) -> ProviderResponse[CompanyProfile]:
        return await self.execute_with_fallback(
            Operation.COMPANY_PROFILE, CompanyProfileRequest(symbol=symbol)
        )

    async def get_dividends(
        self, symbol: str, start_date: date | None = None, end_date: date | None = None
    ) -> ProviderResponse[list[Dividend]]:
        request = CorporateActionsRequest(symbol=symbol, start_date=start_date, end_date=end_date)
        return await self.execute_with_fallback(Operation.DIVIDENDS, request)

    async def get_splits(
        self, symbol: str, start_date: date | None = None, end_date: date | None = None
    ) -> ProviderResponse[list[Split]]:
        request = CorporateActionsRequest(symbol=symbol, start_date=start_date, end_date=end_date)
        return await self.execute_with_fallback(Operation.SPLITS, request)

    async def get_earnings(
        self, symbol: str, limit: int | None = None
    ) -> ProviderResponse[list[Earnings]]:
        return await self.execute_with_fallback(
            Operation.EARNINGS, EarningsRequest(symbol=symbol, limit=limit)
        )

    async def get_news(
        self, symbols: Sequence[str] | None = None, limit: int = 10
    ) -> ProviderResponse[list[NewsItem]]:
        return await self.execute_with_fallback(
            Operation.NEWS, NewsRequest(symbols=symbols or (), limit=limit)
        )

    async def search(self, query: str, limit: int | None = None) -> ProviderResponse[list[SearchResult]]:
        return await self.execute_with_fallback(
            Operation.SEARCH, SearchRequest(query=query, limit=limit)
        )

    # Fallback execution

    async def execute_with_fallback(
        self, operation: Operation | str, request: Any
    ) -> ProviderResponse[Any]:
        """Serve ``request`` from cache or the first provider that succeeds.

        Raises:
            FinancialDataError: The last provider error once every candidate
                failed, or AllProvidersFailedError if none could be attempted
        """
        operation = Operation(operation)

        cache_key = None
        if self.config.enable_caching:
            cache_key = make_cache_key(operation.value, request)
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug("served_from_cache", operation=operation.value, source=cached.source)
                return replace(cached, cached=True)

        if self.config.request_timeout_seconds is None:
            response = await self._run_chain(operation, request)
        else:
            try:
                response = await asyncio.wait_for(
                    self._run_chain(operation, request),
                    timeout=self.config.request_timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                logger.error(
                    "fallback_chain_timeout",
                    operation=operation.value,
                    timeout=self.config.request_timeout_seconds,
                )
                raise AllProvidersFailedError(
                    operation.value,
                    f"Deadline of {self.config.request_timeout_seconds}s exceeded for {operation.value}",
                ) from e

        if cache_key is not None:
            self._cache.set(cache_key, replace(response, cached=False))
        return replace(response, cached=False)

    def provider_order(self) -> list[str]:
        """Names to try: primary, then fallbacks by ascending priority.

        Equal priorities keep their declared order. Unregistered names are
        dropped; fallbacks are ignored when fallback is disabled.
        """
        order = [self.config.primary_provider]
        if self.config.enable_fallback:
            fallbacks = [name for name in self.config.fallback_providers if name in self._providers]
            fallbacks.sort(key=lambda name: self._providers[name].config.priority)
            order.extend(fallbacks)

        # dict.fromkeys keeps the first occurrence of a repeated name
        return [name for name in dict.fromkeys(order) if name in self._providers]

    async def _run_chain(self, operation: Operation, request: Any) -> ProviderResponse[Any]:
        last_error: BaseException | None = None
        candidates = self._eligible(operation, self.provider_order())

        while batch := self._next_batch(candidates):
            if len(batch) == 1:
                name, provider = batch[0]
                try:
                    return await self._attempt(name, provider, operation, request)
                except Exception as e:
                    last_error = e
                    continue

            response, error = await self._race(batch, operation, request)
            if response is not None:
                return response
            last_error = error or last_error

        if last_error is not None:
            logger.error(
                "all_providers_failed",
                operation=operation.value,
                error=str(last_error),
            )
            raise last_error
        raise AllProvidersFailedError(operation.value)

    def _eligible(self, operation: Operation, order: list[str]) -> Iterator[Candidate]:
        """Yield candidates lazily so health is read at the moment each is reached."""
        for name in order:
            provider = self._providers.get(name)
            if provider is None:
                continue

            if not provider.supports(operation):
                logger.debug("provider_skipped", provider=name, operation=operation.value, reason="unsupported")
                continue

            health = self._health.get(name)
            if self.config.enable_fallback and health is not None and not health.healthy:
                logger.debug("provider_skipped", provider=name, operation=operation.value, reason="unhealthy")
                continue

            yield name, provider

    def _next_batch(self, candidates: Iterator[Candidate]) -> list[Candidate]:
        batch: list[Candidate] = []
        for candidate in candidates:
            batch.append(candidate)
            if len(batch) >= self.config.race_width:
                break
        return batch

    async def _attempt(
        self, name: str, provider: FinancialDataProvider, operation: Operation, request: Any
    ) -> ProviderResponse[Any]:
        try:
            response = await provider.invoke(operation, request)
        except Exception as e:
            self._record_failure(name, operation, e)
            raise

        logger.debug("provider_succeeded", provider=name, operation=operation.value)
        return response

    async def _race(
        self, batch: list[Candidate], operation: Operation, request: Any
    ) -> tuple[ProviderResponse[Any] | None, BaseException | None]:
        """Query a batch concurrently; the first success wins and the rest are cancelled."""
        tasks = {
            asyncio.ensure_future(self._attempt(name, provider, operation, request)): position
            for position, (name, provider) in enumerate(batch)
        }
        last_error: BaseException | None = None
        try:
            while tasks:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                winner = None
                # Prefer the higher-priority candidate when several finish together
                for task in sorted(done, key=tasks.__getitem__):
                    del tasks[task]
                    error = task.exception()
                    if error is not None:
                        last_error = error
                    elif winner is None:
                        winner = task.result()
                if winner is not None:
                    return winner, None
        finally:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
        return None, last_error

    def _record_failure(self, name: str, operation: Operation, error: BaseException) -> None:
        """Update health and log after a failed attempt."""
        if isinstance(error, ProviderUnavailableError):
            self._mark_unhealthy(name, error)
            logger.warning(
                "provider_marked_unhealthy",
                provider=name,
                operation=operation.value,
                error=str(error),
            )
        elif isinstance(error, RateLimitError):
            logger.warning(
                "provider_rate_limited",
                provider=name,
                operation=operation.value,
                reset_at=error.reset_at.isoformat() if error.reset_at else None,
            )
        elif isinstance(error, AuthenticationError):
            # Fallback will not fix bad credentials; surface it to operators
            logger.error("provider_authentication_failed", provider=name, operation=operation.value)
        else:
            logger.warning(
                "provider_request_failed",
                provider=name,
                operation=operation.value,
                code=error.code.value if isinstance(error, FinancialDataError) else None,
                error=str(error),
                error_type=type(error).__name__,
            )

    def _mark_unhealthy(self, name: str, error: BaseException) -> None:
        if name in self._health:
            self._health[name] = ProviderHealth(healthy=False, last_check=_now(), last_error=str(error))

    # Health monitoring

    async def check_all_providers_health(self) -> dict[str, ProviderHealth]:
        """Check every registered provider concurrently.

        Each check is isolated: an exception in one provider's check marks
        only that provider unhealthy.
        """
        providers = list(self._providers.items())
        await asyncio.gather(*(self._check_provider_health(name, p) for name, p in providers))
        return self.get_provider_health()

    async def _check_provider_health(self, name: str, provider: FinancialDataProvider) -> None:
        error = None
        try:
            healthy = await provider.is_healthy()
        except Exception as e:
            healthy = False
            error = str(e)
            logger.error("health_check_failed", provider=name, error=error, error_type=type(e).__name__)

        # Provider may have been unregistered while the check was in flight
        if name not in self._providers:
            return

        previous = self._health.get(name)
        self._health[name] = ProviderHealth(healthy=healthy, last_check=_now(), last_error=error)
        if previous is not None and previous.healthy != healthy:
            logger.info("provider_health_changed", provider=name, healthy=healthy)

    async def _health_check_loop(self) -> None:
        interval = self.config.health_check_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_all_providers_health()
            except Exception as e:
                logger.error("health_check_cycle_failed", error=str(e), error_type=type(e).__name__)

    @property
    def health_checks_running(self) -> bool:
        return self._health_task is not None and not self._health_task.done()

    def start(self) -> None:
        """Start periodic health checks (no-op when the interval is 0).

        Must be called from a running event loop. Pair with :meth:`destroy`.
        """
        if self.config.health_check_interval_ms <= 0 or self.health_checks_running:
            return
        self._health_task = asyncio.get_running_loop().create_task(self._health_check_loop())
        logger.info("health_checks_started", interval_ms=self.config.health_check_interval_ms)

    async def destroy(self) -> None:
        """Cancel the health-check task and clear the cache."""
        task, self._health_task = self._health_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.info("health_checks_stopped")
        self.clear_cache()

    async def __aenter__(self) -> "ProviderManager":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.destroy()

    # Cache

    def get_cache_stats(self) -> dict[str, Any]:
        """Cache statistics (expired entries are not counted)."""
        return self._cache.get_stats()

    def clear_cache(self) -> None:
        self._cache.clear()
