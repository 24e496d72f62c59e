"""Shared fixtures and fakes for the test suite."""

import asyncio
import json
from collections.abc import Mapping
from typing import Any

import pytest
from tickerhub.data.models import (
    CompanyProfileRequest,
    CorporateActionsRequest,
    EarningsRequest,
    HistoricalDataRequest,
    NewsRequest,
    Operation,
    ProviderCapabilities,
    ProviderConfig,
    ProviderResponse,
    QuoteRequest,
    SearchRequest,
)
from tickerhub.data.provider import FinancialDataProvider

ALL_CAPABILITIES = ProviderCapabilities(
    dividends=True, splits=True, earnings=True, news=True, search=True
)


class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse used as an async context manager."""

    def __init__(
        self,
        status: int = 200,
        json_data: Any = None,
        text: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.status = status
        self._json = json_data
        self._text = text
        self.headers = dict(headers or {})

    async def json(self, content_type: str | None = None) -> Any:
        if self._text is not None and self._json is None:
            return json.loads(self._text)
        return self._json

    async def text(self) -> str:
        return self._text if self._text is not None else json.dumps(self._json)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


class FakeSession:
    """Replays scripted responses (or raises scripted exceptions) in order.

    The last scripted item is repeated once the script is exhausted.
    """

    def __init__(self, *responses: FakeResponse | BaseException) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, params: Any = None, headers: Any = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"url": url, "params": dict(params or {}), "headers": headers})
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item


class FakeClock:
    """Controllable monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(FinancialDataProvider):
    """Provider whose outcomes are scripted per operation.

    An outcome is either a payload (wrapped in a response) or an exception
    (raised). A list of outcomes is consumed in order, repeating the last one.
    """

    def __init__(
        self,
        name: str,
        priority: int = 0,
        capabilities: ProviderCapabilities | None = None,
        outcomes: dict[Operation, Any] | None = None,
        healthy: bool | BaseException = True,
        delay: float = 0.0,
        config: ProviderConfig | None = None,
    ) -> None:
        super().__init__(config or ProviderConfig(name=name, priority=priority, retries=0, retry_delay=0))
        if capabilities is not None:
            self.capabilities = capabilities
        self.outcomes = dict(outcomes or {})
        self.calls: list[tuple[Operation, Any]] = []
        self.health_result = healthy
        self.health_checks = 0
        self.delay = delay
        self.cancelled = False

    def calls_for(self, operation: Operation) -> int:
        return sum(1 for op, _ in self.calls if op is operation)

    async def _respond(self, operation: Operation, request: Any) -> ProviderResponse[Any]:
        self.calls.append((operation, request))
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise

        outcome = self.outcomes.get(operation, f"{self.name}:{operation.value}")
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return self.create_response(outcome)

    async def get_quotes(self, request: QuoteRequest) -> ProviderResponse[Any]:
        return await self._respond(Operation.QUOTES, request)

    async def get_historical_data(self, request: HistoricalDataRequest) -> ProviderResponse[Any]:
        return await self._respond(Operation.HISTORICAL_DATA, request)

    async def get_company_profile(self, request: CompanyProfileRequest) -> ProviderResponse[Any]:
        return await self._respond(Operation.COMPANY_PROFILE, request)

    async def get_dividends(self, request: CorporateActionsRequest) -> ProviderResponse[Any]:
        return await self._respond(Operation.DIVIDENDS, request)

    async def get_splits(self, request: CorporateActionsRequest) -> ProviderResponse[Any]:
        return await self._respond(Operation.SPLITS, request)

    async def get_earnings(self, request: EarningsRequest) -> ProviderResponse[Any]:
        return await self._respond(Operation.EARNINGS, request)

    async def get_news(self, request: NewsRequest) -> ProviderResponse[Any]:
        return await self._respond(Operation.NEWS, request)

    async def search(self, request: SearchRequest) -> ProviderResponse[Any]:
        return await self._respond(Operation.SEARCH, request)

    async def is_healthy(self) -> bool:
        self.health_checks += 1
        if isinstance(self.health_result, BaseException):
            raise self.health_result
        return self.health_result


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at t=1000s."""
    return FakeClock()
