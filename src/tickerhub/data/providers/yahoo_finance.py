"""Yahoo Finance data provider implementation."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, TypeVar

import pandas as pd
import yfinance as yf
from yfinance.exceptions import YFRateLimitError

from ...utils.logging import get_logger
from ..errors import ErrorCode, FinancialDataError, InvalidSymbolError, RateLimitError
from ..models import (
    CompanyProfile,
    CompanyProfileRequest,
    CorporateActionsRequest,
    Dividend,
    HistoricalDataRequest,
    HistoricalPrice,
    NewsItem,
    NewsRequest,
    ProviderCapabilities,
    ProviderConfig,
    ProviderResponse,
    Quote,
    QuoteRequest,
    SearchRequest,
    SearchResult,
    Split,
)
from ..provider import FinancialDataProvider, filter_by_date_range, match_score

logger = get_logger(__name__, component="YahooFinanceProvider")

T = TypeVar("T")

ASSET_TYPES = {
    "EQUITY": "stock",
    "ETF": "etf",
    "MUTUALFUND": "mutual_fund",
    "CRYPTOCURRENCY": "crypto",
    "CURRENCY": "forex",
    "INDEX": "index",
    "FUTURE": "commodity",
}


def _decimal(value: Any) -> Decimal | None:
    if value is None or pd.isna(value):
        return None
    return Decimal(str(value))


def _parse_news_item(item: dict[str, Any], symbols: tuple[str, ...]) -> NewsItem | None:
    """Parse a yfinance news entry (legacy flat or nested 'content' layout)."""
    content = item.get("content")
    if isinstance(content, dict):
        url = (content.get("canonicalUrl") or content.get("clickThroughUrl") or {}).get("url")
        pub_date = content.get("pubDate")
        if not url or not pub_date:
            return None
        return NewsItem(
            id=str(item.get("id") or content.get("id")),
            headline=content.get("title", ""),
            url=url,
            published_at=datetime.fromisoformat(pub_date.replace("Z", "+00:00")),
            source=(content.get("provider") or {}).get("displayName", "Yahoo Finance"),
            summary=content.get("summary") or None,
            symbols=symbols,
        )

    if not item.get("link") or not item.get("providerPublishTime"):
        return None
    return NewsItem(
        id=str(item.get("uuid")),
        headline=item.get("title", ""),
        url=item["link"],
        published_at=datetime.fromtimestamp(item["providerPublishTime"], tz=timezone.utc),
        source=item.get("publisher", "Yahoo Finance"),
        symbols=symbols or tuple(item.get("relatedTickers") or ()),
    )


class YahooFinanceProvider(FinancialDataProvider):
    """Yahoo Finance data provider.

    Uses yfinance library to fetch quotes, history, profiles, corporate actions,
    news and search. No API key required but has rate limits.
    """

    capabilities = ProviderCapabilities(
        dividends=True,
        splits=True,
        news=True,
        search=True,
        realtime=True,
        extended_hours=True,
        international_markets=True,
        crypto_currency=True,
        forex=True,
        commodities=True,
    )

    def __init__(self, config: ProviderConfig | None = None) -> None:
        """Initialize Yahoo Finance provider.

        Args:
            config: Provider configuration (defaults to name 'yahoo_finance')
        """
        super().__init__(config or ProviderConfig(name="yahoo_finance"))

    async def _run(self, fn: Callable[[], T], context: str) -> T:
        """Run a blocking yfinance call in the executor.

        Each attempt is bounded by the provider timeout and retried on
        transport failures. Yahoo throttling becomes RateLimitError; other
        unexpected library errors are wrapped.
        """

        async def call() -> T:
            await self._throttle()
            loop = asyncio.get_running_loop()
            try:
                return await asyncio.wait_for(
                    loop.run_in_executor(None, fn), timeout=self.config.timeout or None
                )
            except YFRateLimitError as e:
                logger.warning("yahoo_rate_limited", context=context)
                raise RateLimitError(self.name, cause=e) from e

        try:
            return await self.with_retries(call, context=context)
        except FinancialDataError:
            raise
        except Exception as e:
            raise FinancialDataError(
                f"{context} failed: {e}", ErrorCode.PROVIDER_ERROR, self.name, e
            ) from e

    async def get_quotes(self, request: QuoteRequest) -> ProviderResponse[list[Quote]]:
        """Get current quotes from the last five daily bars."""
        quotes = []
        for symbol in request.symbols:
            logger.debug("fetching_quote", symbol=symbol)

            ticker = yf.Ticker(symbol)
            hist = await self._run(lambda: ticker.history(period="5d"), f"quote {symbol}")
            if hist is None or hist.empty:
                raise InvalidSymbolError(symbol, self.name)

            latest = hist.iloc[-1]
            timestamp = hist.index[-1].to_pydatetime()

            # Get previous close from second-to-last day if available
            previous_close = None
            if len(hist) > 1:
                previous_close = _decimal(hist.iloc[-2]["Close"])

            quote = Quote(
                symbol=symbol,
                price=Decimal(str(latest["Close"])),
                timestamp=timestamp,
                open=_decimal(latest["Open"]),
                day_high=_decimal(latest["High"]),
                day_low=_decimal(latest["Low"]),
                previous_close=previous_close,
                volume=int(latest["Volume"]),
            )
            quotes.append(quote)

            logger.info("quote_fetched", symbol=symbol, price=float(quote.price), volume=quote.volume)

        return self.create_response(quotes)

    async def get_historical_data(
        self, request: HistoricalDataRequest
    ) -> ProviderResponse[list[HistoricalPrice]]:
        """Get daily history; explicit dates take precedence over the period."""
        logger.debug(
            "fetching_historical_data",
            symbol=request.symbol,
            period=request.period,
            start=request.start_date.isoformat() if request.start_date else None,
            end=request.end_date.isoformat() if request.end_date else None,
        )

        ticker = yf.Ticker(request.symbol)
        if request.start_date or request.end_date:
            # yfinance treats 'end' as exclusive
            end = request.end_date + timedelta(days=1) if request.end_date else None
            fetch = lambda: ticker.history(  # noqa: E731
                start=request.start_date, end=end, interval="1d", auto_adjust=False
            )
        else:
            fetch = lambda: ticker.history(  # noqa: E731
                period=request.period, interval="1d", auto_adjust=False
            )

        hist = await self._run(fetch, f"history {request.symbol}")
        if hist is None or hist.empty:
            raise InvalidSymbolError(request.symbol, self.name)

        prices = []
        for idx, row in hist.iterrows():
            if pd.isna(row["Close"]):
                continue
            prices.append(
                HistoricalPrice(
                    date=idx.date(),
                    open=_decimal(row["Open"]) or Decimal("0"),
                    high=_decimal(row["High"]) or Decimal("0"),
                    low=_decimal(row["Low"]) or Decimal("0"),
                    close=Decimal(str(row["Close"])),
                    volume=int(row["Volume"]) if not pd.isna(row["Volume"]) else 0,
                    adjusted_close=_decimal(row["Adj Close"]) if "Adj Close" in row else None,
                )
            )

        logger.info("historical_data_fetched", symbol=request.symbol, count=len(prices))
        return self.create_response(prices)

    async def get_company_profile(
        self, request: CompanyProfileRequest
    ) -> ProviderResponse[CompanyProfile]:
        """Get company profile from ticker info."""
        logger.debug("fetching_company_profile", symbol=request.symbol)

        ticker = yf.Ticker(request.symbol)
        info = await self._run(lambda: ticker.info, f"profile {request.symbol}")
        if not info or not (info.get("longName") or info.get("shortName")):
            raise InvalidSymbolError(request.symbol, self.name)

        address = ", ".join(
            str(info[k]) for k in ("address1", "city", "state", "zip", "country") if info.get(k)
        )
        profile = CompanyProfile(
            symbol=request.symbol,
            name=info.get("longName") or info["shortName"],
            description=info.get("longBusinessSummary"),
            sector=info.get("sector"),
            industry=info.get("industry"),
            exchange=info.get("exchange"),
            country=info.get("country"),
            currency=info.get("currency"),
            market_cap=info.get("marketCap"),
            employees=info.get("fullTimeEmployees"),
            headquarters=address or None,
            website=info.get("website"),
        )

        logger.info("company_profile_fetched", symbol=request.symbol, name=profile.name, sector=profile.sector)
        return self.create_response(profile)

    async def get_dividends(
        self, request: CorporateActionsRequest
    ) -> ProviderResponse[list[Dividend]]:
        ticker = yf.Ticker(request.symbol)
        series = await self._run(lambda: ticker.dividends, f"dividends {request.symbol}")

        dividends = [
            Dividend(symbol=request.symbol, ex_date=idx.date(), amount=Decimal(str(amount)))
            for idx, amount in series.items()
        ]
        dividends = filter_by_date_range(dividends, lambda d: d.ex_date, request.start_date, request.end_date)
        return self.create_response(dividends)

    async def get_splits(self, request: CorporateActionsRequest) -> ProviderResponse[list[Split]]:
        ticker = yf.Ticker(request.symbol)
        series = await self._run(lambda: ticker.splits, f"splits {request.symbol}")

        splits = [
            Split(symbol=request.symbol, date=idx.date(), ratio=Decimal(str(ratio)))
            for idx, ratio in series.items()
            if ratio
        ]
        splits = filter_by_date_range(splits, lambda s: s.date, request.start_date, request.end_date)
        return self.create_response(splits)

    async def get_news(self, request: NewsRequest) -> ProviderResponse[list[NewsItem]]:
        """Get news for the first requested symbol, or general market news."""
        symbols = tuple(request.symbols)
        if symbols:
            ticker = yf.Ticker(symbols[0])
            items = await self._run(lambda: ticker.news, f"news {symbols[0]}")
        else:
            items = await self._run(
                lambda: yf.Search("stock market", max_results=0, news_count=request.limit).news,
                "market news",
            )

        news = [n for n in (_parse_news_item(item, symbols) for item in items or []) if n is not None]
        return self.create_response(news[: request.limit])

    async def search(self, request: SearchRequest) -> ProviderResponse[list[SearchResult]]:
        max_results = request.limit or 10
        quotes = await self._run(
            lambda: yf.Search(request.query, max_results=max_results, news_count=0).quotes,
            f"search {request.query}",
        )

        results = []
        for match in quotes or []:
            symbol = match.get("symbol")
            if not symbol:
                continue
            name = match.get("longname") or match.get("shortname") or symbol
            results.append(
                SearchResult(
                    symbol=symbol,
                    name=name,
                    exchange=match.get("exchDisp"),
                    asset_type=ASSET_TYPES.get(match.get("quoteType", ""), "stock"),  # type: ignore[arg-type]
                    match_score=match_score(request.query, symbol, name),
                )
            )

        # Exact symbol matches first, vendor order otherwise
        results.sort(key=lambda r: 0 if r.symbol.lower() == request.query.lower() else 1)
        if request.limit:
            results = results[: request.limit]
        return self.create_response(results)
