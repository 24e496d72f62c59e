"""Alpha Vantage data provider implementation."""

import hashlib
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp

from ...utils.logging import get_logger
from ..errors import InvalidSymbolError, ProviderConfigError, RateLimitError
from ..models import (
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
    ProviderCapabilities,
    ProviderConfig,
    ProviderResponse,
    Quote,
    QuoteRequest,
    SearchRequest,
    SearchResult,
    Split,
)
from ..provider import FinancialDataProvider, filter_by_date_range, match_score, period_start

logger = get_logger(__name__, component="AlphaVantageProvider")

ASSET_TYPES = {
    "Equity": "stock",
    "ETF": "etf",
    "Mutual Fund": "mutual_fund",
}


def to_decimal(value: Any) -> Decimal | None:
    """Convert a vendor string to Decimal, None if missing or invalid."""
    if value in (None, "", "None", "-"):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def to_int(value: Any) -> int | None:
    number = to_decimal(value)
    return int(number) if number is not None else None


def to_float(value: Any) -> float | None:
    number = to_decimal(str(value).rstrip("%")) if value is not None else None
    return float(number) if number is not None else None


def to_date(value: Any) -> date | None:
    if not value or value == "None":
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


class AlphaVantageProvider(FinancialDataProvider):
    """Alpha Vantage data provider.

    Provides quotes, daily history, fundamentals, corporate actions, news
    sentiment and symbol search. Requires API key from https://www.alphavantage.co/
    """

    BASE_URL = "https://www.alphavantage.co/query"

    capabilities = ProviderCapabilities(
        dividends=True,
        splits=True,
        earnings=True,
        news=True,
        search=True,
        international_markets=True,
        crypto_currency=True,
        forex=True,
        commodities=True,
    )
    health_check_symbol = "IBM"

    def __init__(self, config: ProviderConfig, session: aiohttp.ClientSession | None = None) -> None:
        """Initialize Alpha Vantage provider.

        Args:
            config: Provider configuration with API key
            session: Optional shared aiohttp session

        Raises:
            ProviderConfigError: If no API key is configured
        """
        if not config.api_key:
            raise ProviderConfigError("Alpha Vantage API key is required", provider=config.name)

        super().__init__(config, session)
        self.base_url = config.base_url or self.BASE_URL

    async def _query(self, function: str, symbol: str | None = None, **kwargs: Any) -> dict[str, Any]:
        """Call an Alpha Vantage function and check in-body errors.

        Alpha Vantage answers HTTP 200 for bad symbols and throttling, so both
        are detected from the payload.
        """
        params: dict[str, Any] = {"function": function, "apikey": self.config.api_key, **kwargs}
        if symbol is not None:
            params["symbol"] = symbol

        logger.debug("alpha_vantage_request", function=function, symbol=symbol)

        data = await self.make_http_request(self.base_url, params=params)
        if not isinstance(data, dict):
            return {"data": data}

        if "Error Message" in data:
            raise InvalidSymbolError(symbol or function, self.name)

        for key in ("Note", "Information"):
            if key in data:
                # API call frequency limit hit
                logger.warning("alpha_vantage_rate_limit", message=data[key])
                raise RateLimitError(self.name, f"Alpha Vantage rate limit reached: {data[key]}")

        return data

    async def get_quotes(self, request: QuoteRequest) -> ProviderResponse[list[Quote]]:
        """Get current quotes (one GLOBAL_QUOTE call per symbol)."""
        quotes = []
        for symbol in request.symbols:
            data = await self._query("GLOBAL_QUOTE", symbol)
            quote_data = data.get("Global Quote")
            if not quote_data:
                raise InvalidSymbolError(symbol, self.name)

            quotes.append(
                Quote(
                    symbol=quote_data.get("01. symbol", symbol),
                    price=Decimal(quote_data["05. price"]),
                    timestamp=datetime.now(timezone.utc),  # Alpha Vantage doesn't provide exact timestamp
                    open=to_decimal(quote_data.get("02. open")),
                    day_high=to_decimal(quote_data.get("03. high")),
                    day_low=to_decimal(quote_data.get("04. low")),
                    previous_close=to_decimal(quote_data.get("08. previous close")),
                    change=to_decimal(quote_data.get("09. change")),
                    change_percent=to_float(quote_data.get("10. change percent")),
                    volume=to_int(quote_data.get("06. volume")),
                )
            )

        logger.info("alpha_vantage_quotes_fetched", symbols=list(request.symbols), count=len(quotes))
        return self.create_response(quotes)

    async def get_historical_data(
        self, request: HistoricalDataRequest
    ) -> ProviderResponse[list[HistoricalPrice]]:
        """Get daily history from TIME_SERIES_DAILY.

        Note: 'compact' returns the last 100 trading days; longer periods
        request the full series.
        """
        outputsize = "compact" if request.period in ("1d", "5d", "1mo", "3mo") else "full"
        data = await self._query("TIME_SERIES_DAILY", request.symbol, outputsize=outputsize)

        time_series = data.get("Time Series (Daily)")
        if not time_series:
            raise InvalidSymbolError(request.symbol, self.name)

        prices = [
            HistoricalPrice(
                date=datetime.strptime(date_str, "%Y-%m-%d").date(),
                open=Decimal(values["1. open"]),
                high=Decimal(values["2. high"]),
                low=Decimal(values["3. low"]),
                close=Decimal(values["4. close"]),
                volume=int(values["5. volume"]),
            )
            for date_str, values in time_series.items()
        ]
        prices.sort(key=lambda p: p.date)

        start = request.start_date or period_start(request.period)
        prices = filter_by_date_range(prices, lambda p: p.date, start, request.end_date)

        logger.info("alpha_vantage_historical_fetched", symbol=request.symbol, count=len(prices))
        return self.create_response(prices)

    async def get_company_profile(
        self, request: CompanyProfileRequest
    ) -> ProviderResponse[CompanyProfile]:
        """Get company overview from the OVERVIEW function."""
        data = await self._query("OVERVIEW", request.symbol)
        if not data or "Symbol" not in data:
            raise InvalidSymbolError(request.symbol, self.name)

        profile = CompanyProfile(
            symbol=data["Symbol"],
            name=data.get("Name") or request.symbol,
            description=data.get("Description") or None,
            sector=data.get("Sector") or None,
            industry=data.get("Industry") or None,
            exchange=data.get("Exchange") or None,
            country=data.get("Country") or None,
            currency=data.get("Currency") or None,
            market_cap=to_int(data.get("MarketCapitalization")),
            headquarters=data.get("Address") or None,
            website=data.get("OfficialSite") or None,
        )

        logger.info(
            "alpha_vantage_overview_fetched",
            symbol=request.symbol,
            name=profile.name,
            sector=profile.sector,
        )
        return self.create_response(profile)

    async def get_dividends(
        self, request: CorporateActionsRequest
    ) -> ProviderResponse[list[Dividend]]:
        data = await self._query("DIVIDENDS", request.symbol)
        dividends = []
        for item in data.get("data", []):
            ex_date = to_date(item.get("ex_dividend_date"))
            amount = to_decimal(item.get("amount"))
            if ex_date is None or amount is None:
                continue
            dividends.append(
                Dividend(
                    symbol=request.symbol,
                    ex_date=ex_date,
                    amount=amount,
                    payment_date=to_date(item.get("payment_date")),
                    record_date=to_date(item.get("record_date")),
                    declaration_date=to_date(item.get("declaration_date")),
                )
            )
        dividends.sort(key=lambda d: d.ex_date)
        dividends = filter_by_date_range(dividends, lambda d: d.ex_date, request.start_date, request.end_date)
        return self.create_response(dividends)

    async def get_splits(self, request: CorporateActionsRequest) -> ProviderResponse[list[Split]]:
        data = await self._query("SPLITS", request.symbol)
        splits = []
        for item in data.get("data", []):
            effective = to_date(item.get("effective_date"))
            ratio = to_decimal(item.get("split_factor"))
            if effective is None or ratio is None:
                continue
            splits.append(Split(symbol=request.symbol, date=effective, ratio=ratio))
        splits.sort(key=lambda s: s.date)
        splits = filter_by_date_range(splits, lambda s: s.date, request.start_date, request.end_date)
        return self.create_response(splits)

    async def get_earnings(self, request: EarningsRequest) -> ProviderResponse[list[Earnings]]:
        data = await self._query("EARNINGS", request.symbol)
        quarterly = data.get("quarterlyEarnings")
        if quarterly is None:
            raise InvalidSymbolError(request.symbol, self.name)

        earnings = []
        for item in quarterly:
            fiscal = to_date(item.get("fiscalDateEnding"))
            if fiscal is None:
                continue
            earnings.append(
                Earnings(
                    symbol=request.symbol,
                    fiscal_date_ending=fiscal,
                    reported_date=to_date(item.get("reportedDate")),
                    reported_eps=to_decimal(item.get("reportedEPS")),
                    estimated_eps=to_decimal(item.get("estimatedEPS")),
                    surprise=to_decimal(item.get("surprise")),
                    surprise_percent=to_float(item.get("surprisePercentage")),
                )
            )
        # Most recent first
        earnings.sort(key=lambda e: e.fiscal_date_ending, reverse=True)
        if request.limit:
            earnings = earnings[: request.limit]
        return self.create_response(earnings)

    async def get_news(self, request: NewsRequest) -> ProviderResponse[list[NewsItem]]:
        """Get news from NEWS_SENTIMENT, filtered by tickers when given."""
        params: dict[str, Any] = {"limit": max(request.limit, 1), "sort": "LATEST"}
        if request.symbols:
            params["tickers"] = ",".join(request.symbols)
        else:
            params["topics"] = "financial_markets"

        data = await self._query("NEWS_SENTIMENT", **params)

        news = []
        for item in data.get("feed", []):
            published = datetime.strptime(item["time_published"], "%Y%m%dT%H%M%S").replace(
                tzinfo=timezone.utc
            )
            tickers = tuple(t["ticker"] for t in item.get("ticker_sentiment", []) if t.get("ticker"))
            news.append(
                NewsItem(
                    id="av_" + hashlib.sha1(item["url"].encode()).hexdigest()[:16],
                    headline=item["title"],
                    url=item["url"],
                    published_at=published,
                    source=item.get("source", "Alpha Vantage"),
                    summary=item.get("summary") or None,
                    symbols=tuple(request.symbols) or tickers,
                )
            )
        return self.create_response(news[: request.limit])

    async def search(self, request: SearchRequest) -> ProviderResponse[list[SearchResult]]:
        data = await self._query("SYMBOL_SEARCH", keywords=request.query)

        results = []
        for match in data.get("bestMatches", []):
            symbol = match["1. symbol"]
            name = match.get("2. name", symbol)
            score = to_float(match.get("9. matchScore"))
            results.append(
                SearchResult(
                    symbol=symbol,
                    name=name,
                    exchange=None,
                    asset_type=ASSET_TYPES.get(match.get("3. type", ""), "stock"),  # type: ignore[arg-type]
                    currency=match.get("8. currency"),
                    country=match.get("4. region"),
                    match_score=score if score is not None else match_score(request.query, symbol, name),
                )
            )

        results.sort(key=lambda r: r.match_score, reverse=True)
        if request.limit:
            results = results[: request.limit]
        return self.create_response(results)
