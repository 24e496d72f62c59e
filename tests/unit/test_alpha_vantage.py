"""Tests for the Alpha Vantage provider against recorded payload shapes."""

from datetime import date
from decimal import Decimal

import pytest
from conftest import FakeResponse, FakeSession
from tickerhub.data.errors import (
    AuthenticationError,
    InvalidSymbolError,
    ProviderConfigError,
    RateLimitError,
)
from tickerhub.data.models import (
    CompanyProfileRequest,
    CorporateActionsRequest,
    EarningsRequest,
    HistoricalDataRequest,
    NewsRequest,
    ProviderConfig,
    QuoteRequest,
    SearchRequest,
)
from tickerhub.data.providers.alpha_vantage import AlphaVantageProvider, to_decimal, to_float

GLOBAL_QUOTE = {
    "Global Quote": {
        "01. symbol": "IBM",
        "02. open": "190.00",
        "03. high": "192.50",
        "04. low": "189.10",
        "05. price": "191.20",
        "06. volume": "3456789",
        "07. latest trading day": "2024-05-01",
        "08. previous close": "190.40",
        "09. change": "0.80",
        "10. change percent": "0.4202%",
    }
}

TIME_SERIES = {
    "Meta Data": {"2. Symbol": "IBM"},
    "Time Series (Daily)": {
        "2024-05-02": {
            "1. open": "191.0",
            "2. high": "193.0",
            "3. low": "190.0",
            "4. close": "192.0",
            "5. volume": "1000",
        },
        "2024-05-01": {
            "1. open": "190.0",
            "2. high": "192.5",
            "3. low": "189.1",
            "4. close": "191.2",
            "5. volume": "2000",
        },
        "2024-04-01": {
            "1. open": "180.0",
            "2. high": "181.0",
            "3. low": "179.0",
            "4. close": "180.5",
            "5. volume": "3000",
        },
    },
}


def make_provider(*responses) -> tuple[AlphaVantageProvider, FakeSession]:
    session = FakeSession(*responses)
    config = ProviderConfig(name="alpha_vantage", api_key="demo", retries=0, retry_delay=0)
    return AlphaVantageProvider(config, session=session), session  # type: ignore[arg-type]


class TestAlphaVantageProvider:
    """Tests for AlphaVantageProvider."""

    def test_api_key_required(self) -> None:
        """Constructing without a key fails fast."""
        with pytest.raises(ProviderConfigError, match="API key"):
            AlphaVantageProvider(ProviderConfig(name="alpha_vantage"))

    async def test_get_quotes(self) -> None:
        """GLOBAL_QUOTE payloads are mapped to Quote."""
        provider, session = make_provider(FakeResponse(json_data=GLOBAL_QUOTE))

        response = await provider.get_quotes(QuoteRequest(symbols=["IBM"]))

        quote = response.data[0]
        assert quote.symbol == "IBM"
        assert quote.price == Decimal("191.20")
        assert quote.change == Decimal("0.80")
        assert quote.change_percent == pytest.approx(0.4202)
        assert quote.volume == 3456789
        assert response.source == "alpha_vantage"
        assert session.calls[0]["params"]["function"] == "GLOBAL_QUOTE"
        assert session.calls[0]["params"]["apikey"] == "demo"

    async def test_empty_quote_is_invalid_symbol(self) -> None:
        provider, _ = make_provider(FakeResponse(json_data={"Global Quote": {}}))

        with pytest.raises(InvalidSymbolError):
            await provider.get_quotes(QuoteRequest(symbols=["NOPE"]))

    async def test_error_message_is_invalid_symbol(self) -> None:
        """In-body 'Error Message' maps to InvalidSymbolError."""
        provider, _ = make_provider(FakeResponse(json_data={"Error Message": "Invalid API call."}))

        with pytest.raises(InvalidSymbolError) as exc_info:
            await provider.get_company_profile(CompanyProfileRequest(symbol="NOPE"))
        assert exc_info.value.symbol == "NOPE"

    @pytest.mark.parametrize("key", ["Note", "Information"])
    async def test_in_body_throttle_is_rate_limit(self, key: str) -> None:
        """Throttling notes in a 200 body map to RateLimitError."""
        provider, _ = make_provider(FakeResponse(json_data={key: "Thank you for using Alpha Vantage!"}))

        with pytest.raises(RateLimitError):
            await provider.get_quotes(QuoteRequest(symbols=["IBM"]))

    async def test_http_401_is_authentication_error(self) -> None:
        provider, _ = make_provider(FakeResponse(status=401, text="unauthorized"))

        with pytest.raises(AuthenticationError):
            await provider.get_quotes(QuoteRequest(symbols=["IBM"]))

    async def test_get_historical_data_with_dates(self) -> None:
        """History is chronological and filtered to the requested range."""
        provider, session = make_provider(FakeResponse(json_data=TIME_SERIES))

        response = await provider.get_historical_data(
            HistoricalDataRequest(
                symbol="IBM", period="1mo", start_date=date(2024, 5, 1), end_date=date(2024, 5, 31)
            )
        )

        assert [bar.date for bar in response.data] == [date(2024, 5, 1), date(2024, 5, 2)]
        assert response.data[-1].close == Decimal("192.0")
        assert session.calls[0]["params"]["outputsize"] == "compact"

    async def test_long_period_requests_full_series(self) -> None:
        provider, session = make_provider(FakeResponse(json_data=TIME_SERIES))

        await provider.get_historical_data(HistoricalDataRequest(symbol="IBM", period="max"))

        assert session.calls[0]["params"]["outputsize"] == "full"

    async def test_get_company_profile(self) -> None:
        overview = {
            "Symbol": "IBM",
            "Name": "International Business Machines",
            "Sector": "TECHNOLOGY",
            "Industry": "COMPUTER & OFFICE EQUIPMENT",
            "Exchange": "NYSE",
            "Country": "USA",
            "Currency": "USD",
            "MarketCapitalization": "175000000000",
            "Address": "1 NEW ORCHARD ROAD, ARMONK, NY, US",
            "OfficialSite": "",
        }
        provider, _ = make_provider(FakeResponse(json_data=overview))

        response = await provider.get_company_profile(CompanyProfileRequest(symbol="IBM"))

        profile = response.data
        assert profile.name == "International Business Machines"
        assert profile.market_cap == 175000000000
        assert profile.website is None

    async def test_get_dividends(self) -> None:
        payload = {
            "symbol": "IBM",
            "data": [
                {"ex_dividend_date": "2024-05-09", "amount": "1.67", "payment_date": "2024-06-10"},
                {"ex_dividend_date": "2023-11-09", "amount": "1.66", "payment_date": "None"},
                {"ex_dividend_date": "None", "amount": "1.00"},
            ],
        }
        provider, _ = make_provider(FakeResponse(json_data=payload))

        response = await provider.get_dividends(
            CorporateActionsRequest(symbol="IBM", start_date=date(2024, 1, 1))
        )

        assert len(response.data) == 1
        dividend = response.data[0]
        assert dividend.amount == Decimal("1.67")
        assert dividend.payment_date == date(2024, 6, 10)

    async def test_get_splits(self) -> None:
        payload = {"data": [{"effective_date": "1999-05-27", "split_factor": "2.0000"}]}
        provider, _ = make_provider(FakeResponse(json_data=payload))

        response = await provider.get_splits(CorporateActionsRequest(symbol="IBM"))

        assert response.data[0].ratio == Decimal("2.0000")
        assert response.data[0].date == date(1999, 5, 27)

    async def test_get_earnings_most_recent_first(self) -> None:
        payload = {
            "quarterlyEarnings": [
                {"fiscalDateEnding": "2023-12-31", "reportedEPS": "3.87", "estimatedEPS": "3.78"},
                {
                    "fiscalDateEnding": "2024-03-31",
                    "reportedDate": "2024-04-24",
                    "reportedEPS": "1.68",
                    "estimatedEPS": "1.6",
                    "surprise": "0.08",
                    "surprisePercentage": "5",
                },
            ]
        }
        provider, _ = make_provider(FakeResponse(json_data=payload))

        response = await provider.get_earnings(EarningsRequest(symbol="IBM", limit=1))

        assert len(response.data) == 1
        latest = response.data[0]
        assert latest.fiscal_date_ending == date(2024, 3, 31)
        assert latest.surprise_percent == 5.0

    async def test_get_news(self) -> None:
        """News ids are stable and symbols come from the request."""
        payload = {
            "feed": [
                {
                    "title": "IBM beats estimates",
                    "url": "https://news.test/ibm",
                    "time_published": "20240424T201500",
                    "source": "Wire",
                    "summary": "Strong quarter",
                    "ticker_sentiment": [{"ticker": "IBM"}],
                }
            ]
        }
        provider, session = make_provider(FakeResponse(json_data=payload))

        first = await provider.get_news(NewsRequest(symbols=["IBM"], limit=5))
        second = await provider.get_news(NewsRequest(symbols=["IBM"], limit=5))

        item = first.data[0]
        assert item.id.startswith("av_")
        assert item.id == second.data[0].id
        assert item.symbols == ("IBM",)
        assert item.published_at.year == 2024
        assert session.calls[0]["params"]["tickers"] == "IBM"

    async def test_market_news_uses_topic(self) -> None:
        provider, session = make_provider(FakeResponse(json_data={"feed": []}))

        response = await provider.get_news(NewsRequest())

        assert response.data == []
        assert session.calls[0]["params"]["topics"] == "financial_markets"

    async def test_search(self) -> None:
        """Matches are sorted by vendor score and limited."""
        payload = {
            "bestMatches": [
                {
                    "1. symbol": "IBMX",
                    "2. name": "Other",
                    "3. type": "Equity",
                    "4. region": "United States",
                    "8. currency": "USD",
                    "9. matchScore": "0.5000",
                },
                {
                    "1. symbol": "IBM",
                    "2. name": "International Business Machines",
                    "3. type": "Equity",
                    "4. region": "United States",
                    "8. currency": "USD",
                    "9. matchScore": "1.0000",
                },
            ]
        }
        provider, session = make_provider(FakeResponse(json_data=payload))

        response = await provider.search(SearchRequest(query="IBM", limit=1))

        assert [r.symbol for r in response.data] == ["IBM"]
        assert response.data[0].asset_type == "stock"
        assert session.calls[0]["params"]["keywords"] == "IBM"


class TestConverters:
    def test_to_decimal(self) -> None:
        assert to_decimal("1.5") == Decimal("1.5")
        assert to_decimal("None") is None
        assert to_decimal("abc") is None

    def test_to_float_strips_percent(self) -> None:
        assert to_float("1.25%") == 1.25
        assert to_float(None) is None
