"""Tests for data models."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from tickerhub.data.models import (
    EarningsRequest,
    HistoricalDataRequest,
    HistoricalPrice,
    NewsRequest,
    Operation,
    ProviderCapabilities,
    Quote,
    QuoteRequest,
    SearchRequest,
    Split,
)


class TestQuote:
    """Tests for Quote model."""

    def test_quote_calculates_change(self) -> None:
        """Quote calculates change from previous close."""
        quote = Quote(
            symbol="AAPL",
            price=Decimal("150.00"),
            timestamp=datetime.now(timezone.utc),
            previous_close=Decimal("149.00"),
        )

        assert quote.change == Decimal("1.00")
        assert quote.change_percent is not None
        assert abs(quote.change_percent - 0.671) < 0.01

    def test_quote_keeps_vendor_change(self) -> None:
        """Vendor-supplied change values are not recalculated."""
        quote = Quote(
            symbol="AAPL",
            price=Decimal("150.00"),
            timestamp=datetime.now(timezone.utc),
            previous_close=Decimal("149.00"),
            change=Decimal("1.10"),
            change_percent=0.7,
        )

        assert quote.change == Decimal("1.10")
        assert quote.change_percent == 0.7

    def test_quote_without_previous_close(self) -> None:
        """Quote works without previous close."""
        quote = Quote(symbol="AAPL", price=Decimal("150.00"), timestamp=datetime.now(timezone.utc))

        assert quote.change is None
        assert quote.change_percent is None


class TestHistoricalPrice:
    """Tests for HistoricalPrice model."""

    def test_price_range_and_body(self) -> None:
        """Range and candle body are derived from OHLC."""
        bar = HistoricalPrice(
            date=date(2024, 1, 2),
            open=Decimal("100"),
            high=Decimal("105"),
            low=Decimal("98"),
            close=Decimal("97.5"),
            volume=1000,
        )

        assert bar.price_range == Decimal("7")
        assert bar.body_size == Decimal("2.5")


class TestSplit:
    def test_reverse_split(self) -> None:
        assert Split(symbol="X", date=date(2024, 1, 1), ratio=Decimal("0.1")).is_reverse
        assert not Split(symbol="X", date=date(2024, 1, 1), ratio=Decimal("4")).is_reverse


class TestRequests:
    """Tests for request normalization and validation."""

    def test_quote_request_normalizes_symbols(self) -> None:
        """Symbols are trimmed, uppercased and blanks dropped."""
        request = QuoteRequest(symbols=[" aapl", "msft ", ""])
        assert request.symbols == ("AAPL", "MSFT")

    def test_quote_request_accepts_single_string(self) -> None:
        assert QuoteRequest(symbols="ibm").symbols == ("IBM",)

    def test_quote_request_requires_symbol(self) -> None:
        with pytest.raises(ValueError, match="symbol"):
            QuoteRequest(symbols=[])

    def test_historical_request_rejects_reversed_dates(self) -> None:
        """start_date after end_date is rejected."""
        with pytest.raises(ValueError, match="start_date"):
            HistoricalDataRequest(
                symbol="AAPL", start_date=date(2024, 2, 1), end_date=date(2024, 1, 1)
            )

    def test_historical_request_rejects_unknown_period(self) -> None:
        with pytest.raises(ValueError, match="Unsupported period"):
            HistoricalDataRequest(symbol="AAPL", period="7w")  # type: ignore[arg-type]

    def test_news_request_limit_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            NewsRequest(limit=0)

    @pytest.mark.parametrize("limit", [0, -1])
    def test_limits_must_be_positive(self, limit: int) -> None:
        """Non-positive limits are rejected for earnings and search."""
        with pytest.raises(ValueError, match="limit"):
            EarningsRequest(symbol="AAPL", limit=limit)
        with pytest.raises(ValueError, match="limit"):
            SearchRequest(query="apple", limit=limit)

    def test_search_request_strips_query(self) -> None:
        assert SearchRequest(query="  apple ").query == "apple"
        with pytest.raises(ValueError):
            SearchRequest(query="   ")


class TestProviderCapabilities:
    """Tests for capability flags."""

    def test_required_operations_default_on(self) -> None:
        """Quotes, history and profile are supported by default; extras are not."""
        caps = ProviderCapabilities()

        assert caps.supports(Operation.QUOTES)
        assert caps.supports(Operation.HISTORICAL_DATA)
        assert caps.supports(Operation.COMPANY_PROFILE)
        assert not caps.supports(Operation.NEWS)
        assert not caps.supports(Operation.SEARCH)

    def test_every_operation_maps_to_a_flag(self) -> None:
        flags = ProviderCapabilities().as_dict()
        for operation in Operation:
            assert operation.capability in flags
