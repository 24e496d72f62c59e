"""Data provider implementations."""

from .alpha_vantage import AlphaVantageProvider
from .yahoo_finance import YahooFinanceProvider

__all__ = ["AlphaVantageProvider", "YahooFinanceProvider"]
