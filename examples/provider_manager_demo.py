"""Demo script for the provider manager.

This demonstrates:
1. Building a manager from environment configuration
2. Fetching quotes and history with automatic fallback
3. Cache hits on repeated requests
4. Provider health reporting

Requirements:
- Yahoo Finance works without a key
- Set ALPHA_VANTAGE__API_KEY to add Alpha Vantage as a fallback

Run with: python examples/provider_manager_demo.py
"""

import asyncio
import sys

from tickerhub.config import Config
from tickerhub.data.errors import FinancialDataError
from tickerhub.data.manager import ProviderManager
from tickerhub.factory import build_provider_manager
from tickerhub.utils.logging import setup_logging


async def show_quotes(manager: ProviderManager, symbols: list[str]) -> None:
    """Fetch quotes twice to show the cache at work."""
    print(f"\nFetching quotes for {', '.join(symbols)}...")
    print("-" * 60)

    response = await manager.get_quotes(symbols)
    for quote in response.data:
        change = f"{quote.change_percent:+.2f}%" if quote.change_percent is not None else "N/A"
        print(f"{quote.symbol:<8} ${quote.price:>10.2f}  {change}")
    print(f"Source: {response.source} (cached={response.cached})")

    again = await manager.get_quotes(symbols)
    print(f"Second call source: {again.source} (cached={again.cached})")


async def show_history(manager: ProviderManager, symbol: str) -> None:
    """Summarize three months of daily closes."""
    print(f"\nFetching 3 months of history for {symbol}...")
    print("-" * 60)

    response = await manager.get_historical_data(symbol, period="3mo")
    closes = [bar.close for bar in response.data]
    if not closes:
        print("No data returned")
        return

    print(f"Trading days: {len(closes)}")
    print(f"High close: ${max(closes):.2f}")
    print(f"Low close: ${min(closes):.2f}")
    print(f"Source: {response.source}")


async def main() -> None:
    """Run provider manager demo."""
    print("#" * 60)
    print("# Provider Manager Demo")
    print("#" * 60)

    config = Config()
    setup_logging(level="WARNING")

    async with build_provider_manager(config) as manager:
        print(f"\nProvider order: {' -> '.join(manager.provider_order())}")

        try:
            await show_quotes(manager, ["AAPL", "MSFT"])
            await show_history(manager, "AAPL")
        except FinancialDataError as e:
            print(f"\nRequest failed: {e.code.value}: {e}")

        print("\nProvider health:")
        for name, health in (await manager.check_all_providers_health()).items():
            status = "healthy" if health.healthy else f"unhealthy ({health.last_error})"
            print(f"  {name}: {status}")

        print(f"\nCache stats: {manager.get_cache_stats()}")

    print("\n" + "#" * 60)
    print("# Demo Complete!")
    print("#" * 60)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\nDemo interrupted by user")
        sys.exit(0)
