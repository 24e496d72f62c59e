"""Command-line entry point.

Usage:
    tickerhub quote AAPL MSFT
    tickerhub history AAPL --period 6mo
    tickerhub news --limit 5
    tickerhub health

Configuration comes from the environment (see :mod:`tickerhub.config`).
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from .config import Config
from .data.errors import FinancialDataError
from .data.manager import ProviderManager
from .data.models import TIME_PERIODS
from .factory import build_provider_manager
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__, component="CLI")


def _to_jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return _to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def serialize_response(response: Any) -> dict[str, Any]:
    """Convert a ProviderResponse (or any dataclass) into a JSON-serializable dict.

    Decimals become floats and dates become ISO-8601 strings.
    """
    return _to_jsonable(response)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tickerhub", description="Query market data providers")
    sub = parser.add_subparsers(dest="command", required=True)

    quote = sub.add_parser("quote", help="Current quotes")
    quote.add_argument("symbols", nargs="+")

    history = sub.add_parser("history", help="Daily price history")
    history.add_argument("symbol")
    history.add_argument("--period", default="1y", choices=TIME_PERIODS)
    history.add_argument("--start", type=date.fromisoformat, help="YYYY-MM-DD")
    history.add_argument("--end", type=date.fromisoformat, help="YYYY-MM-DD")

    profile = sub.add_parser("profile", help="Company profile")
    profile.add_argument("symbol")

    news = sub.add_parser("news", help="Latest news")
    news.add_argument("symbols", nargs="*")
    news.add_argument("--limit", type=int, default=10)

    search = sub.add_parser("search", help="Symbol search")
    search.add_argument("query")
    search.add_argument("--limit", type=int)

    sub.add_parser("health", help="Check the health of every configured provider")
    return parser


async def run_command(args: argparse.Namespace, manager: ProviderManager) -> Any:
    """Dispatch a parsed command to the manager and return a JSON-ready result."""
    if args.command == "quote":
        return serialize_response(await manager.get_quotes(args.symbols))
    if args.command == "history":
        response = await manager.get_historical_data(
            args.symbol, period=args.period, start_date=args.start, end_date=args.end
        )
        return serialize_response(response)
    if args.command == "profile":
        return serialize_response(await manager.get_company_profile(args.symbol))
    if args.command == "news":
        return serialize_response(await manager.get_news(args.symbols, limit=args.limit))
    if args.command == "search":
        return serialize_response(await manager.search(args.query, limit=args.limit))
    if args.command == "health":
        return serialize_response(await manager.check_all_providers_health())
    raise ValueError(f"Unknown command: {args.command}")


async def _run(args: argparse.Namespace, config: Config) -> Any:
    manager = build_provider_manager(config)
    try:
        return await run_command(args, manager)
    finally:
        await manager.destroy()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        config = Config()
    except ValueError as e:
        print(f"error: invalid configuration: {e}", file=sys.stderr)
        return 2

    # Logs go to stderr so stdout stays valid JSON
    setup_logging(level=config.log_level, format_type=config.log_format, stream=sys.stderr)

    try:
        result = asyncio.run(_run(args, config))
    except FinancialDataError as e:
        logger.error("command_failed", command=args.command, code=e.code.value, error=e.message)
        print(f"error: {e.code.value}: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        # Invalid request arguments (empty symbols, reversed dates, ...)
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
