"""Structured logging built on structlog."""

import logging
import sys
from typing import Any, Literal, TextIO

import structlog

LogFormat = Literal["text", "json"]


def setup_logging(
    level: str = "INFO", format_type: LogFormat = "text", stream: TextIO | None = None
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        format_type: 'text' for a colored console renderer, 'json' for one JSON
            object per line
        stream: Output stream (defaults to stdout)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=stream or sys.stdout,
        force=True,
    )

    renderer: Any
    if format_type == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> Any:
    """Get a structlog logger bound to ``name`` and optional context.

    Example:
        >>> logger = get_logger(__name__, component="ProviderManager")
        >>> logger.info("provider_registered", provider="yahoo_finance")
    """
    return structlog.get_logger(name, **context)
