"""Response cache for the provider manager."""

import json
import time
from collections.abc import Callable
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from cachetools import TTLCache

from ..utils.logging import get_logger
from .models import ProviderResponse

logger = get_logger(__name__, component="ResponseCache")


def _canonical_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Cannot build cache key from {type(value).__name__}")


def make_cache_key(operation: str, request: Any) -> str:
    """Build a deterministic cache key from an operation and its request.

    The request is serialized by value with sorted keys, so equivalent requests
    map to the same key regardless of field or dict ordering.
    """
    payload = asdict(request) if is_dataclass(request) else request
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=_canonical_default)
    return f"{operation}:{canonical}"


class ResponseCache:
    """In-memory TTL cache of successful provider responses.

    Uses cachetools.TTLCache for automatic expiration. Keys are built with
    :func:`make_cache_key` and are not provider-specific.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry
            max_size: Maximum number of entries
            timer: Clock used for expiry (monotonic seconds)
        """
        self.ttl_seconds = ttl_seconds
        self._cache: TTLCache[str, ProviderResponse[Any]] = TTLCache(
            maxsize=max_size, ttl=ttl_seconds, timer=timer
        )
        self._stats = {
            "hits": 0,
            "misses": 0,
        }

    def get(self, key: str) -> ProviderResponse[Any] | None:
        """Get a non-expired response, or None."""
        value = self._cache.get(key)
        if value is None:
            self._stats["misses"] += 1
            logger.debug("cache_miss", key=key)
            return None

        self._stats["hits"] += 1
        logger.debug("cache_hit", key=key, hits=self._stats["hits"])
        return value

    def set(self, key: str, response: ProviderResponse[Any]) -> None:
        """Store a response; it expires ``ttl_seconds`` from now."""
        if self.ttl_seconds <= 0:
            return
        self._cache[key] = response
        logger.debug("cache_set", key=key, source=response.source)

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        self._cache.clear()
        self._stats = {
            "hits": 0,
            "misses": 0,
        }
        logger.info("cache_cleared")

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with size, hits, misses, total_requests and hit_rate
        """
        total_requests = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / total_requests if total_requests > 0 else 0.0

        return {
            "size": len(self),
            "max_size": self._cache.maxsize,
            "ttl_seconds": self.ttl_seconds,
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "total_requests": total_requests,
            "hit_rate": hit_rate,
        }
