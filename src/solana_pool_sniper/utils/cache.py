"""Read-through key/value cache with per-entry time-to-live."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from cachetools import TLRUCache

from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

T = TypeVar("T")

TTL_DEFAULT = 120.0
TTL_SLOW = 300.0

MISSING: Any = object()


@dataclass(slots=True, frozen=True)
class _Entry:
    value: Any
    ttl: float


def _time_to_use(_key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl


def cache_key(scope: str, identifier: object) -> str:
    return f"{scope}:{identifier}"


class ReadThroughCache:
    """Shared cache for pool keys, markets, prices, verdicts and sentiment.

    Keys are plain strings of the form ``"<scope>:<id>"`` so whole scopes can be
    cleared at once. Entries carry their own TTL; an expired entry is treated
    exactly like a missing one. There is no size bound.
    """

    def __init__(
        self,
        default_ttl: float = TTL_DEFAULT,
        *,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._store: TLRUCache = TLRUCache(maxsize=math.inf, ttu=_time_to_use, timer=timer)
        self._logger = get_logger(__name__)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._store.get(key, MISSING)
        if entry is MISSING:
            return default
        return entry.value

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            self._store.pop(key, None)
            return
        self._store[key] = _Entry(value=value, ttl=ttl)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self, scope: Optional[str] = None) -> int:
        """Drop every entry, or only those whose key starts with ``scope:``."""

        if scope is None:
            count = len(self._store)
            self._store.clear()
            return count
        prefix = f"{scope}:"
        doomed = [key for key in list(self._store.keys()) if key.startswith(prefix)]
        for key in doomed:
            self._store.pop(key, None)
        return len(doomed)

    def sweep(self) -> int:
        """Evict expired entries; returns how many were removed."""

        expired = self._store.expire()
        removed = len(expired) if expired else 0
        if removed:
            METRICS.increment("cache_evictions", removed)
            self._logger.debug("Swept %d expired cache entries", removed)
        return removed

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
    ) -> T:
        """Return the cached value for ``key`` or await ``loader`` and cache it.

        Loader exceptions propagate and nothing is cached.
        """

        entry = self._store.get(key, MISSING)
        if entry is not MISSING:
            METRICS.increment("cache_hits")
            return entry.value
        METRICS.increment("cache_misses")
        value = await loader()
        self.set(key, value, ttl)
        return value

    def __len__(self) -> int:
        return len(self._store)


__all__ = [
    "MISSING",
    "ReadThroughCache",
    "TTL_DEFAULT",
    "TTL_SLOW",
    "cache_key",
]
