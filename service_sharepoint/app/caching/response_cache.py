"""
In-process TTL cache for upstream read responses.
"""

import copy
import math
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from cachetools import TTLCache

from shared.logging import get_logger
from shared.metrics import MetricsCollector


class ResponseCache:
    """Fixed-TTL key/value store for decoded JSON responses.

    Values are copied on the way in and out so a cached entry never changes
    after ``set``. There is no size bound; entries leave on expiry or
    explicit invalidation only.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        *,
        name: str = "data",
        timer: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.name = name
        self.metrics = metrics
        self.logger = get_logger(f"sharepoint_gateway.cache.{name}")
        self._store: TTLCache = TTLCache(maxsize=math.inf, ttl=ttl_seconds, timer=timer)
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(prefix: str, *parts: Any) -> str:
        """Generate a readable cache key, e.g. ``item:Documents:7``."""
        return ":".join([prefix] + [str(part) for part in parts])

    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the cached value, or ``None`` on miss/expiry."""
        try:
            value = self._store[key]
        except KeyError:
            self._record(hit=False)
            return None
        self._record(hit=True)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._store[key] = copy.deepcopy(value)
        self.logger.debug("Cached value", key=key, ttl=self.ttl_seconds)

    def delete(self, key: str) -> bool:
        """Remove one exact key. Returns whether it was present."""
        return self._store.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Remove every live key starting with ``prefix``."""
        self._store.expire()
        doomed = [key for key in self._store.keys() if key.startswith(prefix)]
        for key in doomed:
            self._store.pop(key, None)
        if doomed:
            self.logger.info("Cleared cache prefix", prefix=prefix, keys_count=len(doomed))
        return len(doomed)

    def clear(self) -> None:
        self._store.clear()

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key`` or await ``loader`` and cache its result."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        self.set(key, value)
        return copy.deepcopy(value)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __len__(self) -> int:
        self._store.expire()
        return len(self._store)

    def stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "cache": self.name,
            "keys": len(self),
            "ttl_seconds": self.ttl_seconds,
            "hits": self._hits,
            "misses": self._misses,
            "hit_ratio": round(self._hits / total, 4) if total else 0.0,
        }

    def _record(self, hit: bool) -> None:
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        if self.metrics:
            metric = "cache_hits_total" if hit else "cache_misses_total"
            self.metrics.increment_counter(metric, cache_type=self.name)
