from __future__ import annotations

import threading
from typing import Any, Callable

from cachetools import TTLCache


_MISSING = object()


class _ReadCache:
    """Process-local TTL cache for read-mostly aggregates (dashboard counts)."""

    def __init__(self, ttl_seconds: int = 30, max_items: int = 1024):
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._cache = TTLCache(maxsize=max(16, int(max_items)), ttl=max(1, min(3600, int(ttl_seconds))))

    def configure(self, ttl_seconds: int, max_items: int = 1024) -> None:
        with self._lock:
            self._cache = TTLCache(maxsize=max(16, int(max_items)), ttl=max(1, min(3600, int(ttl_seconds))))
            self._hits = 0
            self._misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            val = self._cache.get(key, _MISSING)
            if val is _MISSING:
                self._misses += 1
                return default
            self._hits += 1
            return val

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        val = self.get(key, _MISSING)
        if val is not _MISSING:
            return val
        # Computed outside the lock; a concurrent miss may compute twice.
        computed = factory()
        self.set(key, computed)
        return computed

    def invalidate_prefix(self, prefix: str) -> int:
        pfx = str(prefix or "")
        if not pfx:
            return 0
        with self._lock:
            keys = [k for k in list(self._cache.keys()) if str(k).startswith(pfx)]
            for k in keys:
                self._cache.pop(k, None)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
                "ttl": self._cache.ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round((self._hits / total * 100) if total else 0.0, 2),
            }


_cache = _ReadCache()


def configure_cache(ttl_seconds: int) -> None:
    _cache.configure(ttl_seconds)


def cache_get_or_set(key: str, factory: Callable[[], Any]) -> Any:
    return _cache.get_or_set(key, factory)


def cache_invalidate_prefix(prefix: str) -> int:
    return _cache.invalidate_prefix(prefix)


def cache_clear() -> None:
    _cache.clear()


def cache_stats() -> dict[str, Any]:
    return _cache.stats()
