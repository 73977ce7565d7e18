# Overview: In-process cache for read results, keyed by hierarchical tuples.

from __future__ import annotations

import copy
import threading
import time
from typing import Any, Callable, Hashable


CacheKey = tuple


def _as_key(key) -> CacheKey:
    if isinstance(key, tuple):
        return key
    return (key,)


class QueryCache:
    """
    Keyed store of serialized read results.

    Keys are tuples such as ("sales", filters_tuple). invalidate(prefix)
    drops every entry whose key starts with the given prefix, so
    invalidate("sales") clears every cached sales list and detail.

    Values are deep-copied on the way in and out so callers can mutate
    the returned rows without corrupting the cache.
    """

    def __init__(self, *, ttl_seconds: float = 300, enabled: bool = True):
        self._entries: dict[CacheKey, tuple[float, Any]] = {}
        self._lock = threading.RLock()
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.hits = 0
        self.misses = 0

    def init_app(self, app) -> None:
        self.enabled = bool(app.config.get("QUERY_CACHE_ENABLED", True))
        self.ttl_seconds = float(app.config.get("QUERY_CACHE_TTL_SECONDS", 300))
        app.extensions["query_cache"] = self

    def get(self, key: Hashable, default=None):
        key = _as_key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            stored_at, value = entry
            if self.ttl_seconds and time.monotonic() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return default
            return copy.deepcopy(value)

    def set(self, key: Hashable, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[_as_key(key)] = (time.monotonic(), copy.deepcopy(value))

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value for key, calling loader() on a miss."""
        if not self.enabled:
            return loader()

        key = _as_key(key)
        sentinel = object()
        cached = self.get(key, sentinel)
        if cached is not sentinel:
            with self._lock:
                self.hits += 1
            return cached

        value = loader()
        with self._lock:
            self.misses += 1
        self.set(key, value)
        return value

    def invalidate(self, *prefixes) -> int:
        """Drop every key starting with any of the prefixes. Returns the count removed."""
        targets = [_as_key(p) for p in prefixes]
        removed = 0
        with self._lock:
            for key in list(self._entries):
                if any(key[: len(t)] == t for t in targets):
                    del self._entries[key]
                    removed += 1
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def keys(self) -> list[CacheKey]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def freeze(value) -> Hashable:
    """Turn filter dicts/lists into something usable inside a cache key."""
    if isinstance(value, dict):
        return tuple(sorted((k, freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple, set)):
        return tuple(freeze(v) for v in value)
    return value
