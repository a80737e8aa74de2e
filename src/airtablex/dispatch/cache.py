"""
Expiring, bounded LRU cache.

Backs both the cooldown store and the identity cache:
- Entries expire after ttl_ms without access (idle TTL, refreshed on get)
- At most max_entries are kept; least-recently-used evictable entry goes first
- Optional can_evict predicate pins entries that are in use
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class _CacheEntry(Generic[V]):
    """Internal cache entry with last-access tracking."""

    value: V
    last_access_ms: int


@dataclass
class ExpiringLRUCache(Generic[V]):
    """
    Key/value cache with idle expiry and LRU size bound.

    Expiry is lazy: stale entries are purged on get/put/len.

    Usage:
        cache: ExpiringLRUCache[str] = ExpiringLRUCache(ttl_ms=60000, max_entries=100)
        cache.put("k", "v")
        cache.get("k")  # "v", access time refreshed
    """

    ttl_ms: int
    max_entries: int
    can_evict: Callable[[V], bool] | None = field(default=None)

    _entries: OrderedDict[str, _CacheEntry[V]] = field(default_factory=OrderedDict, init=False)

    # Optional time provider for deterministic testing
    _time_fn: Callable[[], int] | None = field(default=None)

    def __post_init__(self) -> None:
        if self.ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be > 0, got {self.ttl_ms}")
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {self.max_entries}")

    def _now_ms(self) -> int:
        """Get current time in milliseconds."""
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.time() * 1000)

    def _evictable(self, entry: _CacheEntry[V]) -> bool:
        return self.can_evict is None or self.can_evict(entry.value)

    def _purge_expired(self, now_ms: int) -> None:
        """Drop entries idle for at least ttl_ms."""
        expired = [
            key
            for key, entry in self._entries.items()
            if now_ms - entry.last_access_ms >= self.ttl_ms and self._evictable(entry)
        ]
        for key in expired:
            del self._entries[key]

    def _enforce_capacity(self) -> None:
        """Evict least-recently-used entries until within max_entries."""
        while len(self._entries) > self.max_entries:
            victim = next(
                (key for key, entry in self._entries.items() if self._evictable(entry)),
                None,
            )
            if victim is None:
                # Everything is pinned; allow temporary overflow
                logger.warning(
                    "Cache over capacity with no evictable entries",
                    extra={"size": len(self._entries), "max_entries": self.max_entries},
                )
                return
            del self._entries[victim]

    def get(self, key: str) -> V | None:
        """Return cached value and refresh its access time, or None."""
        now_ms = self._now_ms()
        self._purge_expired(now_ms)
        entry = self._entries.get(key)
        if entry is None:
            return None
        entry.last_access_ms = now_ms
        self._entries.move_to_end(key)
        return entry.value

    def put(self, key: str, value: V) -> None:
        """Insert or overwrite a value."""
        now_ms = self._now_ms()
        self._purge_expired(now_ms)
        self._entries[key] = _CacheEntry(value=value, last_access_ms=now_ms)
        self._entries.move_to_end(key)
        self._enforce_capacity()

    def pop(self, key: str) -> V | None:
        """Remove and return a value, or None if absent."""
        entry = self._entries.pop(key, None)
        return entry.value if entry is not None else None

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        # Does not refresh access time
        if not isinstance(key, str) or key not in self._entries:
            return False
        entry = self._entries[key]
        return self._now_ms() - entry.last_access_ms < self.ttl_ms

    def __len__(self) -> int:
        self._purge_expired(self._now_ms())
        return len(self._entries)


class CacheRegistry:
    """
    Named caches, created once per registry.

    get_or_create() is idempotent: repeated initialization returns the
    instance created first, so several clients can share one cooldown store.
    """

    def __init__(self, _time_fn: Callable[[], int] | None = None) -> None:
        self._caches: dict[str, ExpiringLRUCache[object]] = {}
        self._time_fn = _time_fn

    def get_or_create(
        self,
        name: str,
        ttl_ms: int,
        max_entries: int,
        can_evict: Callable[[object], bool] | None = None,
    ) -> ExpiringLRUCache[object]:
        """
        Get the cache registered under name, creating it on first use.

        Args:
            name: Registry key.
            ttl_ms: Idle TTL (only used on creation).
            max_entries: Size bound (only used on creation).
            can_evict: Pinning predicate (only used on creation).

        Returns:
            The shared ExpiringLRUCache.
        """
        cache = self._caches.get(name)
        if cache is not None:
            if cache.ttl_ms != ttl_ms or cache.max_entries != max_entries:
                logger.debug(
                    "Cache already initialized with different limits",
                    extra={"cache": name, "ttl_ms": cache.ttl_ms, "max_entries": cache.max_entries},
                )
            return cache

        cache = ExpiringLRUCache(
            ttl_ms=ttl_ms,
            max_entries=max_entries,
            can_evict=can_evict,
            _time_fn=self._time_fn,
        )
        self._caches[name] = cache
        return cache

    def __contains__(self, name: object) -> bool:
        return name in self._caches

    def clear(self) -> None:
        """Drop all registered caches."""
        self._caches.clear()
