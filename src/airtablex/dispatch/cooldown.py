"""
Per-identity cooldown store.

Records the earliest time each identity may send its next request.
- No entry: immediately eligible
- Entries expire after an idle TTL and the store is LRU-bounded
- hold(identity) serializes the read-wait-send-write sequence per identity
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from airtablex.dispatch.cache import CacheRegistry, ExpiringLRUCache

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

COOLDOWN_CACHE_NAME = "cooldown"


@dataclass
class CooldownEntry:
    """Cooldown state for one identity."""

    next_allowed_ms: int | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0  # Tasks holding or waiting for the lock


def _entry_is_idle(entry: object) -> bool:
    """Entries held or awaited by a dispatch are in use and must not be evicted."""
    return not (isinstance(entry, CooldownEntry) and entry.holders > 0)


@dataclass
class CooldownStore:
    """
    Shared identity -> next-allowed-time map.

    Constructed once per client (or shared across clients through a
    CacheRegistry) and passed to every dispatcher.

    Usage:
        store = CooldownStore()
        async with store.hold("usrABC"):
            next_allowed = store.get_next_allowed("usrABC")
            ...
            store.set_next_allowed("usrABC", end_ms + 200)
    """

    idle_ttl_ms: int = 600000
    max_entries: int = 1000
    cache: ExpiringLRUCache[object] | None = field(default=None)

    # Optional time provider for deterministic testing
    _time_fn: Callable[[], int] | None = field(default=None)

    def __post_init__(self) -> None:
        if self.cache is None:
            self.cache = ExpiringLRUCache(
                ttl_ms=self.idle_ttl_ms,
                max_entries=self.max_entries,
                can_evict=_entry_is_idle,
                _time_fn=self._time_fn,
            )

    @classmethod
    def shared(
        cls,
        registry: CacheRegistry,
        idle_ttl_ms: int = 600000,
        max_entries: int = 1000,
    ) -> CooldownStore:
        """Build a store backed by the registry's cooldown cache (idempotent)."""
        cache = registry.get_or_create(
            COOLDOWN_CACHE_NAME,
            ttl_ms=idle_ttl_ms,
            max_entries=max_entries,
            can_evict=_entry_is_idle,
        )
        return cls(idle_ttl_ms=cache.ttl_ms, max_entries=cache.max_entries, cache=cache)

    def _cache(self) -> ExpiringLRUCache[object]:
        assert self.cache is not None  # Set in __post_init__
        return self.cache

    def _entry(self, identity: str, *, pin: bool = False) -> CooldownEntry:
        """
        Get or create the entry for an identity.

        With pin=True the entry counts as held before it is inserted, so a
        full store cannot evict it on insertion.
        """
        cache = self._cache()
        entry = cache.get(identity)
        if isinstance(entry, CooldownEntry):
            if pin:
                entry.holders += 1
            return entry
        entry = CooldownEntry(holders=1 if pin else 0)
        cache.put(identity, entry)
        return entry

    def get_next_allowed(self, identity: str) -> int | None:
        """
        Get the earliest time the identity may send.

        Returns:
            Timestamp in milliseconds, or None if no cooldown is recorded.
        """
        entry = self._cache().get(identity)
        if not isinstance(entry, CooldownEntry):
            return None
        return entry.next_allowed_ms

    def set_next_allowed(self, identity: str, timestamp_ms: int) -> None:
        """Record the earliest time the identity may send next."""
        self._entry(identity).next_allowed_ms = timestamp_ms

    @contextlib.asynccontextmanager
    async def hold(self, identity: str) -> AsyncIterator[None]:
        """
        Exclusive access for one identity.

        Only the calling task waits; other identities are unaffected.
        """
        entry = self._entry(identity, pin=True)
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1

    def __len__(self) -> int:
        return len(self._cache())

    def get_status(self) -> dict[str, int]:
        """Get current store status for observability."""
        return {
            "entries": len(self),
            "max_entries": self.max_entries,
            "idle_ttl_ms": self.idle_ttl_ms,
        }

    def reset(self) -> None:
        """Forget all cooldowns."""
        self._cache().clear()
