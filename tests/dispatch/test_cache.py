"""Tests for ExpiringLRUCache and CacheRegistry."""

from __future__ import annotations

import pytest

from airtablex.dispatch.cache import CacheRegistry, ExpiringLRUCache
from tests.fixtures.stub_transport import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestExpiringLRUCache:
    def test_put_get(self, clock: FakeClock) -> None:
        cache: ExpiringLRUCache[str] = ExpiringLRUCache(ttl_ms=1000, max_entries=10, _time_fn=clock)
        cache.put("a", "1")
        assert cache.get("a") == "1"
        assert cache.get("missing") is None

    def test_idle_expiry(self, clock: FakeClock) -> None:
        cache: ExpiringLRUCache[str] = ExpiringLRUCache(ttl_ms=1000, max_entries=10, _time_fn=clock)
        cache.put("a", "1")

        clock.advance(1000)

        assert cache.get("a") is None
        assert len(cache) == 0

    def test_get_refreshes_access_time(self, clock: FakeClock) -> None:
        cache: ExpiringLRUCache[str] = ExpiringLRUCache(ttl_ms=1000, max_entries=10, _time_fn=clock)
        cache.put("a", "1")

        clock.advance(800)
        assert cache.get("a") == "1"
        clock.advance(800)

        assert cache.get("a") == "1"

    def test_contains_does_not_refresh(self, clock: FakeClock) -> None:
        cache: ExpiringLRUCache[str] = ExpiringLRUCache(ttl_ms=1000, max_entries=10, _time_fn=clock)
        cache.put("a", "1")

        clock.advance(800)
        assert "a" in cache
        clock.advance(300)

        assert "a" not in cache

    def test_lru_eviction(self, clock: FakeClock) -> None:
        cache: ExpiringLRUCache[str] = ExpiringLRUCache(ttl_ms=10000, max_entries=2, _time_fn=clock)
        cache.put("a", "1")
        cache.put("b", "2")
        cache.get("a")  # b is now least recently used

        cache.put("c", "3")

        assert cache.get("b") is None
        assert cache.get("a") == "1"
        assert cache.get("c") == "3"

    def test_pinned_entries_not_evicted(self, clock: FakeClock) -> None:
        cache: ExpiringLRUCache[str] = ExpiringLRUCache(
            ttl_ms=1000,
            max_entries=1,
            can_evict=lambda v: v != "pinned",
            _time_fn=clock,
        )
        cache.put("a", "pinned")
        cache.put("b", "free")

        # The unpinned entry is evicted even though it is newer
        assert cache.get("b") is None
        assert cache.get("a") == "pinned"

        clock.advance(5000)
        assert cache.get("a") == "pinned"

    def test_pop_and_clear(self, clock: FakeClock) -> None:
        cache: ExpiringLRUCache[str] = ExpiringLRUCache(ttl_ms=1000, max_entries=10, _time_fn=clock)
        cache.put("a", "1")
        cache.put("b", "2")

        assert cache.pop("a") == "1"
        assert cache.pop("a") is None
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize(("ttl_ms", "max_entries"), [(0, 10), (-1, 10), (1000, 0)])
    def test_invalid_limits(self, ttl_ms: int, max_entries: int) -> None:
        with pytest.raises(ValueError):
            ExpiringLRUCache(ttl_ms=ttl_ms, max_entries=max_entries)


class TestCacheRegistry:
    def test_get_or_create_is_idempotent(self, clock: FakeClock) -> None:
        registry = CacheRegistry(_time_fn=clock)

        first = registry.get_or_create("cooldown", ttl_ms=1000, max_entries=10)
        second = registry.get_or_create("cooldown", ttl_ms=5000, max_entries=99)

        assert first is second
        assert second.ttl_ms == 1000
        assert second.max_entries == 10

    def test_names_are_independent(self) -> None:
        registry = CacheRegistry()

        a = registry.get_or_create("cooldown", ttl_ms=1000, max_entries=10)
        b = registry.get_or_create("identity", ttl_ms=1000, max_entries=10)

        assert a is not b
        assert "cooldown" in registry
        assert "other" not in registry

    def test_clear(self) -> None:
        registry = CacheRegistry()
        registry.get_or_create("cooldown", ttl_ms=1000, max_entries=10)

        registry.clear()

        assert "cooldown" not in registry

    def test_registry_clock_used(self, clock: FakeClock) -> None:
        registry = CacheRegistry(_time_fn=clock)
        cache = registry.get_or_create("identity", ttl_ms=1000, max_entries=10)
        cache.put("k", "v")

        clock.advance(1000)

        assert cache.get("k") is None
