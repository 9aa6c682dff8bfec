"""
Unit tests for the entity cache.
"""

import threading

import pytest

from entity_store.repositories.cache import CacheEntry, CacheStats, CacheStore


class TestCacheEntry:
    def test_expiry_is_strictly_after_ttl(self):
        entry = CacheEntry(value={"id": "1"}, inserted_at=100.0, ttl_seconds=10.0)

        assert not entry.is_expired(110.0)
        assert entry.is_expired(110.001)


class TestCacheStats:
    def test_hit_rate(self):
        stats = CacheStats(size=2, hits=3, misses=1)

        assert stats.hit_rate == pytest.approx(0.75)

    def test_hit_rate_undefined_without_lookups(self):
        assert CacheStats(size=0).hit_rate is None


class TestCacheStore:
    """Test CacheStore behaviour."""

    @pytest.fixture
    def cache(self, fake_clock):
        return CacheStore(default_ttl_seconds=60.0, clock=fake_clock)

    def test_set_then_get(self, cache):
        cache.set("thing:1", {"id": "1", "name": "one"})

        assert cache.get("thing:1") == {"id": "1", "name": "one"}

    def test_miss_returns_none(self, cache):
        assert cache.get("thing:missing") is None
        assert cache.stats().misses == 1

    def test_entry_expires_after_ttl(self, cache, fake_clock):
        cache.set("thing:1", {"id": "1"}, ttl_seconds=5.0)

        fake_clock.advance(5.0)
        assert cache.get("thing:1") == {"id": "1"}

        fake_clock.advance(0.5)
        assert cache.get("thing:1") is None

    def test_default_ttl_applies(self, cache, fake_clock):
        cache.set("thing:1", {"id": "1"})

        fake_clock.advance(61.0)

        assert cache.get("thing:1") is None

    def test_set_restarts_expiry(self, cache, fake_clock):
        cache.set("thing:1", {"id": "1"}, ttl_seconds=10.0)
        fake_clock.advance(8.0)
        cache.set("thing:1", {"id": "1", "v": 2}, ttl_seconds=10.0)
        fake_clock.advance(8.0)

        assert cache.get("thing:1") == {"id": "1", "v": 2}

    def test_values_are_copied(self, cache):
        entity = {"id": "1", "tags": ["a"]}
        cache.set("thing:1", entity)
        entity["tags"].append("mutated")

        cached = cache.get("thing:1")
        cached["tags"].append("also-mutated")

        assert cache.get("thing:1") == {"id": "1", "tags": ["a"]}

    def test_invalidate(self, cache):
        cache.set("thing:1", {"id": "1"})

        cache.invalidate("thing:1")
        cache.invalidate("thing:never-set")

        assert cache.get("thing:1") is None

    def test_clear_keeps_counters(self, cache):
        cache.set("thing:1", {"id": "1"})
        cache.get("thing:1")

        cache.clear()
        stats = cache.stats()

        assert stats.size == 0
        assert stats.hits == 1

    def test_stats_counts_only_live_entries(self, cache, fake_clock):
        cache.set("thing:1", {"id": "1"}, ttl_seconds=1.0)
        cache.set("thing:2", {"id": "2"}, ttl_seconds=100.0)
        cache.get("thing:1")
        cache.get("thing:3")

        fake_clock.advance(2.0)
        stats = cache.stats()

        assert stats.size == 1
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(0.5)

    def test_non_positive_ttl_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set("thing:1", {"id": "1"}, ttl_seconds=0)

        with pytest.raises(ValueError):
            CacheStore(default_ttl_seconds=0)

    def test_lru_eviction_when_full(self, fake_clock):
        cache = CacheStore(default_ttl_seconds=60.0, max_entries=2, clock=fake_clock)
        cache.set("thing:1", {"id": "1"})
        cache.set("thing:2", {"id": "2"})
        cache.get("thing:1")

        cache.set("thing:3", {"id": "3"})

        assert cache.get("thing:2") is None
        assert cache.get("thing:1") == {"id": "1"}
        assert cache.get("thing:3") == {"id": "3"}
        assert cache.stats().evictions == 1

    def test_expired_entries_dropped_before_eviction(self, fake_clock):
        cache = CacheStore(default_ttl_seconds=60.0, max_entries=2, clock=fake_clock)
        cache.set("thing:1", {"id": "1"}, ttl_seconds=1.0)
        cache.set("thing:2", {"id": "2"})
        fake_clock.advance(5.0)

        cache.set("thing:3", {"id": "3"})

        assert cache.get("thing:2") == {"id": "2"}
        assert cache.stats().evictions == 0

    def test_invalid_max_entries_rejected(self):
        with pytest.raises(ValueError):
            CacheStore(max_entries=0)

    def test_concurrent_writers(self):
        cache = CacheStore(default_ttl_seconds=60.0, max_entries=50)

        def writer(offset):
            for i in range(200):
                cache.set(f"thing:{offset}:{i}", {"i": i})
                cache.get(f"thing:{offset}:{i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats = cache.stats()
        assert stats.size == 50
        assert stats.evictions == 4 * 200 - 50


class TestReadThroughFill:
    """Test reserve/set_if_current coordination with writes."""

    @pytest.fixture
    def cache(self, fake_clock):
        return CacheStore(default_ttl_seconds=60.0, clock=fake_clock)

    def test_fill_without_intervening_write(self, cache):
        token = cache.reserve("thing:1")

        assert cache.set_if_current("thing:1", token, {"id": "1", "name": "old"})
        assert cache.get("thing:1") == {"id": "1", "name": "old"}

    def test_write_during_read_wins(self, cache):
        token = cache.reserve("thing:1")
        cache.set("thing:1", {"id": "1", "name": "new"})

        assert not cache.set_if_current("thing:1", token, {"id": "1", "name": "old"})
        assert cache.get("thing:1") == {"id": "1", "name": "new"}

    def test_invalidate_during_read_wins(self, cache):
        token = cache.reserve("thing:1")
        cache.invalidate("thing:1")

        assert not cache.set_if_current("thing:1", token, {"id": "1"})
        assert cache.get("thing:1") is None

    def test_clear_revokes_reservations(self, cache):
        token = cache.reserve("thing:1")
        cache.clear()

        assert not cache.set_if_current("thing:1", token, {"id": "1"})

    def test_token_is_single_use(self, cache):
        token = cache.reserve("thing:1")
        cache.release("thing:1", token)

        assert not cache.set_if_current("thing:1", token, {"id": "1"})

    def test_concurrent_reads_fill_independently(self, cache):
        first = cache.reserve("thing:1")
        second = cache.reserve("thing:1")

        assert cache.set_if_current("thing:1", first, {"id": "1"})
        assert cache.set_if_current("thing:1", second, {"id": "1"})

    def test_empty_cache_is_not_falsy(self, cache):
        assert bool(cache) is True
