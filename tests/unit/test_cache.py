"""Unit tests for the bounded LRU cache."""

import pytest

from search_core.search.cache import LRUCache


@pytest.mark.unit
class TestLRUCache:
    def test_evicts_least_recently_used(self):
        cache: LRUCache[str, int] = LRUCache(2)
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.get("a") == 1

        cache.put("c", 3)

        assert "b" not in cache
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.metrics.evictions == 1

    def test_put_refreshes_existing_key(self):
        cache: LRUCache[str, int] = LRUCache(2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("a", 10)
        cache.put("c", 3)

        assert cache.get("a") == 10
        assert "b" not in cache
        assert len(cache) == 2

    def test_counts_hits_and_misses(self):
        cache: LRUCache[str, int] = LRUCache(4)
        cache.put("a", 1)

        cache.get("a")
        cache.get("missing")

        assert cache.metrics.snapshot() == {"hits": 1, "misses": 1, "evictions": 0}

    def test_zero_capacity_disables_caching(self):
        cache: LRUCache[str, int] = LRUCache(0)
        cache.put("a", 1)

        assert cache.get("a") is None
        assert len(cache) == 0

    def test_clear(self):
        cache: LRUCache[str, int] = LRUCache(4)
        cache.put("a", 1)

        cache.clear()

        assert cache.get("a") is None

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            LRUCache(-1)
