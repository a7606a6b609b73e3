"""
Embedding cache: TTL expiry, LRU bound and statistics.
"""

import numpy as np
import pytest

from aura_memory.vector.cache import EmbeddingCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def test_miss_then_hit(clock):
    cache = EmbeddingCache(ttl_seconds=60, max_entries=10, clock=clock)

    assert cache.get("hello") is None
    cache.put("hello", np.array([1.0, 2.0, 3.0]))

    cached = cache.get("hello")
    assert cached.dtype == np.float32
    np.testing.assert_allclose(cached, [1.0, 2.0, 3.0])

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5


def test_get_returns_copy(clock):
    cache = EmbeddingCache(ttl_seconds=60, clock=clock)
    cache.put("text", np.array([1.0, 1.0]))

    first = cache.get("text")
    first[0] = 99.0

    np.testing.assert_allclose(cache.get("text"), [1.0, 1.0])


def test_entries_expire_after_ttl(clock):
    cache = EmbeddingCache(ttl_seconds=30 * 60, clock=clock)
    cache.put("text", np.array([0.5]))

    clock.advance(29 * 60)
    assert cache.get("text") is not None

    clock.advance(61)
    assert cache.get("text") is None
    assert len(cache) == 0


def test_fresh_put_replaces_expired_entry(clock):
    cache = EmbeddingCache(ttl_seconds=10, clock=clock)
    cache.put("text", np.array([1.0]))
    clock.advance(20)

    cache.put("text", np.array([2.0]))
    np.testing.assert_allclose(cache.get("text"), [2.0])


def test_lru_eviction_respects_recent_use(clock):
    cache = EmbeddingCache(ttl_seconds=60, max_entries=2, clock=clock)
    cache.put("a", np.array([1.0]))
    cache.put("b", np.array([2.0]))

    # Touch "a" so "b" becomes least recently used
    assert cache.get("a") is not None
    cache.put("c", np.array([3.0]))

    assert cache.get("b") is None
    assert cache.get("a") is not None
    assert cache.get("c") is not None
    assert cache.stats()["evictions"] == 1
    assert len(cache) == 2


def test_purge_expired_sweeps_stale_entries(clock):
    cache = EmbeddingCache(ttl_seconds=10, clock=clock)
    cache.put("old", np.array([1.0]))
    clock.advance(5)
    cache.put("new", np.array([2.0]))
    clock.advance(6)

    assert cache.purge_expired() == 1
    assert len(cache) == 1
    assert cache.get("new") is not None


def test_clear(clock):
    cache = EmbeddingCache(clock=clock)
    cache.put("a", np.array([1.0]))
    cache.clear()
    assert len(cache) == 0


def test_content_key_is_stable():
    assert EmbeddingCache.content_key("same text") == EmbeddingCache.content_key("same text")
    assert EmbeddingCache.content_key("same text") != EmbeddingCache.content_key("other text")


@pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"max_entries": 0}])
def test_invalid_arguments(kwargs):
    with pytest.raises(ValueError):
        EmbeddingCache(**kwargs)
