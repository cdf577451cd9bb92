"""
Tests for the TTL cache.
"""
import threading

from .cache import MISS, TTLCache


class Ticker:
    def __init__(self):
        self.t = 1000.0

    def __call__(self):
        return self.t


def test_hit_before_ttl_and_miss_after():
    tick = Ticker()
    cache = TTLCache(ttl_seconds=60, clock=tick)
    cache.set("k", {"v": 1})

    tick.t += 59
    assert cache.get("k") == {"v": 1}
    assert cache.is_expired("k") is False

    tick.t += 1
    assert cache.is_expired("k") is True
    assert cache.get("k") is MISS
    assert cache.is_expired("k") is None
    assert len(cache) == 0


def test_unknown_key_is_miss():
    cache = TTLCache(ttl_seconds=60)
    assert cache.get("nothing") is MISS
    assert not MISS
    assert cache.stats["misses"] == 1


def test_falsy_values_are_cached():
    cache = TTLCache(ttl_seconds=60)
    cache.set("zero", 0)
    assert cache.get("zero") == 0
    assert cache.get("zero") is not MISS


def test_disabled_cache_stores_nothing():
    cache = TTLCache(ttl_seconds=0)
    assert not cache.enabled
    cache.set("k", 1)
    assert cache.get("k") is MISS
    assert len(cache) == 0


def test_invalidation():
    cache = TTLCache(ttl_seconds=60)
    cache.set("analytics:seller:a", 1)
    cache.set("analytics:seller:b", 2)
    cache.set("analytics:platform", 3)

    assert cache.invalidate("analytics:platform") is True
    assert cache.invalidate("analytics:platform") is False
    assert cache.invalidate_prefix("analytics:seller:") == 2
    assert len(cache) == 0
    assert cache.stats["invalidations"] == 3


def test_clear():
    cache = TTLCache(ttl_seconds=60)
    cache.set("a", 1)
    cache.clear()
    assert cache.get("a") is MISS


def test_len_waits_for_the_lock():
    cache = TTLCache(ttl_seconds=60)
    cache.set("a", 1)
    sizes = []

    with cache._lock:
        reader = threading.Thread(target=lambda: sizes.append(len(cache)))
        reader.start()
        reader.join(timeout=0.2)
        assert reader.is_alive()
        assert sizes == []

    reader.join(timeout=5)
    assert sizes == [1]
