# Tests for the bounded match-result cache.

from result_cache import ResultCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_fifo_eviction():
    cache = ResultCache(max_size=2, ttl_ms=60000)
    cache.put("a", None)
    cache.put("b", None)
    cache.put("c", None)
    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("c") is not None
    assert cache.stats()['evictions'] == 1


def test_reinsert_moves_key_to_back():
    cache = ResultCache(max_size=2, ttl_ms=60000)
    cache.put("a", None)
    cache.put("b", None)
    cache.put("a", None)
    cache.put("c", None)
    assert cache.get("a") is not None
    assert cache.get("b") is None


def test_ttl_expiry():
    clock = FakeClock()
    cache = ResultCache(max_size=10, ttl_ms=1000, clock=clock)
    cache.put("q", None)
    clock.now = 0.5
    assert cache.get("q") is not None
    clock.now = 1.5
    assert cache.get("q") is None
    assert len(cache) == 0


def test_no_match_result_is_a_hit():
    cache = ResultCache()
    cache.put("q", None)
    entry = cache.get("q")
    assert entry is not None
    assert entry.result is None
    assert entry.key == "q"


def test_stats_and_stale_invalidation():
    cache = ResultCache()
    cache.put("q", None)
    cache.get("q")
    cache.get("missing")
    stats = cache.stats()
    assert stats['hits'] == 1
    assert stats['misses'] == 1
    assert stats['hit_rate'] == 0.5

    cache.invalidate("q", stale=True)
    stats = cache.stats()
    assert stats['hits'] == 0
    assert stats['misses'] == 2
    assert stats['size'] == 0


def test_plain_invalidate_keeps_counters():
    cache = ResultCache()
    cache.put("q", None)
    cache.get("q")
    cache.invalidate("q")
    assert cache.stats()['hits'] == 1
    assert cache.get("q") is None


def test_clear():
    cache = ResultCache()
    cache.put("q", None)
    cache.get("q")
    cache.clear()
    assert len(cache) == 0
    assert cache.stats()['hits'] == 0
