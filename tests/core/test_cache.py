from tapflow.core import AsyncCache, CacheEntry, LruTtlCache


def test_entry_without_ttl_never_expires():
    entry = CacheEntry(value=1, inserted_at=10.0)
    assert entry.expires_at is None
    assert not entry.expired(1e9)


def test_entry_expires_strictly_after_ttl():
    entry = CacheEntry(value=1, inserted_at=10.0, ttl_ms=1000)
    assert entry.expires_at == 11.0
    assert not entry.expired(11.0)
    assert entry.expired(11.001)


def test_get_returns_live_entry(clock):
    cache = LruTtlCache(clock=clock)
    cache.set("k", "v", 1000)
    clock.advance_ms(500)
    entry = cache.get("k")
    assert entry is not None
    assert entry.value == "v"


def test_expired_entry_is_dropped_on_read(clock):
    cache = LruTtlCache(clock=clock)
    cache.set("k", "v", 1000)
    clock.advance_ms(1500)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_reads_do_not_extend_ttl(clock):
    cache = LruTtlCache(clock=clock)
    cache.set("k", "v", 1000)
    clock.advance_ms(900)
    assert cache.get("k") is not None
    clock.advance_ms(200)
    assert cache.get("k") is None


def test_set_refreshes_ttl(clock):
    cache = LruTtlCache(clock=clock)
    cache.set("k", "v1", 1000)
    clock.advance_ms(900)
    cache.set("k", "v2", 1000)
    clock.advance_ms(900)
    assert cache.get("k").value == "v2"


def test_lru_eviction_respects_recent_reads(clock):
    cache = LruTtlCache(max_entries=2, clock=clock)
    cache.set("a", 1, 0)
    cache.set("b", 2, 0)
    cache.get("a")
    cache.set("c", 3, 0)

    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache
    assert len(cache) == 2


def test_delete_and_clear(clock):
    cache = LruTtlCache(clock=clock)
    cache.set("a", 1, 0)
    cache.set("b", 2, 0)
    cache.delete("a")
    cache.delete("missing")
    assert "a" not in cache and "b" in cache
    cache.clear()
    assert len(cache) == 0


def test_capacity_floor_is_one():
    assert LruTtlCache(max_entries=0).max_entries == 1


def test_satisfies_cache_protocol():
    assert isinstance(LruTtlCache(), AsyncCache)
