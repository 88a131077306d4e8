"""Tests for cache and queue statistics."""

from __future__ import annotations

from apicache.cache.diagnostics import approx_size, cache_stats, collect
from apicache.cache.keys import generate_key
from apicache.cache.store import CacheStore
from apicache.models import CacheEntry, RequestDescriptor

HOUR_MS = 60 * 60 * 1000


def _put(store: CacheStore, clock, url: str, ttl_ms: int) -> CacheEntry:
    entry = CacheEntry.build(generate_key("GET", url), "GET", url, None, {"url": url}, ttl_ms, clock())
    store.put(entry)
    return entry


class TestCacheStats:
    def test_empty(self, store: CacheStore, clock) -> None:
        stats = cache_stats(store, clock)
        assert stats.total_items == 0
        assert stats.approx_byte_size == 0
        assert stats.oldest_timestamp is None
        assert stats.newest_timestamp is None
        assert stats.expiring_within_24h == 0

    def test_counts_and_timestamps(self, store: CacheStore, clock) -> None:
        first = _put(store, clock, "/a", HOUR_MS)
        clock.advance(500)
        second = _put(store, clock, "/b", 48 * HOUR_MS)

        stats = cache_stats(store, clock)
        assert stats.total_items == 2
        assert stats.oldest_timestamp == first.stored_at
        assert stats.newest_timestamp == second.stored_at
        assert stats.approx_byte_size == approx_size(first) + approx_size(second)

    def test_expiring_window_excludes_expired_and_far(self, store: CacheStore, clock) -> None:
        _put(store, clock, "/soon", HOUR_MS)
        _put(store, clock, "/gone", 1_000)
        _put(store, clock, "/later", 48 * HOUR_MS)
        clock.advance(2_000)

        stats = cache_stats(store, clock)
        assert stats.total_items == 3
        assert stats.expiring_within_24h == 1

    def test_does_not_modify_store(self, store: CacheStore, clock) -> None:
        _put(store, clock, "/gone", 1_000)
        clock.advance(5_000)
        cache_stats(store, clock)
        assert store.count() == 1


class TestCollect:
    def test_combines_cache_and_queue(self, store: CacheStore, queue, clock) -> None:
        _put(store, clock, "/a", HOUR_MS)
        queue.enqueue(RequestDescriptor(method="POST", url="/bookings", body={"n": 1}))

        report = collect(store, queue, clock)
        assert report.cache.total_items == 1
        assert report.queue.pending == 1
        assert report.queue.oldest_enqueued_at == clock()
