"""Read-only statistics over the response cache and the offline queue."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from apicache.cache.store import CacheStore
from apicache.clock import Clock, now_ms
from apicache.models import CacheEntry, CacheStats, DiagnosticsReport

if TYPE_CHECKING:
    from apicache.offline.queue import OfflineWriteQueue

logger = logging.getLogger(__name__)

_DAY_MS = 24 * 60 * 60 * 1000


def approx_size(entry: CacheEntry) -> int:
    """Length of *entry* serialised as JSON -- an estimate, not memory usage."""
    return len(json.dumps(entry.model_dump(), ensure_ascii=False, default=str))


def cache_stats(store: CacheStore, clock: Clock = now_ms) -> CacheStats:
    """Aggregate counts, size and timestamps over every stored entry.

    An empty (or unreadable) store yields zeros and ``None`` timestamps.
    """
    now = clock()
    horizon = now + _DAY_MS
    stats = CacheStats()
    for entry in store.entries():
        stats.total_items += 1
        stats.approx_byte_size += approx_size(entry)
        if stats.oldest_timestamp is None or entry.stored_at < stats.oldest_timestamp:
            stats.oldest_timestamp = entry.stored_at
        if stats.newest_timestamp is None or entry.stored_at > stats.newest_timestamp:
            stats.newest_timestamp = entry.stored_at
        if now < entry.expires_at < horizon:
            stats.expiring_within_24h += 1
    return stats


def collect(
    store: CacheStore,
    queue: OfflineWriteQueue,
    clock: Clock = now_ms,
) -> DiagnosticsReport:
    """Build a :class:`DiagnosticsReport` for both tables."""
    return DiagnosticsReport(cache=cache_stats(store, clock), queue=queue.stats())
