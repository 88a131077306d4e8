"""Expiry sweep and capacity cap for the response cache.

Two independent triggers remove entries:

1. **Sweep** -- every entry whose ``expires_at`` is in the past.
2. **Cap** -- when more than ``max_items`` entries remain after the sweep,
   the overage with the smallest ``stored_at`` goes (oldest-inserted first,
   an approximation of LRU by insertion rather than access).

A live entry is never removed for its age alone unless the cap is exceeded.
"""

from __future__ import annotations

import logging

from apicache.cache.store import CacheStore
from apicache.clock import Clock, now_ms

logger = logging.getLogger(__name__)


class Evictor:
    """Applies the sweep and the cap to a :class:`CacheStore`.

    Args:
        store: The table to prune.
        clock: Millisecond clock deciding what has expired.
    """

    def __init__(self, store: CacheStore, clock: Clock = now_ms) -> None:
        self._store = store
        self._clock = clock

    def evict(self, max_items: int) -> int:
        """Run the sweep, then the cap, and return the total removed.

        A storage fault ends the pass early; whatever was removed until then
        is still counted and the fault is logged, never raised.
        """
        removed = 0
        try:
            removed += self.sweep_expired()
            removed += self.enforce_cap(max_items)
        except Exception as exc:
            logger.warning("Eviction pass aborted after %d removals: %s", removed, exc)
            return removed

        if removed:
            logger.info("Eviction removed %d cache entries", removed)
        else:
            logger.debug("Eviction found nothing to remove")
        return removed

    def sweep_expired(self) -> int:
        """Delete every entry that has already expired."""
        now = self._clock()
        removed = 0
        for key, expires_at in self._store.scan_by_expiry():
            if expires_at >= now:
                # Index order: everything after this is still live.
                break
            self._store.delete(key)
            removed += 1
        return removed

    def enforce_cap(self, max_items: int) -> int:
        """Delete the oldest-stored entries until at most *max_items* remain."""
        overage = self._store.count() - max_items
        if overage <= 0:
            return 0

        oldest = sorted(self._store.entries(), key=lambda e: (e.stored_at, e.key))
        victims = oldest[:overage]
        for entry in victims:
            self._store.delete(entry.key)
        logger.debug("Cap %d exceeded by %d; removed oldest entries", max_items, overage)
        return len(victims)
