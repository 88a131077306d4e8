"""The cache service object handed to callers.

:class:`ApiCache` owns one :class:`~apicache.cache.store.CacheStore`, one
:class:`~apicache.offline.queue.OfflineWriteQueue` and an optional
:class:`~apicache.cache.scheduler.CleanupScheduler`, all rooted in one
directory and driven by one :class:`~apicache.models.CacheConfig`. There is
no module-level instance: construct one per directory and inject it where
it is needed, which also gives every test its own isolated tables.

Boundary toward the transport layer::

    payload = cache.lookup("GET", url, params)            # before a safe call
    cache.store("GET", url, params, body, TTLClass.SHORT)  # after a 2xx
    cache.invalidate("/bookings/")                         # after a write
    cache.enqueue("POST", url, body, headers)              # write while offline
    cache.replay(send)                                     # on reconnect
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from apicache.cache.diagnostics import collect
from apicache.cache.eviction import Evictor
from apicache.cache.invalidation import Pattern, invalidate
from apicache.cache.keys import generate_key
from apicache.cache.scheduler import CleanupScheduler
from apicache.cache.store import CacheStore
from apicache.clock import Clock, now_ms
from apicache.models import (
    CacheConfig,
    CacheEntry,
    DeadLetter,
    DiagnosticsReport,
    QueueEntry,
    ReplayResult,
    RequestDescriptor,
    RequestIntent,
    TTLClass,
)
from apicache.offline.queue import OfflineWriteQueue
from apicache.offline.replay import Replayer, Sender

logger = logging.getLogger(__name__)


class ApiCache:
    """Response cache plus offline write queue for one client.

    Args:
        directory: Root directory for all durable tables.
        config: Limits, TTL classes and scheduler settings. Defaults to
            :class:`~apicache.models.CacheConfig` defaults.
        clock: Millisecond clock shared by every component.

    Example::

        with ApiCache("/tmp/apicache") as cache:
            cache.start_cleanup()
            body = cache.lookup("GET", "/attenders", {"page": 1})
    """

    def __init__(
        self,
        directory: str | Path,
        config: Optional[CacheConfig] = None,
        clock: Clock = now_ms,
    ) -> None:
        self._config = config or CacheConfig()
        self._directory = Path(directory)
        self._clock = clock
        self._store = CacheStore(self._directory, clock=clock)
        self._queue = OfflineWriteQueue(
            self._directory,
            max_items=self._config.max_queue_items,
            max_attempts=self._config.max_replay_attempts,
            clock=clock,
        )
        self._evictor = Evictor(self._store, clock=clock)
        self._replayer = Replayer(self._queue)
        self._scheduler: Optional[CleanupScheduler] = None

    @classmethod
    def from_config(cls, config: CacheConfig, clock: Clock = now_ms) -> ApiCache:
        """Open the tables in ``config.directory`` or the default cache directory."""
        from apicache.config import get_cache_dir

        directory = config.directory or get_cache_dir()
        return cls(directory, config, clock=clock)

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def store_table(self) -> CacheStore:
        """The underlying response table."""
        return self._store

    @property
    def queue(self) -> OfflineWriteQueue:
        """The underlying offline queue."""
        return self._queue

    # ------------------------------------------------------------------ #
    # Response cache
    # ------------------------------------------------------------------ #

    @staticmethod
    def generate_key(method: str, url: str, params: Optional[dict[str, Any]] = None) -> str:
        """See :func:`apicache.cache.keys.generate_key`."""
        return generate_key(method, url, params)

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for *key* (lazy expiry applies)."""
        if not self._config.enabled:
            return None
        return self._store.get(key)

    def put(self, entry: CacheEntry) -> None:
        """Store a prepared entry. Write-intent entries are ignored."""
        if not self._config.enabled:
            return
        self._store.put(entry)

    def delete(self, key: str) -> None:
        """Remove one entry. Idempotent."""
        self._store.delete(key)

    def lookup(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Optional[Any]:
        """Return the cached payload for a request, or ``None`` on a miss.

        Write requests are never served from the cache.
        """
        if RequestIntent.from_method(method) is not RequestIntent.READ:
            return None
        entry = self.get(generate_key(method, url, params))
        return entry.payload if entry is not None else None

    def store(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]],
        payload: Any,
        ttl_class: Optional[TTLClass | str] = None,
    ) -> Optional[str]:
        """Cache *payload* for a safe request under the given TTL class.

        Returns:
            The cache key, or ``None`` when nothing was stored (caching
            disabled or a write request).
        """
        if not self._config.enabled:
            return None
        if RequestIntent.from_method(method) is not RequestIntent.READ:
            return None
        ttl_ms = self._config.ttl.to_ms(ttl_class or self._config.default_ttl_class)
        key = generate_key(method, url, params)
        entry = CacheEntry.build(key, method, url, params, payload, ttl_ms, self._clock())
        self._store.put(entry)
        return key

    def invalidate(self, pattern: Pattern, regex: bool = False) -> int:
        """Delete entries whose key matches *pattern*. See :func:`~apicache.cache.invalidation.invalidate`."""
        return invalidate(self._store, pattern, regex=regex)

    def clear(self) -> int:
        """Drop every cached response."""
        removed = self._store.clear()
        logger.info("Cleared %d cache entries", removed)
        return removed

    def evict(self, max_items: Optional[int] = None) -> int:
        """Run one sweep-and-cap pass now."""
        return self._evictor.evict(max_items or self._config.max_items)

    # ------------------------------------------------------------------ #
    # Offline queue
    # ------------------------------------------------------------------ #

    def enqueue(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Optional[int]:
        """Queue an undeliverable write for later replay and return its id."""
        return self._queue.enqueue(
            RequestDescriptor(method=method, url=url, body=body, headers=headers)
        )

    def list_pending(self) -> list[QueueEntry]:
        return self._queue.list_pending()

    def remove(self, entry_id: int) -> None:
        """Delete a queued write after it was replayed. Idempotent."""
        self._queue.remove(entry_id)

    def mark_failed(self, entry_id: int, reason: str = "replay failed") -> bool:
        return self._queue.mark_failed(entry_id, reason)

    def replay(self, send: Sender) -> ReplayResult:
        """Drain the queue through *send*. See :mod:`apicache.offline.replay`."""
        return self._replayer.replay_pending(send)

    def list_dead_letters(self) -> list[DeadLetter]:
        return self._queue.list_dead_letters()

    def requeue_dead_letter(self, entry_id: int) -> Optional[int]:
        return self._queue.requeue_dead_letter(entry_id)

    def purge_dead_letters(self) -> int:
        return self._queue.purge_dead_letters()

    # ------------------------------------------------------------------ #
    # Diagnostics and lifecycle
    # ------------------------------------------------------------------ #

    def stats(self) -> DiagnosticsReport:
        """Read-only report over both tables."""
        return collect(self._store, self._queue, self._clock)

    @property
    def scheduler(self) -> Optional[CleanupScheduler]:
        return self._scheduler

    def start_cleanup(self) -> CleanupScheduler:
        """Start (or return the already running) background sweeper."""
        if self._scheduler is None:
            self._scheduler = CleanupScheduler(
                self._evictor,
                max_items=self._config.max_items,
                interval_ms=self._config.cleanup_interval_ms,
                run_on_start=self._config.cleanup_on_start,
            )
        self._scheduler.start()
        return self._scheduler

    def stop_cleanup(self) -> None:
        """Stop the background sweeper if it is running."""
        if self._scheduler is not None:
            self._scheduler.stop()

    def close(self) -> None:
        """Stop the sweeper and close every table. Safe to call twice."""
        self.stop_cleanup()
        self._store.close()
        self._queue.close()

    def __enter__(self) -> ApiCache:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
