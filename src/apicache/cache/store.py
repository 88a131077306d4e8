"""Durable ``response-cache`` table on top of :mod:`diskcache`.

:class:`CacheStore` persists :class:`~apicache.models.CacheEntry` records
in a :class:`diskcache.Cache` directory. diskcache's own expiry and culling
are switched off (``eviction_policy="none"``, no ``expire=``) because
freshness and capacity are owned by this package: lookups apply lazy
expiry against an injectable clock and
:class:`~apicache.cache.eviction.Evictor` applies the eager sweep and the
item cap.

Every storage fault is absorbed here. Reads degrade to a miss or an empty
result, writes become best-effort no-ops, and each fault is logged at
WARNING with the operation that failed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

import diskcache

from apicache.clock import Clock, now_ms
from apicache.exceptions import StorageError
from apicache.models import CacheEntry, RequestIntent

logger = logging.getLogger(__name__)

TABLE_NAME = "response-cache"


class CacheStore:
    """Key-to-entry table for cached responses.

    Args:
        directory: Root directory; the table lives in ``<directory>/response-cache``.
        clock: Millisecond clock used for lazy expiry.

    Raises:
        StorageError: If the table cannot be opened at all.

    Example::

        store = CacheStore("/tmp/apicache")
        store.put(CacheEntry.build(key, "GET", "/users", None, body, 300_000, now_ms()))
        entry = store.get(key)
    """

    def __init__(self, directory: str | Path, clock: Clock = now_ms) -> None:
        self._directory = Path(directory) / TABLE_NAME
        self._clock = clock
        try:
            self._cache = diskcache.Cache(str(self._directory), eviction_policy="none")
        except Exception as exc:
            raise StorageError(f"Cannot open cache table at {self._directory}: {exc}") from exc

    @property
    def directory(self) -> Path:
        """Filesystem location of the table."""
        return self._directory

    # ------------------------------------------------------------------ #
    # Point operations
    # ------------------------------------------------------------------ #

    def put(self, entry: CacheEntry) -> None:
        """Store *entry*, replacing any entry with the same key.

        Entries whose intent is not READ are ignored: only safe requests
        are cacheable.
        """
        if entry.intent is not RequestIntent.READ:
            logger.debug("Skipping cache store for %s %s (write intent)", entry.method, entry.url)
            return
        try:
            self._cache.set(entry.key, entry.model_dump(), retry=True)
        except Exception as exc:
            logger.warning("Cache put failed for %s: %s", entry.key, exc)
            return
        logger.debug("Cached %s until %d", entry.key, entry.expires_at)

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for *key*, or ``None``.

        An entry whose ``expires_at`` has passed is deleted and reported
        as a miss.
        """
        entry = self._read(key)
        if entry is None:
            logger.debug("Cache miss: %s", key)
            return None
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry expired: %s", key)
            self.delete(key)
            return None
        logger.debug("Cache hit: %s", key)
        return entry

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry for *key* without any expiry check."""
        return self._read(key)

    def delete(self, key: str) -> None:
        """Remove *key*. Deleting a missing key is not an error."""
        try:
            self._cache.delete(key, retry=True)
        except Exception as exc:
            logger.warning("Cache delete failed for %s: %s", key, exc)

    # ------------------------------------------------------------------ #
    # Scans
    # ------------------------------------------------------------------ #

    def keys(self) -> list[str]:
        """Return every stored key (empty on a storage fault)."""
        try:
            return [key for key in self._cache.iterkeys() if isinstance(key, str)]
        except Exception as exc:
            logger.warning("Cache key scan failed: %s", exc)
            return []

    def entries(self) -> Iterator[CacheEntry]:
        """Yield every stored entry, expired or not.

        Keys deleted concurrently between the key scan and the read are
        skipped.
        """
        for key in self.keys():
            entry = self._read(key)
            if entry is not None:
                yield entry

    def scan_by_expiry(self) -> list[tuple[str, int]]:
        """Return ``(key, expires_at)`` pairs ordered by ascending expiry.

        Ties are broken by key so the order is stable between scans.
        """
        pairs = [(entry.key, entry.expires_at) for entry in self.entries()]
        pairs.sort(key=lambda pair: (pair[1], pair[0]))
        return pairs

    def count(self) -> int:
        """Number of stored entries, expired ones included (0 on a storage fault)."""
        try:
            return len(self._cache)
        except Exception as exc:
            logger.warning("Cache count failed: %s", exc)
            return 0

    def clear(self) -> int:
        """Remove every entry and return how many were removed."""
        try:
            return self._cache.clear(retry=True)
        except Exception as exc:
            logger.warning("Cache clear failed: %s", exc)
            return 0

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`. Safe to call twice."""
        self._cache.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self._cache.get(key, default=None, retry=True)
        except Exception as exc:
            logger.warning("Cache get failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate(raw)
        except ValueError as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            self.delete(key)
            return None
