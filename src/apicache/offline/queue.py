"""Durable FIFO of mutating requests that could not reach the network.

Three :mod:`diskcache` tables live under the queue directory:

* ``offline-queue`` -- a :class:`diskcache.Index` of pending
  :class:`~apicache.models.QueueEntry` records keyed by integer id.
* ``dead-letter`` -- entries that exhausted their replay attempts or were
  pushed out by the soft cap.
* ``offline-meta`` -- counters: the last id handed out, the number of
  entries dropped by the soft cap and the number of dead letters
  discarded to keep the dead-letter table within the same cap.

Ids are ``max(now_ms, last_id + 1)``, allocated inside a diskcache
transaction, so they stay millisecond-like, strictly increasing and unique
across threads and processes sharing the directory. Replay order is
ascending id.

Like the response cache, every storage fault is logged and absorbed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import diskcache

from apicache.clock import Clock, now_ms
from apicache.exceptions import StorageError
from apicache.models import DeadLetter, QueueEntry, QueueStats, RequestDescriptor

logger = logging.getLogger(__name__)

QUEUE_TABLE = "offline-queue"
DEAD_LETTER_TABLE = "dead-letter"
META_TABLE = "offline-meta"

_LAST_ID = "last_id"
_DROPPED = "dropped"
_DEAD_TRIMMED = "dead_trimmed"

OVERFLOW_REASON = "dropped: offline queue over capacity"


class OfflineWriteQueue:
    """Pending writes waiting for connectivity.

    The soft cap is lossy on purpose: when ``max_items`` is exceeded the
    oldest pending entry is moved to the dead-letter table, the drop
    counter is bumped and a warning is logged.

    Args:
        directory: Root directory holding the queue tables.
        max_items: Soft cap on pending entries.
        max_attempts: Failed replays after which an entry is dead-lettered.
        clock: Millisecond clock for ids and timestamps.

    Raises:
        StorageError: If the tables cannot be opened at all.
    """

    def __init__(
        self,
        directory: str | Path,
        max_items: int = 100,
        max_attempts: int = 5,
        clock: Clock = now_ms,
    ) -> None:
        root = Path(directory)
        self._max_items = max_items
        self._max_attempts = max_attempts
        self._clock = clock
        try:
            self._index = diskcache.Index(str(root / QUEUE_TABLE))
            self._dead = diskcache.Index(str(root / DEAD_LETTER_TABLE))
            self._meta = diskcache.Cache(str(root / META_TABLE), eviction_policy="none")
        except Exception as exc:
            raise StorageError(f"Cannot open offline queue at {root}: {exc}") from exc

    @property
    def max_attempts(self) -> int:
        """Failed replays tolerated before dead-lettering."""
        return self._max_attempts

    # ------------------------------------------------------------------ #
    # Pending entries
    # ------------------------------------------------------------------ #

    def enqueue(
        self,
        request: RequestDescriptor,
    ) -> Optional[int]:
        """Append *request* and return its id (``None`` if it could not be stored)."""
        try:
            entry_id = self._next_id()
            entry = QueueEntry(
                id=entry_id,
                method=request.method.upper(),
                url=request.url,
                body=request.body,
                headers=request.headers,
                enqueued_at=self._clock(),
            )
            self._index[entry_id] = entry.model_dump()
        except Exception as exc:
            logger.warning("Offline enqueue failed for %s %s: %s", request.method, request.url, exc)
            return None

        logger.debug("Queued offline request %d: %s %s", entry_id, entry.method, entry.url)
        self._enforce_soft_cap()
        return entry_id

    def list_pending(self) -> list[QueueEntry]:
        """Return pending entries in replay order (ascending id)."""
        entries = []
        for entry_id in self._ids():
            entry = self.get(entry_id)
            if entry is not None:
                entries.append(entry)
        return entries

    def get(self, entry_id: int) -> Optional[QueueEntry]:
        """Return the pending entry with *entry_id*, if any."""
        try:
            raw = self._index.get(entry_id)
        except Exception as exc:
            logger.warning("Offline queue read failed for %d: %s", entry_id, exc)
            return None
        if raw is None:
            return None
        try:
            return QueueEntry.model_validate(raw)
        except ValueError as exc:
            logger.warning("Skipping unreadable offline queue entry %d: %s", entry_id, exc)
            return None

    def remove(self, entry_id: int) -> None:
        """Delete a pending entry after a confirmed replay. Idempotent."""
        try:
            self._index.pop(entry_id, None)
        except Exception as exc:
            logger.warning("Offline queue remove failed for %d: %s", entry_id, exc)

    def mark_failed(self, entry_id: int, reason: str = "replay failed") -> bool:
        """Record a failed replay attempt for *entry_id*.

        Increments ``retry_count``. Once it reaches ``max_attempts`` the
        entry leaves the pending table for the dead-letter table.

        Returns:
            ``True`` if the entry was dead-lettered by this call.
        """
        try:
            with self._index.transact():
                raw = self._index.get(entry_id)
                if raw is None:
                    return False
                entry = QueueEntry.model_validate(raw)
                updated = entry.model_copy(update={"retry_count": entry.retry_count + 1})
                if updated.retry_count < self._max_attempts:
                    self._index[entry_id] = updated.model_dump()
                    return False
                del self._index[entry_id]
        except Exception as exc:
            logger.warning("Offline queue retry update failed for %d: %s", entry_id, exc)
            return False

        self._bury(updated, f"{reason} after {updated.retry_count} attempts")
        return True

    def count(self) -> int:
        """Number of pending entries (0 on a storage fault)."""
        try:
            return len(self._index)
        except Exception as exc:
            logger.warning("Offline queue count failed: %s", exc)
            return 0

    def clear(self) -> int:
        """Drop every pending entry and return how many there were."""
        removed = self.count()
        try:
            self._index.clear()
        except Exception as exc:
            logger.warning("Offline queue clear failed: %s", exc)
            return 0
        return removed

    # ------------------------------------------------------------------ #
    # Dead letters
    # ------------------------------------------------------------------ #

    def list_dead_letters(self) -> list[DeadLetter]:
        """Return dead letters ordered by their original id."""
        try:
            keys = sorted(self._dead.keys())
        except Exception as exc:
            logger.warning("Dead-letter scan failed: %s", exc)
            return []
        letters = []
        for key in keys:
            letter = self._read_dead_letter(key)
            if letter is not None:
                letters.append(letter)
        return letters

    def requeue_dead_letter(self, entry_id: int) -> Optional[int]:
        """Move a dead letter back to the pending table with a fresh id.

        The dead letter is only removed once the request is pending again,
        so a failed enqueue leaves it where it was.

        Returns:
            The new pending id, or ``None`` if no such dead letter exists or
            it could not be queued.
        """
        letter = self._read_dead_letter(entry_id)
        if letter is None:
            return None
        new_id = self.enqueue(letter.entry.to_request())
        if new_id is None:
            logger.warning("Dead letter %d kept: requeue could not be stored", entry_id)
            return None
        try:
            self._dead.pop(entry_id, None)
        except Exception as exc:
            logger.warning("Dead letter %d requeued as %d but not removed: %s", entry_id, new_id, exc)
        return new_id

    def purge_dead_letters(self) -> int:
        """Delete every dead letter and return how many there were."""
        try:
            removed = len(self._dead)
            self._dead.clear()
        except Exception as exc:
            logger.warning("Dead-letter purge failed: %s", exc)
            return 0
        return removed

    # ------------------------------------------------------------------ #
    # Diagnostics
    # ------------------------------------------------------------------ #

    def dropped_total(self) -> int:
        """How many entries the soft cap has pushed out, ever."""
        return self._counter(_DROPPED)

    def dead_letters_discarded(self) -> int:
        """How many dead letters were discarded to keep that table within ``max_items``."""
        return self._counter(_DEAD_TRIMMED)

    def stats(self) -> QueueStats:
        """Counts and timestamps over pending entries and dead letters."""
        pending = self.list_pending()
        try:
            dead = len(self._dead)
        except Exception as exc:
            logger.warning("Dead-letter count failed: %s", exc)
            dead = 0
        enqueued = [entry.enqueued_at for entry in pending]
        return QueueStats(
            pending=len(pending),
            dead_letters=dead,
            dropped_total=self.dropped_total(),
            dead_letters_discarded=self.dead_letters_discarded(),
            oldest_enqueued_at=min(enqueued) if enqueued else None,
            newest_enqueued_at=max(enqueued) if enqueued else None,
        )

    def close(self) -> None:
        """Close all three tables."""
        self._index.cache.close()
        self._dead.cache.close()
        self._meta.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _counter(self, name: str) -> int:
        try:
            return int(self._meta.get(name, default=0, retry=True))
        except Exception as exc:
            logger.warning("Offline queue counter read failed: %s", exc)
            return 0

    def _ids(self) -> list[int]:
        try:
            return sorted(self._index.keys())
        except Exception as exc:
            logger.warning("Offline queue scan failed: %s", exc)
            return []

    def _next_id(self) -> int:
        with self._meta.transact(retry=True):
            last: int = self._meta.get(_LAST_ID, default=0, retry=True)
            entry_id = max(self._clock(), last + 1)
            self._meta.set(_LAST_ID, entry_id, retry=True)
        return entry_id

    def _enforce_soft_cap(self) -> None:
        ids = self._ids()
        overage = len(ids) - self._max_items
        for entry_id in ids[:max(overage, 0)]:
            try:
                raw: Any = self._index.pop(entry_id, None)
                if raw is None:
                    continue
                self._meta.incr(_DROPPED, retry=True)
            except Exception as exc:
                logger.warning("Offline queue overflow handling failed for %d: %s", entry_id, exc)
                continue
            try:
                entry = QueueEntry.model_validate(raw)
            except ValueError as exc:
                logger.warning(
                    "Offline queue over capacity (%d); dropped unreadable entry %d: %s",
                    self._max_items, entry_id, exc,
                )
                continue
            logger.warning(
                "Offline queue over capacity (%d); dropped oldest request %d: %s %s",
                self._max_items, entry.id, entry.method, entry.url,
            )
            self._bury(entry, OVERFLOW_REASON)

    def _read_dead_letter(self, entry_id: int) -> Optional[DeadLetter]:
        try:
            raw = self._dead.get(entry_id)
        except Exception as exc:
            logger.warning("Dead-letter read failed for %d: %s", entry_id, exc)
            return None
        if raw is None:
            return None
        try:
            return DeadLetter.model_validate(raw)
        except ValueError as exc:
            logger.warning("Skipping unreadable dead letter %d: %s", entry_id, exc)
            return None

    def _bury(self, entry: QueueEntry, reason: str) -> None:
        letter = DeadLetter(entry=entry, reason=reason, dead_at=self._clock())
        try:
            self._dead[entry.id] = letter.model_dump()
        except Exception as exc:
            logger.warning("Dead-letter write failed for %d: %s", entry.id, exc)
            return
        logger.warning("Offline request %d dead-lettered: %s", entry.id, reason)
        self._trim_dead_letters()

    def _trim_dead_letters(self) -> None:
        """Keep at most ``max_items`` dead letters, discarding the oldest."""
        try:
            ids = sorted(self._dead.keys())
        except Exception as exc:
            logger.warning("Dead-letter scan failed: %s", exc)
            return
        for stale_id in ids[:max(len(ids) - self._max_items, 0)]:
            try:
                raw = self._dead.pop(stale_id, None)
                if raw is None:
                    continue
                self._meta.incr(_DEAD_TRIMMED, retry=True)
            except Exception as exc:
                logger.warning("Dead-letter trim failed for %d: %s", stale_id, exc)
                continue
            entry = raw.get("entry", {}) if isinstance(raw, dict) else {}
            logger.warning(
                "Dead-letter table over capacity (%d); discarded dead letter %d: %s %s",
                self._max_items, stale_id, entry.get("method"), entry.get("url"),
            )
