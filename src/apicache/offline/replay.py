"""Drain the offline queue through a caller-supplied sender.

This package never performs network I/O itself. The transport layer passes
a ``send`` callable that delivers one :class:`~apicache.models.QueueEntry`
and reports whether the server confirmed it. Per entry the lifecycle is::

    pending -> replaying -> removed              (send returned True)
                         -> pending, retry + 1   (False or an exception)
                         -> dead letter          (retry reached max_attempts)

Entries are replayed strictly in ascending id order. A pass keeps going
after a failure so that one poisoned request does not block the rest.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from apicache.models import QueueEntry, ReplayResult
from apicache.offline.queue import OfflineWriteQueue

logger = logging.getLogger(__name__)

Sender = Callable[[QueueEntry], bool]


class Replayer:
    """Runs replay passes over one :class:`OfflineWriteQueue`.

    Only one pass runs at a time per instance; a second concurrent call
    returns immediately with an empty result instead of double-sending.
    """

    def __init__(self, queue: OfflineWriteQueue) -> None:
        self._queue = queue
        self._lock = threading.Lock()
        self._replaying: set[int] = set()

    @property
    def replaying(self) -> frozenset[int]:
        """Ids currently being delivered."""
        return frozenset(self._replaying)

    def replay_pending(self, send: Sender) -> ReplayResult:
        """Deliver every pending entry once and return the counters."""
        if not self._lock.acquire(blocking=False):
            logger.debug("Replay already in progress; skipping")
            return ReplayResult(remaining=self._queue.count())

        result = ReplayResult()
        try:
            for entry in self._queue.list_pending():
                self._replaying.add(entry.id)
                try:
                    delivered = self._deliver(send, entry)
                finally:
                    self._replaying.discard(entry.id)

                if delivered:
                    self._queue.remove(entry.id)
                    result.succeeded += 1
                    continue

                result.failed += 1
                if self._queue.mark_failed(entry.id):
                    result.dead_lettered += 1
        finally:
            self._lock.release()

        result.remaining = self._queue.count()
        logger.info(
            "Offline replay: %d succeeded, %d failed, %d dead-lettered, %d remaining",
            result.succeeded, result.failed, result.dead_lettered, result.remaining,
        )
        return result

    @staticmethod
    def _deliver(send: Sender, entry: QueueEntry) -> bool:
        try:
            return bool(send(entry))
        except Exception as exc:
            logger.warning("Replay of %d (%s %s) raised: %s", entry.id, entry.method, entry.url, exc)
            return False


def replay_pending(queue: OfflineWriteQueue, send: Sender) -> ReplayResult:
    """One-shot convenience wrapper around :meth:`Replayer.replay_pending`."""
    return Replayer(queue).replay_pending(send)
