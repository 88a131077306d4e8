"""Background sweeper that keeps the response cache within its limits.

:class:`CleanupScheduler` runs :meth:`Evictor.evict
<apicache.cache.eviction.Evictor.evict>` on a fixed interval in a daemon
thread. Unlike a bare timer it has an explicit :meth:`stop`, so tests and
short-lived processes can tear it down deterministically.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from apicache.cache.eviction import Evictor

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Periodically evict expired and over-capacity cache entries.

    Args:
        evictor: Eviction engine to invoke on each tick.
        max_items: Item cap passed to every eviction pass.
        interval_ms: Tick period in milliseconds.
        run_on_start: Run one pass immediately when started instead of
            waiting a full interval.

    Example::

        with CleanupScheduler(evictor, max_items=500, interval_ms=900_000):
            serve_requests()
    """

    def __init__(
        self,
        evictor: Evictor,
        max_items: int,
        interval_ms: int,
        run_on_start: bool = False,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._evictor = evictor
        self._max_items = max_items
        self._interval = interval_ms / 1000.0
        self._run_on_start = run_on_start
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        """Whether the background thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread. Starting a running scheduler is a no-op."""
        with self._lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_loop, name="apicache-cleanup", daemon=True
            )
            self._thread.start()
        logger.info("Cache cleanup scheduled every %.0fs", self._interval)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal the thread to stop and wait up to *timeout* seconds for it."""
        with self._lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout)
            logger.info("Cache cleanup stopped")

    def run_once(self) -> int:
        """Run one eviction pass in the calling thread and return the count."""
        self.ticks += 1
        try:
            return self._evictor.evict(self._max_items)
        except Exception as exc:
            logger.warning("Cache cleanup tick failed: %s", exc)
            return 0

    def __enter__(self) -> CleanupScheduler:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    def _run_loop(self) -> None:
        if self._run_on_start and not self._stop_event.is_set():
            self.run_once()
        while not self._stop_event.wait(self._interval):
            self.run_once()
