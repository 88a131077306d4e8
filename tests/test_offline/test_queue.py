"""Tests for the durable offline write queue."""

from __future__ import annotations

import logging
import threading

from apicache.models import RequestDescriptor
from apicache.offline.queue import OVERFLOW_REASON, OfflineWriteQueue


def _req(n: int = 0, method: str = "POST") -> RequestDescriptor:
    return RequestDescriptor(
        method=method,
        url=f"/bookings/{n}",
        body={"n": n},
        headers={"X-Request-Id": str(n)},
    )


# ------------------------------------------------------------------ #
# Enqueue and ordering
# ------------------------------------------------------------------ #


class TestEnqueue:
    def test_fields_round_trip(self, queue: OfflineWriteQueue, clock) -> None:
        entry_id = queue.enqueue(_req(1, method="patch"))
        entry = queue.get(entry_id)
        assert entry is not None
        assert entry.method == "PATCH"
        assert entry.url == "/bookings/1"
        assert entry.body == {"n": 1}
        assert entry.headers == {"X-Request-Id": "1"}
        assert entry.enqueued_at == clock()
        assert entry.retry_count == 0

    def test_fifo_order(self, queue: OfflineWriteQueue, clock) -> None:
        for n in range(3):
            queue.enqueue(_req(n))
            clock.advance(5)
        assert [e.body["n"] for e in queue.list_pending()] == [0, 1, 2]

    def test_ids_unique_within_one_millisecond(self, queue: OfflineWriteQueue, clock) -> None:
        """A frozen clock still yields strictly increasing ids."""
        ids = [queue.enqueue(_req(n)) for n in range(5)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5
        assert ids[0] == clock()

    def test_ids_increase_when_clock_goes_back(self, queue: OfflineWriteQueue, clock) -> None:
        first = queue.enqueue(_req(0))
        clock.advance(-10_000)
        second = queue.enqueue(_req(1))
        assert second == first + 1

    def test_ids_survive_reopen(self, cache_dir, clock) -> None:
        q1 = OfflineWriteQueue(cache_dir, clock=clock)
        first = q1.enqueue(_req(0))
        q1.close()
        q2 = OfflineWriteQueue(cache_dir, clock=clock)
        try:
            assert q2.enqueue(_req(1)) == first + 1
            assert q2.count() == 2
        finally:
            q2.close()

    def test_empty_queue(self, queue: OfflineWriteQueue) -> None:
        assert queue.count() == 0
        assert queue.list_pending() == []
        assert queue.get(123) is None


class TestRemove:
    def test_remove(self, queue: OfflineWriteQueue) -> None:
        entry_id = queue.enqueue(_req())
        queue.remove(entry_id)
        assert queue.count() == 0

    def test_remove_is_idempotent(self, queue: OfflineWriteQueue) -> None:
        entry_id = queue.enqueue(_req())
        queue.remove(entry_id)
        queue.remove(entry_id)
        queue.remove(999)
        assert queue.count() == 0

    def test_clear(self, queue: OfflineWriteQueue) -> None:
        for n in range(3):
            queue.enqueue(_req(n))
        assert queue.clear() == 3
        assert queue.count() == 0


# ------------------------------------------------------------------ #
# Soft cap
# ------------------------------------------------------------------ #


class TestSoftCap:
    def test_overflow_drops_oldest(self, queue: OfflineWriteQueue, caplog) -> None:
        """The fixture caps at 10; two more push out the two oldest."""
        with caplog.at_level(logging.WARNING, logger="apicache"):
            ids = [queue.enqueue(_req(n)) for n in range(12)]

        assert queue.count() == 10
        assert [e.id for e in queue.list_pending()] == ids[2:]
        assert queue.dropped_total() == 2
        assert "Offline queue over capacity" in caplog.text

    def test_dropped_entries_become_dead_letters(self, queue: OfflineWriteQueue) -> None:
        ids = [queue.enqueue(_req(n)) for n in range(11)]
        letters = queue.list_dead_letters()
        assert [letter.entry.id for letter in letters] == [ids[0]]
        assert letters[0].reason == OVERFLOW_REASON

    def test_under_cap_drops_nothing(self, queue: OfflineWriteQueue) -> None:
        for n in range(10):
            queue.enqueue(_req(n))
        assert queue.dropped_total() == 0
        assert queue.list_dead_letters() == []


# ------------------------------------------------------------------ #
# Failure accounting and dead letters
# ------------------------------------------------------------------ #


class TestMarkFailed:
    def test_increments_retry_count(self, queue: OfflineWriteQueue) -> None:
        entry_id = queue.enqueue(_req())
        assert queue.mark_failed(entry_id) is False
        assert queue.get(entry_id).retry_count == 1

    def test_dead_letters_at_max_attempts(self, queue: OfflineWriteQueue) -> None:
        entry_id = queue.enqueue(_req())
        assert queue.mark_failed(entry_id, "HTTP 500") is False
        assert queue.mark_failed(entry_id, "HTTP 500") is False
        assert queue.mark_failed(entry_id, "HTTP 500") is True

        assert queue.get(entry_id) is None
        letters = queue.list_dead_letters()
        assert len(letters) == 1
        assert letters[0].entry.retry_count == 3
        assert letters[0].reason == "HTTP 500 after 3 attempts"

    def test_unknown_id(self, queue: OfflineWriteQueue) -> None:
        assert queue.mark_failed(12345) is False

    def test_requeue_dead_letter(self, queue: OfflineWriteQueue, clock) -> None:
        entry_id = queue.enqueue(_req(7))
        for _ in range(queue.max_attempts):
            queue.mark_failed(entry_id)
        clock.advance(1_000)

        new_id = queue.requeue_dead_letter(entry_id)
        assert new_id is not None and new_id > entry_id
        entry = queue.get(new_id)
        assert entry.retry_count == 0
        assert entry.body == {"n": 7}
        assert queue.list_dead_letters() == []

    def test_requeue_missing(self, queue: OfflineWriteQueue) -> None:
        assert queue.requeue_dead_letter(1) is None

    def test_requeue_keeps_letter_when_enqueue_fails(
        self, queue: OfflineWriteQueue, monkeypatch, caplog
    ) -> None:
        entry_id = queue.enqueue(_req(7))
        for _ in range(queue.max_attempts):
            queue.mark_failed(entry_id)

        def boom() -> int:
            raise OSError("disk full")

        monkeypatch.setattr(queue, "_next_id", boom)
        with caplog.at_level(logging.WARNING, logger="apicache"):
            assert queue.requeue_dead_letter(entry_id) is None

        letters = queue.list_dead_letters()
        assert [letter.entry.id for letter in letters] == [entry_id]
        assert queue.count() == 0
        assert "requeue could not be stored" in caplog.text

    def test_dead_letter_table_capped(self, queue: OfflineWriteQueue, caplog) -> None:
        ids = []
        with caplog.at_level(logging.WARNING, logger="apicache"):
            for n in range(11):
                entry_id = queue.enqueue(_req(n))
                ids.append(entry_id)
                for _ in range(queue.max_attempts):
                    queue.mark_failed(entry_id)

        letters = queue.list_dead_letters()
        assert [letter.entry.id for letter in letters] == ids[1:]
        assert queue.dead_letters_discarded() == 1
        assert queue.stats().dead_letters_discarded == 1
        assert f"discarded dead letter {ids[0]}: POST /bookings/0" in caplog.text

    def test_purge_dead_letters(self, queue: OfflineWriteQueue) -> None:
        for n in range(12):
            queue.enqueue(_req(n))
        assert queue.purge_dead_letters() == 2
        assert queue.list_dead_letters() == []


class TestStats:
    def test_empty(self, queue: OfflineWriteQueue) -> None:
        stats = queue.stats()
        assert stats.pending == 0
        assert stats.dead_letters == 0
        assert stats.oldest_enqueued_at is None

    def test_populated(self, queue: OfflineWriteQueue, clock) -> None:
        start = clock()
        for n in range(11):
            queue.enqueue(_req(n))
            clock.advance(100)

        stats = queue.stats()
        assert stats.pending == 10
        assert stats.dead_letters == 1
        assert stats.dropped_total == 1
        assert stats.oldest_enqueued_at == start + 100
        assert stats.newest_enqueued_at == start + 1_000


# ------------------------------------------------------------------ #
# Storage faults and concurrency
# ------------------------------------------------------------------ #


class TestStorageFaults:
    def test_unreadable_pending_entry_skipped(self, queue: OfflineWriteQueue, caplog) -> None:
        queue._index[5] = {"garbage": True}
        good = queue.enqueue(_req(1))

        with caplog.at_level(logging.WARNING, logger="apicache"):
            assert queue.get(5) is None
            assert [entry.id for entry in queue.list_pending()] == [good]
            assert queue.stats().pending == 1
        assert "Skipping unreadable offline queue entry 5" in caplog.text

    def test_unreadable_entry_dropped_by_soft_cap(self, queue: OfflineWriteQueue, caplog) -> None:
        queue._index[5] = {"garbage": True}
        with caplog.at_level(logging.WARNING, logger="apicache"):
            for n in range(10):
                queue.enqueue(_req(n))

        assert queue.count() == 10
        assert queue.get(5) is None
        assert queue.dropped_total() == 1
        assert "dropped unreadable entry 5" in caplog.text

    def test_unreadable_dead_letter_skipped(self, queue: OfflineWriteQueue, caplog) -> None:
        queue._dead[7] = {"bad": 1}
        with caplog.at_level(logging.WARNING, logger="apicache"):
            assert queue.list_dead_letters() == []
            assert queue.requeue_dead_letter(7) is None
        assert "Skipping unreadable dead letter 7" in caplog.text
        assert queue.count() == 0

    def test_enqueue_fault_returns_none(
        self, queue: OfflineWriteQueue, monkeypatch, caplog
    ) -> None:
        def boom() -> int:
            raise OSError("database is locked")

        monkeypatch.setattr(queue, "_next_id", boom)
        with caplog.at_level(logging.WARNING, logger="apicache"):
            assert queue.enqueue(_req(1)) is None

        assert queue.count() == 0
        assert "Offline enqueue failed for POST /bookings/1" in caplog.text

    def test_remove_fault_is_absorbed(
        self, queue: OfflineWriteQueue, monkeypatch, caplog
    ) -> None:
        entry_id = queue.enqueue(_req(1))

        def boom(*args, **kwargs):
            raise OSError("database is locked")

        monkeypatch.setattr(queue._index, "pop", boom)
        with caplog.at_level(logging.WARNING, logger="apicache"):
            queue.remove(entry_id)

        assert "Offline queue remove failed" in caplog.text
        assert queue.count() == 1

    def test_concurrent_enqueue_ids_unique(self, cache_dir, clock) -> None:
        queue = OfflineWriteQueue(cache_dir / "threads", max_items=1_000, clock=clock)
        ids: list[int] = []
        lock = threading.Lock()

        def worker(offset: int) -> None:
            for n in range(25):
                entry_id = queue.enqueue(_req(offset + n))
                with lock:
                    ids.append(entry_id)

        threads = [threading.Thread(target=worker, args=(t * 100,)) for t in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        try:
            assert None not in ids
            assert len(set(ids)) == 200
            assert queue.count() == 200
            assert [entry.id for entry in queue.list_pending()] == sorted(ids)
        finally:
            queue.close()
