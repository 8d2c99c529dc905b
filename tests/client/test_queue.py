"""Tests for the change queue module."""

from __future__ import annotations

from pathlib import Path

from ftpwatch.client.sync.queue import ChangeQueue
from ftpwatch.client.sync.types import Action, EntryType, PendingOperation


def upload(path: str) -> PendingOperation:
    return PendingOperation.upload(path, Path("/local") / path)


def delete(path: str) -> PendingOperation:
    return PendingOperation.delete(path)


class TestPendingOperation:
    """Tests for PendingOperation factories."""

    def test_upload_factory(self) -> None:
        """Upload operations carry the local path and start with no retries."""
        op = PendingOperation.upload("css/style.css", Path("/local/css/style.css"))

        assert op.action is Action.UPLOAD
        assert op.entry_type is EntryType.FILE
        assert op.local_path == Path("/local/css/style.css")
        assert op.retry_count == 0
        assert op.is_upload
        assert not op.is_directory

    def test_delete_directory_factory(self) -> None:
        """Delete operations have no local path."""
        op = PendingOperation.delete("assets", EntryType.DIRECTORY)

        assert op.action is Action.DELETE
        assert op.local_path is None
        assert op.is_directory
        assert not op.is_upload

    def test_repr(self) -> None:
        """Repr should show action, path and retries."""
        text = repr(delete("a.txt"))
        assert "DELETE" in text
        assert "a.txt" in text
        assert "retries=0" in text


class TestChangeQueue:
    """Tests for ChangeQueue."""

    def test_empty_queue(self) -> None:
        """A new queue is empty and falsy."""
        queue = ChangeQueue()

        assert len(queue) == 0
        assert not queue
        assert queue.dequeue_next() is None
        assert queue.peek() is None

    def test_fifo_order_across_paths(self) -> None:
        """Operations on distinct paths come out in arrival order."""
        queue = ChangeQueue()
        for path in ("a.txt", "b.txt", "c.txt"):
            queue.enqueue(upload(path))

        order = [queue.dequeue_next().relative_path for _ in range(3)]

        assert order == ["a.txt", "b.txt", "c.txt"]
        assert not queue

    def test_at_most_one_entry_per_path(self) -> None:
        """Repeated events for a path keep a single entry."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        queue.enqueue(upload("b.txt"))
        queue.enqueue(upload("a.txt"))
        queue.enqueue(upload("a.txt"))

        paths = [op.relative_path for op in queue]
        assert sorted(paths) == ["a.txt", "b.txt"]
        assert len(set(paths)) == len(paths)

    def test_replacement_moves_to_tail(self) -> None:
        """A newer event for a path is ordered by its own arrival."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        queue.enqueue(upload("b.txt"))
        queue.enqueue(upload("a.txt"))

        assert [op.relative_path for op in queue] == ["b.txt", "a.txt"]

    def test_upload_then_delete_keeps_delete(self) -> None:
        """Modify followed by delete leaves a single delete."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        queue.enqueue(delete("a.txt"))

        assert len(queue) == 1
        assert queue.get("a.txt").action is Action.DELETE

    def test_delete_then_upload_keeps_upload(self) -> None:
        """Delete followed by a re-create leaves a single upload."""
        queue = ChangeQueue()
        queue.enqueue(delete("a.txt"))
        queue.enqueue(upload("a.txt"))

        assert len(queue) == 1
        assert queue.get("a.txt").action is Action.UPLOAD

    def test_requeue_front(self) -> None:
        """Connection-loss requeue puts the operation at the head."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        queue.enqueue(upload("b.txt"))
        op = queue.dequeue_next()

        assert queue.requeue_front(op) is True
        assert queue.peek() is op
        assert op.retry_count == 0

    def test_requeue_back_increments_retries(self) -> None:
        """Transient-failure requeue appends and counts the retry."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        queue.enqueue(upload("b.txt"))
        op = queue.dequeue_next()

        assert queue.requeue_back(op) is True
        assert [o.relative_path for o in queue] == ["b.txt", "a.txt"]
        assert op.retry_count == 1

    def test_requeue_superseded_by_newer_event(self) -> None:
        """A failed operation does not override a newer event for its path."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        failed = queue.dequeue_next()
        queue.enqueue(delete("a.txt"))

        assert queue.requeue_front(failed) is False
        assert queue.requeue_back(failed) is False
        assert len(queue) == 1
        assert queue.get("a.txt").action is Action.DELETE
        assert failed.retry_count == 0

    def test_iteration_does_not_consume(self) -> None:
        """Iterating yields a snapshot without removing items."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        queue.enqueue(delete("b.txt"))

        assert len(list(queue)) == 2
        assert len(queue) == 2

    def test_clear(self) -> None:
        """Clear empties the queue and reports the count."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        queue.enqueue(delete("b.txt"))

        assert queue.clear() == 2
        assert not queue

    def test_stats(self) -> None:
        """Stats count operations by action."""
        queue = ChangeQueue()
        queue.enqueue(upload("a.txt"))
        queue.enqueue(upload("b.txt"))
        queue.enqueue(delete("c.txt"))

        assert queue.stats() == {"total": 3, "upload": 2, "delete": 1}
