"""Change queue for pending remote operations.

This module provides:
- ChangeQueue: Ordered, path-deduplicating double-ended work queue

Operations are executed first-in-first-out across distinct paths. Only the
most recent operation per path is kept: a new operation for a path replaces
the pending one (an upload followed by a delete leaves a single delete, and
the converse leaves a single upload).

Two reinsertion priorities exist for failed operations:
- requeue_front: connection loss, retried right after reconnecting and
  before anything queued after it
- requeue_back: transient failure, retried after the rest of the queue with
  its retry counter incremented

The queue is owned by the sync engine and only touched from its event loop,
so it needs no locking.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from ftpwatch.client.sync.types import Action, PendingOperation

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class ChangeQueue:
    """FIFO queue of PendingOperation with last-event-wins coalescing."""

    def __init__(self) -> None:
        self._items: deque[PendingOperation] = deque()

    def _discard(self, relative_path: str) -> PendingOperation | None:
        """Remove the pending operation for a path, if any."""
        for item in self._items:
            if item.relative_path == relative_path:
                self._items.remove(item)
                return item
        return None

    def enqueue(self, op: PendingOperation) -> None:
        """Add an operation at the tail, replacing any pending one for its path."""
        old = self._discard(op.relative_path)
        if old is not None:
            logger.debug(
                "Replacing %s for %s with %s", old.action.name, op.relative_path, op.action.name
            )
        self._items.append(op)
        logger.debug("Queued %r (queue size: %d)", op, len(self._items))

    def dequeue_next(self) -> PendingOperation | None:
        """Remove and return the head operation.

        Returns:
            The oldest pending operation, or None if the queue is empty
        """
        if not self._items:
            return None
        op = self._items.popleft()
        logger.debug("Dequeued %r (queue size: %d)", op, len(self._items))
        return op

    def requeue_front(self, op: PendingOperation) -> bool:
        """Reinsert an operation at the head.

        If a newer operation for the same path arrived in the meantime, the
        newer one wins and the failed one is dropped.

        Returns:
            True if the operation was reinserted
        """
        if self.get(op.relative_path) is not None:
            logger.debug("Not requeuing %s: superseded by a newer event", op.relative_path)
            return False
        self._items.appendleft(op)
        return True

    def requeue_back(self, op: PendingOperation) -> bool:
        """Reinsert an operation at the tail with its retry counter incremented.

        A newer pending operation for the same path takes precedence.

        Returns:
            True if the operation was reinserted
        """
        if self.get(op.relative_path) is not None:
            logger.debug("Not requeuing %s: superseded by a newer event", op.relative_path)
            return False
        op.retry_count += 1
        self._items.append(op)
        return True

    def get(self, relative_path: str) -> PendingOperation | None:
        """Get the pending operation for a path without removing it."""
        for item in self._items:
            if item.relative_path == relative_path:
                return item
        return None

    def peek(self) -> PendingOperation | None:
        """Look at the head operation without removing it."""
        return self._items[0] if self._items else None

    def clear(self) -> int:
        """Remove all operations.

        Returns:
            Number of operations removed
        """
        count = len(self._items)
        self._items.clear()
        if count:
            logger.info("Discarded %d pending operations", count)
        return count

    def __len__(self) -> int:
        """Get number of pending operations."""
        return len(self._items)

    def __bool__(self) -> bool:
        """Check if the queue has operations."""
        return bool(self._items)

    def __iter__(self) -> Iterator[PendingOperation]:
        """Iterate over a snapshot in execution order (does not remove)."""
        return iter(list(self._items))

    def stats(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with operation counts by action
        """
        stats = {"total": len(self._items), "upload": 0, "delete": 0}
        for item in self._items:
            stats["upload" if item.action is Action.UPLOAD else "delete"] += 1
        return stats
