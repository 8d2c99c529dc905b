"""Sync engine mirroring watched changes to the remote server.

This module provides:
- SyncEngine: Owns the remote session, drains the change queue, reconnects
  and retries

Architecture:
    FileWatcher ─► SyncEngine.handle_event ─► ChangeQueue
                                                  │
                   SyncEngine.drain_queue ◄───────┘ (one drain at a time)
                          │
                   apply_upload / apply_delete ─► RemoteSession

Failure handling during a drain:
    | Error                  | Upload                     | Delete          |
    |------------------------|----------------------------|-----------------|
    | RemoteConnectionLost   | requeue front, reconnect   | same            |
    | RemoteError            | requeue back (max 3), drop | log, drop       |
    | LocalFileMissingError  | drop                       | n/a             |

Connecting:
    | Outcome          | Action                                             |
    |------------------|----------------------------------------------------|
    | success          | reset retry counter, drain                         |
    | RemoteAuthError  | FatalAuthError (never retried)                     |
    | other error      | retry after 5s, FatalConnectionError after 5 fails |

Everything runs on one asyncio event loop. Only one operation is in flight
on the session at a time; exclusivity comes from the single drain, not from
locks. Queued work is abandoned on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ftpwatch.client.remote import RemoteAuthError, RemoteConnectionLost, RemoteError
from ftpwatch.client.sync.operations import (
    apply_delete,
    apply_upload,
    normalize_relative_path,
)
from ftpwatch.client.sync.queue import ChangeQueue
from ftpwatch.client.sync.types import (
    DEFAULT_MAX_CONNECTION_RETRIES,
    DEFAULT_RECONNECT_DELAY,
    MAX_OPERATION_RETRIES,
    ConnectionState,
    EngineStats,
    EntryType,
    FatalAuthError,
    FatalConnectionError,
    LocalFileMissingError,
    PendingOperation,
    WatchEvent,
    WatchEventKind,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, Coroutine
    from typing import Any

    from ftpwatch.client.remote import RemoteSession

logger = logging.getLogger(__name__)


class SyncEngine:
    """Mirrors queued local changes to a remote directory.

    Usage:
        engine = SyncEngine(session, local_root=Path("hub-child"),
                            remote_base="/public_html/themes/hub-child")
        stop = asyncio.Event()
        await engine.run(watcher.events(stop), stop)
    """

    def __init__(
        self,
        session: RemoteSession,
        local_root: Path,
        remote_base: str,
        queue: ChangeQueue | None = None,
        max_connection_retries: int = DEFAULT_MAX_CONNECTION_RETRIES,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        max_retries: int = MAX_OPERATION_RETRIES,
    ) -> None:
        """Initialize the sync engine.

        Args:
            session: Remote session (disconnected).
            local_root: Watched local directory.
            remote_base: Remote directory mirroring local_root.
            queue: Change queue (a new one by default).
            max_connection_retries: Failed connects tolerated in a row.
            reconnect_delay: Seconds to wait before reconnecting.
            max_retries: Retries for an operation failing transiently.
        """
        self._session = session
        self._local_root = Path(local_root).resolve()
        self._remote_base = remote_base.rstrip("/") or "/"
        self._queue = queue if queue is not None else ChangeQueue()
        self._state = ConnectionState(max_connection_retries=max_connection_retries)
        self._reconnect_delay = reconnect_delay
        self._max_retries = max_retries

        self._draining = False
        self._closed = False
        self._tasks: set[asyncio.Task[None]] = set()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._stop: asyncio.Event | None = None
        self._fatal: BaseException | None = None
        self._stats = EngineStats()

    @property
    def queue(self) -> ChangeQueue:
        """Get the change queue."""
        return self._queue

    @property
    def state(self) -> ConnectionState:
        """Get the connection state."""
        return self._state

    @property
    def stats(self) -> EngineStats:
        """Get engine statistics."""
        return self._stats

    @property
    def remote_base(self) -> str:
        """Get the remote directory mirroring the local root."""
        return self._remote_base

    @property
    def is_draining(self) -> bool:
        """Check if a drain loop is running."""
        return self._draining

    @property
    def fatal_error(self) -> BaseException | None:
        """Get the error that stopped the engine, if any."""
        return self._fatal

    @property
    def reconnect_pending(self) -> bool:
        """Check if a delayed reconnect is scheduled."""
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # =========================================================================
    # Background tasks
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        if self._fatal is None:
            self._fatal = error
            logger.error("Sync stopped: %s", error)
        if self._stop is not None:
            self._stop.set()

    def _fail(self, error: BaseException) -> BaseException:
        if self._fatal is None:
            self._fatal = error
        return error

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """Connect the session.

        On success the queue is drained. On a non-fatal failure a reconnect
        is scheduled after the backoff delay and False is returned at once.

        Returns:
            True if connected.

        Raises:
            FatalAuthError: If the credentials were rejected.
            FatalConnectionError: If the connection retry budget is exhausted.
        """
        if self._closed:
            return False
        if self._state.is_connected:
            return True

        logger.info(
            "Connecting to remote server (attempt %d/%d)...",
            self._state.connection_retries + 1,
            self._state.max_connection_retries,
        )
        try:
            await asyncio.to_thread(self._session.connect)
        except RemoteAuthError as e:
            self._state.mark_disconnected()
            logger.error("Authentication failed: %s", e)
            raise self._fail(FatalAuthError(f"Authentication failed: {e}")) from e
        except RemoteError as e:
            exhausted = self._state.record_failure()
            logger.error("Failed to connect: %s", e)
            if exhausted:
                raise self._fail(
                    FatalConnectionError(
                        f"Failed to connect after {self._state.max_connection_retries} "
                        f"attempts: {e}"
                    )
                ) from e
            logger.warning(
                "Retrying connection (%d/%d) in %.0f seconds...",
                self._state.connection_retries,
                self._state.max_connection_retries,
                self._reconnect_delay,
            )
            self._schedule_reconnect()
            return False

        self._state.mark_connected()
        logger.info("Connected to remote server")
        if self._queue:
            self.trigger_drain()
        return True

    def _schedule_reconnect(self) -> None:
        if self.reconnect_pending or self._closed:
            return
        self._reconnect_task = self._spawn(self._reconnect_later(), "reconnect")

    async def _reconnect_later(self) -> None:
        await asyncio.sleep(self._reconnect_delay)
        self._reconnect_task = None
        await self.connect()

    async def shutdown(self) -> None:
        """Cancel background work and close the session.

        Queued operations are abandoned.
        """
        if self._closed:
            return
        self._closed = True

        tasks = [t for t in self._tasks if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._queue:
            logger.info("Abandoning %d queued operations", len(self._queue))
        logger.info("Disconnecting from remote server...")
        await asyncio.to_thread(self._session.close)
        self._state.mark_disconnected()
        logger.info("Disconnected")

    # =========================================================================
    # Events
    # =========================================================================

    def operation_for(self, event: WatchEvent) -> PendingOperation | None:
        """Map a filesystem event to a pending operation.

        Returns:
            The operation, or None for paths outside the watched root.
        """
        try:
            rel_path = Path(event.path).resolve().relative_to(self._local_root)
        except ValueError:
            try:
                rel_path = Path(event.path).relative_to(self._local_root)
            except ValueError:
                logger.warning("Path %s is not inside %s", event.path, self._local_root)
                return None
        relative_path = normalize_relative_path(rel_path.as_posix())
        if not relative_path or relative_path == ".":
            return None

        if event.kind in (WatchEventKind.ADD, WatchEventKind.CHANGE):
            return PendingOperation.upload(relative_path, Path(event.path))
        if event.kind is WatchEventKind.ADD_DIR:
            return PendingOperation.upload(relative_path, Path(event.path), EntryType.DIRECTORY)
        if event.kind is WatchEventKind.UNLINK:
            return PendingOperation.delete(relative_path)
        return PendingOperation.delete(relative_path, EntryType.DIRECTORY)

    def handle_event(self, event: WatchEvent) -> None:
        """Queue the operation for a filesystem event and drain if connected."""
        op = self.operation_for(event)
        if op is None:
            return
        entry = op.entry_type.value.capitalize()
        logger.info("%s %s: %s", entry, event.kind.value, op.relative_path)
        self._queue.enqueue(op)
        if self._state.is_connected:
            self.trigger_drain()

    def submit(self, op: PendingOperation) -> None:
        """Queue an operation directly and drain if connected."""
        self._queue.enqueue(op)
        if self._state.is_connected:
            self.trigger_drain()

    # =========================================================================
    # Draining
    # =========================================================================

    def trigger_drain(self) -> None:
        """Start a drain in the background unless one is running."""
        if self._draining or self._closed:
            return
        self._spawn(self.drain_queue(), "drain")

    async def drain_queue(self) -> None:
        """Execute queued operations in order until the queue is empty.

        Re-entrant calls return immediately; the running drain picks up
        operations queued meanwhile. Stops early when the connection cannot
        be re-established (the scheduled reconnect resumes draining).
        """
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue and not self._closed:
                if not self._state.is_connected:
                    if self.reconnect_pending:
                        break
                    logger.warning("Reconnecting...")
                    if not await self.connect():
                        break

                op = self._queue.dequeue_next()
                if op is None:
                    break
                await self._execute(op)
        finally:
            self._draining = False

    async def _execute(self, op: PendingOperation) -> None:
        if not self._session.is_connected:
            self._connection_lost(op, RemoteConnectionLost("Not connected"))
            return

        try:
            if op.is_upload:
                await apply_upload(
                    self._session,
                    self._remote_base,
                    op.relative_path,
                    op.entry_type,
                    op.local_path,
                )
                if op.is_directory:
                    self._stats.directories_created += 1
                else:
                    self._stats.uploads_completed += 1
            elif await apply_delete(
                self._session, self._remote_base, op.relative_path, op.entry_type
            ):
                self._stats.deletes_completed += 1
        except RemoteConnectionLost as e:
            self._connection_lost(op, e)
            return
        except LocalFileMissingError as e:
            logger.error("Skipping %s: %s", op.relative_path, e)
            self._stats.failed.append(op.relative_path)
            return
        except RemoteError as e:
            self._operation_failed(op, e)
            return
        except Exception as e:
            # A single bad item must not end the run
            logger.debug("Unexpected error processing %s", op.relative_path, exc_info=True)
            self._operation_failed(op, e)
            return

        # Best-effort steps (verification) may have seen the session drop
        if not self._session.is_connected:
            self._state.mark_disconnected()

    def _connection_lost(self, op: PendingOperation, error: RemoteError) -> None:
        logger.error("Connection lost while processing %s: %s", op.relative_path, error)
        self._state.mark_disconnected()
        self._stats.reconnects += 1
        self._queue.requeue_front(op)

    def _operation_failed(self, op: PendingOperation, error: Exception) -> None:
        logger.error("Failed to %s %s: %s", op.action.value, op.relative_path, error)
        if not op.is_upload:
            logger.warning("Not retrying delete of %s", op.relative_path)
            self._stats.failed.append(op.relative_path)
            return

        if op.retry_count < self._max_retries:
            if self._queue.requeue_back(op):
                self._stats.retries += 1
                logger.warning(
                    "Will retry %s (%d/%d)...", op.relative_path, op.retry_count, self._max_retries
                )
            return

        logger.error("Max retries reached, skipping %s", op.relative_path)
        self._stats.failed.append(op.relative_path)

    # =========================================================================
    # Run loop
    # =========================================================================

    async def _consume(self, events: AsyncIterable[WatchEvent]) -> None:
        async for event in events:
            self.handle_event(event)
            if self._stop is not None and self._stop.is_set():
                break

    async def wait_idle(self) -> None:
        """Wait until the queue is empty and no background work is pending.

        Returns early if the engine failed or was shut down.
        """
        while self._fatal is None and not self._closed:
            pending = [t for t in self._tasks if not t.done()]
            if pending:
                await asyncio.wait(pending)
                continue
            if self._draining:
                await asyncio.sleep(0.01)
                continue
            if not self._queue:
                return
            if self._state.is_connected:
                self.trigger_drain()
            elif not await self.connect():
                continue

    async def run(
        self,
        events: AsyncIterable[WatchEvent],
        stop: asyncio.Event | None = None,
    ) -> None:
        """Connect, then mirror events until stopped.

        Stops when ``stop`` is set, when a fatal error occurs, or when a
        finite event source is exhausted and the queue has drained. The
        session is always closed on exit.

        Args:
            events: Filesystem events (usually FileWatcher.events(stop)).
            stop: Cancellation token.

        Raises:
            FatalAuthError: If the credentials were rejected.
            FatalConnectionError: If the server stayed unreachable.
        """
        self._stop = stop if stop is not None else asyncio.Event()
        try:
            # Events arriving while the first connect is in progress are queued
            consumer = asyncio.create_task(self._consume(events), name="events")
            stopper = asyncio.create_task(self._stop.wait(), name="stop")
            try:
                await self.connect()
                await asyncio.wait({consumer, stopper}, return_when=asyncio.FIRST_COMPLETED)
                if consumer.done():
                    consumer.result()
                    if not self._stop.is_set():
                        await self.wait_idle()
            finally:
                for task in (consumer, stopper):
                    task.cancel()
                await asyncio.gather(consumer, stopper, return_exceptions=True)
        finally:
            await self.shutdown()

        if self._fatal is not None:
            raise self._fatal
