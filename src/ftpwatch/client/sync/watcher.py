"""File system watcher with write-stability debouncing.

This module provides:
- WatchdogEventHandler: Translates watchdog events into WatchEvent kinds
- WriteStabilizer: Holds add/change events until the file stops changing
- FileWatcher: Async event source over a watchdog observer

Event flow:
    watchdog thread ─► WatchdogEventHandler ─call_soon_threadsafe─► event loop
        ─► WriteStabilizer (add/change only) ─► FileWatcher.events()

Add and change events are only reported once the file's size and mtime have
been stable for the quiescence window (1s, polled every 200ms), so a file
being written is uploaded once, after the last write. Deletes and directory
events pass straight through. Moves are reported as a delete of the source
and an add of the destination. The initial contents of the tree are not
reported.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from ftpwatch.client.sync.ignore import IgnorePatterns
from ftpwatch.client.sync.types import WatchEvent, WatchEventKind

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

DEFAULT_STABILITY_THRESHOLD = 1.0  # seconds without writes
DEFAULT_POLL_INTERVAL = 0.2  # seconds

RawEventSink = Callable[[Path, WatchEventKind], None]


def _decode(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


class WatchdogEventHandler(FileSystemEventHandler):
    """Converts watchdog events to (path, kind) pairs.

    Runs in the observer thread; the sink must be thread-safe.
    """

    def __init__(
        self,
        base_path: Path,
        sink: RawEventSink,
        ignore: IgnorePatterns | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            base_path: Watched root directory.
            sink: Called with (absolute path, kind) for each accepted event.
            ignore: Patterns for paths to skip.
        """
        super().__init__()
        self._base_path = base_path
        self._sink = sink
        self._ignore = ignore or IgnorePatterns()

    def _emit(self, raw_path: str | bytes, kind: WatchEventKind) -> None:
        path = Path(_decode(raw_path))
        if path == self._base_path:
            return
        try:
            rel_path = path.relative_to(self._base_path).as_posix()
        except ValueError:
            return
        is_dir = kind in (WatchEventKind.ADD_DIR, WatchEventKind.UNLINK_DIR)
        if self._ignore.matches(rel_path, is_dir=is_dir):
            return
        self._sink(path, kind)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle created event."""
        if isinstance(event, DirCreatedEvent):
            self._emit(event.src_path, WatchEventKind.ADD_DIR)
        elif isinstance(event, FileCreatedEvent):
            self._emit(event.src_path, WatchEventKind.ADD)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle modified event (directory mtime changes are ignored)."""
        if isinstance(event, FileModifiedEvent):
            self._emit(event.src_path, WatchEventKind.CHANGE)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle deleted event."""
        if isinstance(event, DirDeletedEvent):
            self._emit(event.src_path, WatchEventKind.UNLINK_DIR)
        elif isinstance(event, FileDeletedEvent):
            self._emit(event.src_path, WatchEventKind.UNLINK)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moved event as delete + add."""
        if isinstance(event, DirMovedEvent):
            self._emit(event.src_path, WatchEventKind.UNLINK_DIR)
            self._emit(event.dest_path, WatchEventKind.ADD_DIR)
        elif isinstance(event, FileMovedEvent):
            self._emit(event.src_path, WatchEventKind.UNLINK)
            self._emit(event.dest_path, WatchEventKind.ADD)


@dataclass
class _PendingWrite:
    kind: WatchEventKind
    signature: tuple[int, int] | None
    stable_since: float


def _signature(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
    except OSError:
        return None
    return (st.st_size, st.st_mtime_ns)


class WriteStabilizer:
    """Holds add/change events until a file has stopped changing.

    A file is stable when its (size, mtime) signature is unchanged for
    ``stability_threshold`` seconds. An add followed by changes is reported
    as a single add.
    """

    def __init__(self, stability_threshold: float = DEFAULT_STABILITY_THRESHOLD) -> None:
        self._threshold = stability_threshold
        self._pending: dict[Path, _PendingWrite] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def touch(self, path: Path, kind: WatchEventKind, now: float) -> None:
        """Record a write to a file and restart its quiescence window."""
        existing = self._pending.get(path)
        if existing is not None and existing.kind is WatchEventKind.ADD:
            kind = WatchEventKind.ADD
        self._pending[path] = _PendingWrite(kind, _signature(path), now)

    def discard(self, path: Path) -> None:
        """Forget a pending write (the file was deleted)."""
        self._pending.pop(path, None)

    def discard_under(self, directory: Path) -> None:
        """Forget pending writes inside a deleted directory."""
        for path in [p for p in self._pending if directory in p.parents]:
            del self._pending[path]

    def poll(self, now: float) -> list[WatchEvent]:
        """Re-check pending files and release the stable ones.

        Files that disappeared are dropped silently; their delete event is
        reported separately.

        Returns:
            Events for files stable for at least the threshold, oldest first.
        """
        ready: list[tuple[float, WatchEvent]] = []
        for path, pending in list(self._pending.items()):
            signature = _signature(path)
            if signature is None:
                del self._pending[path]
                continue
            if signature != pending.signature:
                pending.signature = signature
                pending.stable_since = now
                continue
            if now - pending.stable_since >= self._threshold:
                del self._pending[path]
                ready.append((pending.stable_since, WatchEvent(path, pending.kind)))
        ready.sort(key=lambda item: item[0])
        return [event for _, event in ready]


class FileWatcher:
    """Watches a directory tree and yields debounced WatchEvents.

    Usage:
        watcher = FileWatcher(Path("hub-child"), IgnorePatterns(["*.log"]))
        async for event in watcher.events(stop):
            engine.handle_event(event)

    The event sequence is infinite until ``stop`` is set and can be
    consumed only once.
    """

    def __init__(
        self,
        watch_path: Path,
        ignore: IgnorePatterns | None = None,
        stability_threshold: float = DEFAULT_STABILITY_THRESHOLD,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the file watcher.

        Args:
            watch_path: Directory to watch.
            ignore: Patterns for paths to skip.
            stability_threshold: Seconds a file must stay unchanged before
                its add/change event is reported.
            poll_interval: Seconds between stability checks.

        Raises:
            ValueError: If watch_path is not a directory.
        """
        self._watch_path = Path(watch_path).resolve()
        if not self._watch_path.is_dir():
            raise ValueError(f"Watch path must be a directory: {watch_path}")

        self._ignore = ignore or IgnorePatterns()
        self._stabilizer = WriteStabilizer(stability_threshold)
        self._poll_interval = poll_interval
        self._observer: BaseObserver | None = None
        self._consumed = False

    @property
    def watch_path(self) -> Path:
        """Get the watched directory path."""
        return self._watch_path

    @property
    def is_running(self) -> bool:
        """Check if the observer thread is running."""
        return self._observer is not None

    def _route(self, path: Path, kind: WatchEventKind) -> WatchEvent | None:
        """Pass an event through the stabilizer.

        Returns:
            The event to report now, or None if it is held back.
        """
        if kind in (WatchEventKind.ADD, WatchEventKind.CHANGE):
            self._stabilizer.touch(path, kind, time.monotonic())
            return None
        if kind is WatchEventKind.UNLINK:
            self._stabilizer.discard(path)
        elif kind is WatchEventKind.UNLINK_DIR:
            self._stabilizer.discard_under(path)
        return WatchEvent(path, kind)

    async def events(self, stop: asyncio.Event | None = None) -> AsyncIterator[WatchEvent]:
        """Start the observer and yield events until ``stop`` is set.

        Args:
            stop: Cancellation token; the iterator ends shortly after it is set.

        Raises:
            RuntimeError: If the event sequence was already consumed.
        """
        if self._consumed:
            raise RuntimeError("FileWatcher events can only be consumed once")
        self._consumed = True

        loop = asyncio.get_running_loop()
        raw: asyncio.Queue[tuple[Path, WatchEventKind]] = asyncio.Queue()

        def sink(path: Path, kind: WatchEventKind) -> None:
            loop.call_soon_threadsafe(raw.put_nowait, (path, kind))

        handler = WatchdogEventHandler(self._watch_path, sink, self._ignore)
        observer = Observer()
        observer.schedule(handler, str(self._watch_path), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching directory: %s", self._watch_path)

        try:
            while stop is None or not stop.is_set():
                try:
                    path, kind = await asyncio.wait_for(raw.get(), timeout=self._poll_interval)
                except TimeoutError:
                    pass
                else:
                    event = self._route(path, kind)
                    if event is not None:
                        yield event

                for event in self._stabilizer.poll(time.monotonic()):
                    yield event
        finally:
            observer.stop()
            await asyncio.to_thread(observer.join, 5.0)
            self._observer = None
            logger.debug("Stopped watching %s", self._watch_path)
