"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, FatalAuthError, FatalConnectionError, LocalFileMissingError:
  Exception classes
- EntryType, Action: What a pending operation does
- PendingOperation: Unit of work in the change queue
- ConnectionState: Connection bookkeeping owned by the sync engine
- WatchEventKind, WatchEvent: Filesystem events from the watcher
- UploadResult, EngineStats: Operation results and counters
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# Retry ceilings
MAX_OPERATION_RETRIES = 3
DEFAULT_MAX_CONNECTION_RETRIES = 5
DEFAULT_RECONNECT_DELAY = 5.0  # seconds


class SyncError(Exception):
    """Base exception for sync errors."""


class FatalAuthError(SyncError):
    """The server rejected the credentials; retrying cannot help."""


class FatalConnectionError(SyncError):
    """The connection could not be established within the retry budget."""


class LocalFileMissingError(SyncError):
    """A file queued for upload no longer exists locally."""


class EntryType(Enum):
    """Kind of filesystem entry."""

    FILE = "file"
    DIRECTORY = "directory"


class Action(Enum):
    """Remote operation to perform."""

    UPLOAD = "upload"
    DELETE = "delete"


@dataclass
class PendingOperation:
    """A remote operation waiting in the change queue.

    Attributes:
        relative_path: Path relative to the watched root, forward slashes.
            Identifies the entry within the queue.
        entry_type: File or directory
        action: Upload or delete
        local_path: Absolute source path (uploads only)
        retry_count: Number of transient failures so far
    """

    relative_path: str
    entry_type: EntryType
    action: Action
    local_path: Path | None = None
    retry_count: int = 0

    @classmethod
    def upload(
        cls,
        relative_path: str,
        local_path: Path,
        entry_type: EntryType = EntryType.FILE,
    ) -> PendingOperation:
        """Create an upload operation."""
        return cls(
            relative_path=relative_path,
            entry_type=entry_type,
            action=Action.UPLOAD,
            local_path=local_path,
        )

    @classmethod
    def delete(
        cls,
        relative_path: str,
        entry_type: EntryType = EntryType.FILE,
    ) -> PendingOperation:
        """Create a delete operation."""
        return cls(relative_path=relative_path, entry_type=entry_type, action=Action.DELETE)

    @property
    def is_upload(self) -> bool:
        """Check if this operation uploads."""
        return self.action is Action.UPLOAD

    @property
    def is_directory(self) -> bool:
        """Check if this operation targets a directory."""
        return self.entry_type is EntryType.DIRECTORY

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"PendingOperation({self.action.name}, "
            f"path={self.relative_path!r}, "
            f"type={self.entry_type.name}, "
            f"retries={self.retry_count})"
        )


@dataclass
class ConnectionState:
    """Connection bookkeeping for the sync engine.

    Attributes:
        is_connected: Whether remote operations may be attempted
        connection_retries: Consecutive failed connects (reset on success)
        max_connection_retries: Failed connects tolerated before giving up
    """

    is_connected: bool = False
    connection_retries: int = 0
    max_connection_retries: int = DEFAULT_MAX_CONNECTION_RETRIES

    def mark_connected(self) -> None:
        """Record a successful connect."""
        self.is_connected = True
        self.connection_retries = 0

    def mark_disconnected(self) -> None:
        """Record a lost or closed connection."""
        self.is_connected = False

    def record_failure(self) -> bool:
        """Record a failed connect.

        Returns:
            True if the retry budget is exhausted.
        """
        self.is_connected = False
        self.connection_retries += 1
        return self.connection_retries >= self.max_connection_retries


class WatchEventKind(Enum):
    """Kind of filesystem event reported by the watcher."""

    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"
    ADD_DIR = "addDir"
    UNLINK_DIR = "unlinkDir"


@dataclass
class WatchEvent:
    """A debounced filesystem event.

    Attributes:
        path: Absolute path of the entry
        kind: What happened to it
        timestamp: When the event was emitted
    """

    path: Path
    kind: WatchEventKind
    timestamp: float = field(default_factory=time.time)


@dataclass
class UploadResult:
    """Result of an upload operation."""

    path: str
    remote_path: str
    entry_type: EntryType
    size: int = 0
    verified: bool = False


@dataclass
class EngineStats:
    """Counters for the sync engine."""

    uploads_completed: int = 0
    directories_created: int = 0
    deletes_completed: int = 0
    retries: int = 0
    reconnects: int = 0
    failed: list[str] = field(default_factory=list)
