"""Watch-and-mirror sync for a local directory tree.

Architecture:
    FileWatcher → ChangeQueue → SyncEngine → RemoteSession

Components:
- **FileWatcher**: watchdog observer with write-stability debouncing
- **ChangeQueue**: FIFO of pending operations, coalesced per path
- **SyncEngine**: Owns the connection, drains the queue, reconnects and retries
- **apply_upload / apply_delete**: The remote side of a single operation

All public symbols are re-exported here.
"""

from ftpwatch.client.sync.engine import SyncEngine
from ftpwatch.client.sync.ignore import IgnorePatterns, glob_match
from ftpwatch.client.sync.operations import (
    apply_delete,
    apply_upload,
    remote_dir_for,
    remote_path_for,
)
from ftpwatch.client.sync.queue import ChangeQueue
from ftpwatch.client.sync.types import (
    DEFAULT_MAX_CONNECTION_RETRIES,
    DEFAULT_RECONNECT_DELAY,
    MAX_OPERATION_RETRIES,
    Action,
    ConnectionState,
    EngineStats,
    EntryType,
    FatalAuthError,
    FatalConnectionError,
    LocalFileMissingError,
    PendingOperation,
    SyncError,
    UploadResult,
    WatchEvent,
    WatchEventKind,
)
from ftpwatch.client.sync.watcher import (
    FileWatcher,
    WatchdogEventHandler,
    WriteStabilizer,
)

__all__ = [
    # Constants
    "DEFAULT_MAX_CONNECTION_RETRIES",
    "DEFAULT_RECONNECT_DELAY",
    "MAX_OPERATION_RETRIES",
    # Types and dataclasses
    "Action",
    "ConnectionState",
    "EngineStats",
    "EntryType",
    "PendingOperation",
    "UploadResult",
    "WatchEvent",
    "WatchEventKind",
    # Errors
    "FatalAuthError",
    "FatalConnectionError",
    "LocalFileMissingError",
    "SyncError",
    # Queue & engine
    "ChangeQueue",
    "SyncEngine",
    # Operations
    "apply_delete",
    "apply_upload",
    "remote_dir_for",
    "remote_path_for",
    # Watcher
    "FileWatcher",
    "IgnorePatterns",
    "WatchdogEventHandler",
    "WriteStabilizer",
    "glob_match",
]
