"""Remote file-transfer session interface.

This module provides:
- RemoteError and subclasses: the error taxonomy every session maps its
  library errors into
- RemoteEntry: A directory listing entry
- RemoteSession: Protocol implemented by FTPSession and SFTPSession
- create_session: Factory picking the implementation for a config

Sessions are blocking and not safe for concurrent use. The sync engine
owns a single session and calls it from one task at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from ftpwatch.core.config import WatchConfig


class RemoteError(Exception):
    """Base exception for remote session errors.

    A plain RemoteError is transient: the session is still usable and the
    operation may be retried.
    """

    def __init__(self, message: str, code: int | str | None = None) -> None:
        super().__init__(message)
        self.code = code


class RemoteAuthError(RemoteError):
    """The server rejected the credentials."""


class RemoteConnectionLost(RemoteError):
    """The session is no longer usable and must be re-established."""


class RemoteNotFoundError(RemoteError):
    """The remote file or directory does not exist."""


@dataclass
class RemoteEntry:
    """Entry of a remote directory listing."""

    name: str
    is_directory: bool
    size: int
    modified_at: datetime | None = None


class RemoteSession(Protocol):
    """Connection-oriented file-transfer client.

    All methods may raise RemoteError subclasses.
    """

    @property
    def is_connected(self) -> bool:
        """Check if the session believes it is connected."""
        ...

    def connect(self) -> None:
        """Open the connection and log in."""
        ...

    def change_dir(self, path: str) -> None:
        """Change the remote working directory."""
        ...

    def pwd(self) -> str:
        """Get the remote working directory."""
        ...

    def list(self, path: str) -> list[RemoteEntry]:
        """List a remote directory."""
        ...

    def ensure_dir(self, path: str) -> None:
        """Create a remote directory and its parents, tolerating existing ones."""
        ...

    def upload(self, local_path: Path, remote_path: str) -> None:
        """Transfer a local file to the remote path, overwriting it."""
        ...

    def download(self, remote_path: str, local_path: Path) -> None:
        """Transfer a remote file to a local path."""
        ...

    def remove(self, remote_path: str) -> None:
        """Remove a remote file."""
        ...

    def remove_dir(self, remote_path: str) -> None:
        """Remove an empty remote directory."""
        ...

    def close(self) -> None:
        """Close the connection. Never raises."""
        ...


def create_session(config: WatchConfig) -> RemoteSession:
    """Create the session implementation matching the configured protocol.

    "sftp" uses paramiko; every other protocol uses ftplib, with TLS when
    the protocol is "ftps".

    Args:
        config: Connection configuration.

    Returns:
        A disconnected session.
    """
    if config.protocol == "sftp":
        from ftpwatch.client.sftp import SFTPSession

        return SFTPSession(config)

    from ftpwatch.client.ftp import FTPSession

    return FTPSession(config)
