"""SFTP session built on paramiko.

This module provides:
- SFTPSession: RemoteSession over SSH/SFTP, used when protocol is "sftp"

paramiko errors are translated into the RemoteError taxonomy:
- AuthenticationException -> RemoteAuthError
- SSHException, EOF, connection resets, timeouts -> RemoteConnectionLost
- ENOENT -> RemoteNotFoundError
- other I/O errors (permission, non-empty directory) -> RemoteError
"""

from __future__ import annotations

import contextlib
import errno
import logging
import posixpath
import stat
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import paramiko

from ftpwatch.client.remote import (
    RemoteAuthError,
    RemoteConnectionLost,
    RemoteEntry,
    RemoteError,
    RemoteNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from ftpwatch.core.config import WatchConfig

logger = logging.getLogger(__name__)

KEEPALIVE_INTERVAL = 30  # seconds

# Port 21 in the config means "protocol default" for SFTP
SFTP_DEFAULT_PORT = 22


class SFTPSession:
    """RemoteSession implementation over paramiko's SFTPClient."""

    def __init__(self, config: WatchConfig) -> None:
        """Initialize the session.

        Args:
            config: Connection configuration.
        """
        self._config = config
        self._ssh: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None

    @property
    def is_connected(self) -> bool:
        """Check if the SSH transport is open and active."""
        if self._ssh is None or self._sftp is None:
            return False
        transport = self._ssh.get_transport()
        return transport is not None and transport.is_active()

    @property
    def port(self) -> int:
        """Get the port to connect to."""
        if self._config.port == 21:
            return SFTP_DEFAULT_PORT
        return self._config.port

    def connect(self) -> None:
        """Open the SSH connection and the SFTP channel.

        Raises:
            RemoteAuthError: If the server rejects the credentials.
            RemoteConnectionLost: If the server cannot be reached.
        """
        self.close()
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self._config.host,
                port=self.port,
                username=self._config.username,
                password=self._config.password,
                timeout=self._config.timeout,
                banner_timeout=self._config.timeout,
                auth_timeout=self._config.timeout,
                look_for_keys=False,
                allow_agent=False,
            )
            transport = client.get_transport()
            if transport is not None:
                transport.set_keepalive(KEEPALIVE_INTERVAL)
            sftp = client.open_sftp()
        except paramiko.AuthenticationException as e:
            client.close()
            raise RemoteAuthError(str(e)) from e
        except (paramiko.SSHException, OSError, EOFError) as e:
            client.close()
            raise RemoteConnectionLost(str(e) or type(e).__name__) from e

        self._ssh = client
        self._sftp = sftp
        logger.debug("SFTP session open to %s", self._config.describe())

    def _client(self) -> paramiko.SFTPClient:
        if not self.is_connected or self._sftp is None:
            self._drop()
            raise RemoteConnectionLost("Not connected")
        return self._sftp

    def _drop(self) -> None:
        if self._sftp is not None:
            with contextlib.suppress(OSError, EOFError, paramiko.SSHException):
                self._sftp.close()
        if self._ssh is not None:
            with contextlib.suppress(OSError, EOFError, paramiko.SSHException):
                self._ssh.close()
        self._sftp = None
        self._ssh = None

    @contextlib.contextmanager
    def _translate_errors(self) -> Iterator[None]:
        """Map paramiko and socket errors to RemoteError subclasses."""
        try:
            yield
        except (paramiko.SSHException, EOFError, ConnectionError, TimeoutError) as e:
            self._drop()
            raise RemoteConnectionLost(str(e) or type(e).__name__) from e
        except OSError as e:
            if e.errno == errno.ENOENT:
                raise RemoteNotFoundError(str(e), code=e.errno) from e
            raise RemoteError(str(e), code=e.errno) from e

    def change_dir(self, path: str) -> None:
        """Change the remote working directory."""
        sftp = self._client()
        with self._translate_errors():
            sftp.chdir(path)

    def pwd(self) -> str:
        """Get the remote working directory."""
        sftp = self._client()
        with self._translate_errors():
            return sftp.getcwd() or "/"

    def list(self, path: str) -> list[RemoteEntry]:
        """List a remote directory."""
        sftp = self._client()
        with self._translate_errors():
            attrs = sftp.listdir_attr(path)
        entries = []
        for attr in attrs:
            mode = attr.st_mode or 0
            modified_at = None
            if attr.st_mtime is not None:
                modified_at = datetime.fromtimestamp(attr.st_mtime, tz=UTC)
            entries.append(
                RemoteEntry(
                    name=attr.filename,
                    is_directory=stat.S_ISDIR(mode),
                    size=attr.st_size or 0,
                    modified_at=modified_at,
                )
            )
        return entries

    def ensure_dir(self, path: str) -> None:
        """Create a remote directory and all its parents."""
        sftp = self._client()
        current = "/" if path.startswith("/") else ""
        for part in (p for p in path.split("/") if p):
            current = posixpath.join(current, part) if current else part
            with self._translate_errors():
                try:
                    if stat.S_ISDIR(sftp.stat(current).st_mode or 0):
                        continue
                except FileNotFoundError:
                    pass
                sftp.mkdir(current)
                logger.debug("Created remote directory %s", current)

    def upload(self, local_path: Path, remote_path: str) -> None:
        """Store a local file at the remote path."""
        sftp = self._client()
        if not local_path.is_file():
            raise FileNotFoundError(errno.ENOENT, "Local file does not exist", str(local_path))
        with self._translate_errors():
            sftp.put(str(local_path), remote_path)

    def download(self, remote_path: str, local_path: Path) -> None:
        """Retrieve a remote file into a local path."""
        sftp = self._client()
        with self._translate_errors():
            sftp.get(remote_path, str(local_path))

    def remove(self, remote_path: str) -> None:
        """Delete a remote file."""
        sftp = self._client()
        with self._translate_errors():
            sftp.remove(remote_path)

    def remove_dir(self, remote_path: str) -> None:
        """Remove an empty remote directory."""
        sftp = self._client()
        with self._translate_errors():
            sftp.rmdir(remote_path)

    def close(self) -> None:
        """Close the SFTP channel and SSH connection, ignoring errors."""
        self._drop()
