"""FTP session built on ftplib.

This module provides:
- FTPSession: RemoteSession over plain FTP or FTP over TLS (protocol "ftps")

ftplib errors are translated into the RemoteError taxonomy:
- 530 on login -> RemoteAuthError
- 421, socket errors, EOF, protocol desync -> RemoteConnectionLost
- 550 without a permission hint -> RemoteNotFoundError
- unreadable local files, malformed replies -> RemoteError (transient)
- anything else -> RemoteError (transient)
"""

from __future__ import annotations

import contextlib
import ftplib
import logging
import posixpath
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, BinaryIO

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

# Reply codes
CODE_SERVICE_UNAVAILABLE = 421
CODE_NOT_LOGGED_IN = 530
CODE_FILE_UNAVAILABLE = 550
CODES_NOT_IMPLEMENTED = (500, 501, 502, 504)

AUTH_HINTS = ("authentication", "password", "auth", "login incorrect")
EXISTS_HINTS = ("exists", "already")
PERMISSION_HINTS = ("permission", "denied", "not allowed")

# drwxr-xr-x   2 owner group   4096 Jan 01 12:00 name
_UNIX_LIST_RE = re.compile(
    r"^(?P<perms>[\-dlbcps][\w\-]{9}\S*)\s+\d+\s+\S+\s+\S+\s+(?P<size>\d+)\s+"
    r"(?P<month>\w{3})\s+(?P<day>\d{1,2})\s+(?P<timeyear>[\d:]+)\s+(?P<name>.+)$"
)
# 01-31-24  10:15AM       <DIR>          name
_DOS_LIST_RE = re.compile(
    r"^(?P<date>\d{2}-\d{2}-\d{2,4})\s+(?P<time>\d{1,2}:\d{2}[AP]M)\s+"
    r"(?:(?P<dir><DIR>)|(?P<size>\d+))\s+(?P<name>.+)$"
)


def reply_code(error: BaseException) -> int | None:
    """Extract the three-digit reply code from an ftplib error."""
    text = str(error).strip()
    if len(text) >= 3 and text[:3].isdigit():
        return int(text[:3])
    return None


def _has_hint(error: BaseException, hints: tuple[str, ...]) -> bool:
    text = str(error).lower()
    return any(hint in text for hint in hints)


def parse_mlsd_time(value: str | None) -> datetime | None:
    """Parse an MLSD "modify" fact (YYYYMMDDHHMMSS[.sss], UTC)."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:14], "%Y%m%d%H%M%S").replace(tzinfo=UTC)
    except ValueError:
        return None


def parse_list_line(line: str) -> RemoteEntry | None:
    """Parse one line of a LIST response (Unix or DOS style).

    Returns:
        The entry, or None for unparseable lines, totals and "."/"..".
    """
    match = _UNIX_LIST_RE.match(line)
    if match:
        name = match.group("name")
        perms = match.group("perms")
        if perms.startswith("l") and " -> " in name:
            name = name.split(" -> ", 1)[0]
        if name in (".", ".."):
            return None
        return RemoteEntry(
            name=name,
            is_directory=perms.startswith("d"),
            size=int(match.group("size")),
        )

    match = _DOS_LIST_RE.match(line)
    if match:
        name = match.group("name")
        if name in (".", ".."):
            return None
        modified_at = None
        for fmt in ("%m-%d-%y %I:%M%p", "%m-%d-%Y %I:%M%p"):
            try:
                modified_at = datetime.strptime(
                    f"{match.group('date')} {match.group('time')}", fmt
                )
                break
            except ValueError:
                continue
        is_dir = match.group("dir") is not None
        return RemoteEntry(
            name=name,
            is_directory=is_dir,
            size=0 if is_dir else int(match.group("size")),
            modified_at=modified_at,
        )

    return None


class FTPSession:
    """RemoteSession implementation over ftplib.

    Usage:
        session = FTPSession(config)
        session.connect()
        session.ensure_dir("/public_html/theme")
        session.upload(Path("style.css"), "/public_html/theme/style.css")
        session.close()
    """

    def __init__(self, config: WatchConfig) -> None:
        """Initialize the session.

        Args:
            config: Connection configuration.
        """
        self._config = config
        self._ftp: ftplib.FTP | None = None

    @property
    def is_connected(self) -> bool:
        """Check if a control connection is open."""
        return self._ftp is not None

    def _new_client(self) -> ftplib.FTP:
        if self._config.is_secure:
            return ftplib.FTP_TLS(timeout=self._config.timeout)
        return ftplib.FTP(timeout=self._config.timeout)

    def connect(self) -> None:
        """Connect and log in, using passive mode.

        Raises:
            RemoteAuthError: If the server rejects the credentials.
            RemoteConnectionLost: If the server cannot be reached.
            RemoteError: For any other failure.
        """
        self.close()
        ftp = self._new_client()
        try:
            ftp.connect(self._config.host, self._config.port)
            ftp.login(self._config.username, self._config.password)
            if self._config.is_secure:
                ftp.prot_p()
            ftp.set_pasv(True)
        except ftplib.error_perm as e:
            ftp.close()
            if reply_code(e) == CODE_NOT_LOGGED_IN or _has_hint(e, AUTH_HINTS):
                raise RemoteAuthError(str(e), code=reply_code(e)) from e
            raise RemoteError(str(e), code=reply_code(e)) from e
        except (ftplib.Error, OSError, EOFError) as e:
            ftp.close()
            raise RemoteConnectionLost(str(e) or type(e).__name__, code=reply_code(e)) from e

        self._ftp = ftp
        logger.debug("FTP session open to %s", self._config.describe())

    def _client(self) -> ftplib.FTP:
        if self._ftp is None:
            raise RemoteConnectionLost("Not connected")
        return self._ftp

    def _drop(self) -> None:
        """Forget a broken control connection."""
        if self._ftp is not None:
            with contextlib.suppress(OSError):
                self._ftp.close()
            self._ftp = None

    @contextlib.contextmanager
    def _translate_errors(self) -> Iterator[None]:
        """Map ftplib and socket errors to RemoteError subclasses."""
        try:
            yield
        except ftplib.error_perm as e:
            code = reply_code(e)
            if code == CODE_NOT_LOGGED_IN:
                self._drop()
                raise RemoteConnectionLost(str(e), code=code) from e
            if code == CODE_FILE_UNAVAILABLE and not _has_hint(e, PERMISSION_HINTS):
                raise RemoteNotFoundError(str(e), code=code) from e
            raise RemoteError(str(e), code=code) from e
        except ftplib.error_temp as e:
            code = reply_code(e)
            if code == CODE_SERVICE_UNAVAILABLE:
                self._drop()
                raise RemoteConnectionLost(str(e), code=code) from e
            raise RemoteError(str(e), code=code) from e
        except ftplib.error_proto as e:
            self._drop()
            raise RemoteConnectionLost(str(e)) from e
        except ftplib.Error as e:
            raise RemoteError(str(e), code=reply_code(e)) from e
        except ValueError as e:
            # Undecodable or malformed listing data
            raise RemoteError(f"Unexpected reply: {e}") from e
        except (OSError, EOFError) as e:
            self._drop()
            raise RemoteConnectionLost(str(e) or type(e).__name__) from e

    def change_dir(self, path: str) -> None:
        """Change the remote working directory."""
        ftp = self._client()
        with self._translate_errors():
            ftp.cwd(path)

    def pwd(self) -> str:
        """Get the remote working directory."""
        ftp = self._client()
        with self._translate_errors():
            return ftp.pwd()

    def list(self, path: str) -> list[RemoteEntry]:
        """List a remote directory.

        Uses MLSD when the server supports it and falls back to parsing LIST.
        """
        ftp = self._client()
        try:
            with self._translate_errors():
                return self._list_mlsd(ftp, path)
        except RemoteError as e:
            if isinstance(e, RemoteConnectionLost) or e.code not in CODES_NOT_IMPLEMENTED:
                raise
            logger.debug("MLSD not supported (%s), falling back to LIST", e)

        lines: list[str] = []
        with self._translate_errors():
            ftp.retrlines(f"LIST {path}", lines.append)
        entries = []
        for line in lines:
            entry = parse_list_line(line)
            if entry is not None:
                entries.append(entry)
        return entries

    def _list_mlsd(self, ftp: ftplib.FTP, path: str) -> list[RemoteEntry]:
        entries = []
        for name, facts in ftp.mlsd(path, facts=["type", "size", "modify"]):
            kind = facts.get("type", "file").lower()
            if kind in ("cdir", "pdir") or name in (".", ".."):
                continue
            entries.append(
                RemoteEntry(
                    name=name,
                    is_directory=kind == "dir",
                    size=int(facts.get("size") or 0),
                    modified_at=parse_mlsd_time(facts.get("modify")),
                )
            )
        return entries

    def ensure_dir(self, path: str) -> None:
        """Create a remote directory and all its parents.

        "Already exists" replies (and 550, which many servers send for an
        existing directory) are treated as success.
        """
        ftp = self._client()
        current = "/" if path.startswith("/") else ""
        for part in (p for p in path.split("/") if p):
            current = posixpath.join(current, part) if current else part
            try:
                with self._translate_errors():
                    ftp.mkd(current)
                logger.debug("Created remote directory %s", current)
            except RemoteConnectionLost:
                raise
            except RemoteError as e:
                if e.code == CODE_FILE_UNAVAILABLE or _has_hint(e, EXISTS_HINTS):
                    continue
                raise

    @contextlib.contextmanager
    def _local_file(self, local_path: Path, mode: str) -> Iterator[BinaryIO]:
        """Open a local file, reporting unusable files as RemoteError.

        FileNotFoundError is left as is so callers can tell a vanished file
        from one that exists but cannot be read or written.
        """
        try:
            f = open(local_path, mode)
        except FileNotFoundError:
            raise
        except OSError as e:
            raise RemoteError(f"Cannot open local file {local_path}: {e}") from e
        with f:
            yield f

    def upload(self, local_path: Path, remote_path: str) -> None:
        """Store a local file at the remote path (binary mode)."""
        ftp = self._client()
        with self._local_file(local_path, "rb") as f, self._translate_errors():
            ftp.storbinary(f"STOR {remote_path}", f)

    def download(self, remote_path: str, local_path: Path) -> None:
        """Retrieve a remote file into a local path (binary mode)."""
        ftp = self._client()
        with self._local_file(local_path, "wb") as f, self._translate_errors():
            ftp.retrbinary(f"RETR {remote_path}", f.write)

    def remove(self, remote_path: str) -> None:
        """Delete a remote file."""
        ftp = self._client()
        with self._translate_errors():
            ftp.delete(remote_path)

    def remove_dir(self, remote_path: str) -> None:
        """Remove an empty remote directory."""
        ftp = self._client()
        with self._translate_errors():
            ftp.rmd(remote_path)

    def close(self) -> None:
        """Send QUIT and close the connection, ignoring errors."""
        ftp, self._ftp = self._ftp, None
        if ftp is None:
            return
        try:
            ftp.quit()
        except (ftplib.Error, OSError, EOFError):
            ftp.close()
