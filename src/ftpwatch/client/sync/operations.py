"""Remote upload and delete operations.

This module provides:
- remote_path_for / remote_dir_for: Map a watched-root relative path to the
  remote tree (forward slashes regardless of the local OS)
- apply_upload: Mirror a local file or directory to the remote tree
- apply_delete: Remove a remote file or (empty) directory

Blocking session calls run in a worker thread via asyncio.to_thread, so
each call is a suspension point for the event loop. Callers must not run
two operations on the same session concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from typing import TYPE_CHECKING, Any

from ftpwatch.client.remote import (
    RemoteConnectionLost,
    RemoteError,
    RemoteNotFoundError,
)
from ftpwatch.client.sync.types import (
    EntryType,
    LocalFileMissingError,
    UploadResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from ftpwatch.client.remote import RemoteSession

logger = logging.getLogger(__name__)


def normalize_relative_path(relative_path: str) -> str:
    """Use forward slashes and strip leading/trailing separators."""
    return relative_path.replace("\\", "/").strip("/")


def remote_path_for(remote_base: str, relative_path: str) -> str:
    """Get the remote path mirroring a relative path.

    Args:
        remote_base: Remote root directory.
        relative_path: Path relative to the watched root.

    Returns:
        remote_base + "/" + relative_path, POSIX style.
    """
    rel = normalize_relative_path(relative_path)
    if not rel:
        return remote_base
    return posixpath.join(remote_base, rel)


def remote_dir_for(remote_base: str, relative_path: str) -> str:
    """Get the remote directory containing a relative path."""
    return posixpath.dirname(remote_path_for(remote_base, relative_path))


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    return await asyncio.to_thread(func, *args)


async def apply_upload(
    session: RemoteSession,
    remote_base: str,
    relative_path: str,
    entry_type: EntryType,
    local_path: Path | None = None,
) -> UploadResult:
    """Mirror a local file or directory to the remote tree.

    Files: ensure the remote directory exists, remove any existing remote
    file (best effort), transfer the bytes, then compare the listed remote
    size with the local size. A size mismatch is only logged.

    Directories: ensure the remote directory exists.

    Args:
        session: Connected remote session.
        remote_base: Remote root directory.
        relative_path: Path relative to the watched root.
        entry_type: File or directory.
        local_path: Absolute local path (required for files).

    Returns:
        UploadResult describing the transfer.

    Raises:
        LocalFileMissingError: If the local file does not exist.
        RemoteConnectionLost: If the session dropped.
        RemoteError: For other remote failures.
    """
    remote_path = remote_path_for(remote_base, relative_path)

    if entry_type is EntryType.DIRECTORY:
        await _call(session.ensure_dir, remote_path)
        logger.info("Created directory: %s", relative_path)
        return UploadResult(
            path=relative_path,
            remote_path=remote_path,
            entry_type=entry_type,
            verified=True,
        )

    if local_path is None or not local_path.is_file():
        raise LocalFileMissingError(f"Local file does not exist: {local_path}")

    remote_dir = remote_dir_for(remote_base, relative_path)
    await _call(session.ensure_dir, remote_dir)

    # Clean overwrite: some servers refuse STOR over an existing file
    try:
        await _call(session.remove, remote_path)
    except RemoteNotFoundError:
        pass
    except RemoteConnectionLost:
        raise
    except RemoteError as e:
        logger.warning("Could not remove existing file %s: %s", remote_path, e)

    try:
        local_size = local_path.stat().st_size
        await _call(session.upload, local_path, remote_path)
    except FileNotFoundError as e:
        raise LocalFileMissingError(f"Local file does not exist: {local_path}") from e

    result = UploadResult(
        path=relative_path,
        remote_path=remote_path,
        entry_type=entry_type,
        size=local_size,
    )
    await _verify_upload(session, remote_dir, result)
    return result


async def _verify_upload(session: RemoteSession, remote_dir: str, result: UploadResult) -> None:
    """Compare the remote size with the local size. Never raises."""
    name = posixpath.basename(result.remote_path)
    try:
        entries = await _call(session.list, remote_dir)
    except RemoteError as e:
        logger.debug("Could not verify %s: %s", result.remote_path, e)
        logger.info("Uploaded: %s -> %s", result.path, result.remote_path)
        return

    uploaded = next((e for e in entries if e.name == name), None)
    if uploaded is None:
        logger.info("Uploaded: %s -> %s", result.path, result.remote_path)
    elif uploaded.size == result.size:
        result.verified = True
        logger.info("Uploaded: %s (%d bytes) -> %s", result.path, result.size, result.remote_path)
    else:
        logger.warning(
            "Uploaded but size mismatch: %s (local: %d, remote: %d)",
            result.path,
            result.size,
            uploaded.size,
        )


async def apply_delete(
    session: RemoteSession,
    remote_base: str,
    relative_path: str,
    entry_type: EntryType,
) -> bool:
    """Remove the remote counterpart of a deleted local entry.

    Deletes are best effort: nothing happens when the session is not
    connected, a missing remote file counts as deleted, and a directory that
    cannot be removed (for example because it is not empty) is only logged.
    Directories are not removed recursively; their children are deleted by
    their own events.

    Returns:
        True if the remote entry is gone, False if the delete was skipped
        or the directory could not be removed.

    Raises:
        RemoteConnectionLost: If the session dropped.
        RemoteError: For file deletes failing for another reason.
    """
    if not session.is_connected:
        logger.debug("Not connected, skipping delete of %s", relative_path)
        return False

    remote_path = remote_path_for(remote_base, relative_path)

    if entry_type is EntryType.DIRECTORY:
        try:
            await _call(session.remove_dir, remote_path)
        except RemoteConnectionLost:
            raise
        except RemoteError as e:
            logger.warning("Could not delete directory %s: %s", relative_path, e)
            return False
        logger.info("Deleted directory: %s", relative_path)
        return True

    try:
        await _call(session.remove, remote_path)
    except RemoteNotFoundError:
        logger.info("Already deleted: %s", relative_path)
        return True
    logger.info("Deleted: %s", relative_path)
    return True
