"""Tests for remote upload and delete operations."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from ftpwatch.client.remote import RemoteConnectionLost, RemoteError
from ftpwatch.client.sync.operations import (
    apply_delete,
    apply_upload,
    normalize_relative_path,
    remote_dir_for,
    remote_path_for,
)
from ftpwatch.client.sync.types import EntryType, LocalFileMissingError
from tests.client.fakes import REMOTE_BASE, FakeRemoteSession


class TestRemotePaths:
    """Tests for local-to-remote path mapping."""

    def test_remote_path_for(self) -> None:
        """Relative paths are joined under the remote base."""
        assert remote_path_for(REMOTE_BASE, "css/style.css") == f"{REMOTE_BASE}/css/style.css"

    def test_backslashes_become_forward_slashes(self) -> None:
        """Windows separators are normalized."""
        assert remote_path_for("/base", "css\\deep\\style.css") == "/base/css/deep/style.css"

    def test_leading_slash_stays_under_base(self) -> None:
        """A leading slash does not escape the remote base."""
        assert remote_path_for("/base", "/index.php") == "/base/index.php"

    def test_empty_relative_path_is_base(self) -> None:
        """The root itself maps to the remote base."""
        assert remote_path_for("/base", "") == "/base"

    def test_remote_dir_for(self) -> None:
        """The parent directory of a mapped file."""
        assert remote_dir_for("/base", "a/b/c.txt") == "/base/a/b"
        assert remote_dir_for("/base", "top.txt") == "/base"

    def test_normalize_relative_path(self) -> None:
        """Normalization strips separators at both ends."""
        assert normalize_relative_path("\\a\\b\\") == "a/b"


class TestApplyUpload:
    """Tests for apply_upload."""

    @pytest.mark.asyncio
    async def test_upload_creates_parent_dirs(
        self, connected: FakeRemoteSession, local_root: Path
    ) -> None:
        """The remote directory tree is created before the transfer."""
        local = local_root / "css" / "deep" / "style.css"
        local.parent.mkdir(parents=True)
        local.write_text("body {}")

        result = await apply_upload(
            connected, REMOTE_BASE, "css/deep/style.css", EntryType.FILE, local
        )

        remote = f"{REMOTE_BASE}/css/deep/style.css"
        assert connected.files[remote] == b"body {}"
        assert f"{REMOTE_BASE}/css/deep" in connected.dirs
        assert result.remote_path == remote
        assert result.size == 7
        assert result.verified

    @pytest.mark.asyncio
    async def test_upload_removes_existing_file_first(
        self, connected: FakeRemoteSession, local_root: Path
    ) -> None:
        """An existing remote file is removed before it is overwritten."""
        remote = f"{REMOTE_BASE}/index.php"
        connected.ensure_dir(REMOTE_BASE)
        connected.files[remote] = b"old content"
        local = local_root / "index.php"
        local.write_text("new")

        await apply_upload(connected, REMOTE_BASE, "index.php", EntryType.FILE, local)

        methods = [name for name, path in connected.calls if path == remote]
        assert methods.index("remove") < methods.index("upload")
        assert connected.files[remote] == b"new"

    @pytest.mark.asyncio
    async def test_remove_failure_does_not_block_upload(
        self,
        connected: FakeRemoteSession,
        local_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A failing pre-upload remove is logged and the upload proceeds."""
        local = local_root / "a.txt"
        local.write_text("data")
        connected.fail_next("remove", RemoteError("550 Permission denied", code=550))

        with caplog.at_level(logging.WARNING, logger="ftpwatch"):
            result = await apply_upload(connected, REMOTE_BASE, "a.txt", EntryType.FILE, local)

        assert result.verified
        assert connected.files[f"{REMOTE_BASE}/a.txt"] == b"data"
        assert "Could not remove existing file" in caplog.text

    @pytest.mark.asyncio
    async def test_connection_lost_during_remove_propagates(
        self, connected: FakeRemoteSession, local_root: Path
    ) -> None:
        """Connection loss is never swallowed by the best-effort remove."""
        local = local_root / "a.txt"
        local.write_text("data")
        connected.fail_next("remove", RemoteConnectionLost("Connection reset"))

        with pytest.raises(RemoteConnectionLost):
            await apply_upload(connected, REMOTE_BASE, "a.txt", EntryType.FILE, local)

        assert connected.uploaded() == []

    @pytest.mark.asyncio
    async def test_missing_local_file(
        self, connected: FakeRemoteSession, local_root: Path
    ) -> None:
        """Uploading a vanished file fails before touching the server."""
        with pytest.raises(LocalFileMissingError):
            await apply_upload(
                connected, REMOTE_BASE, "gone.txt", EntryType.FILE, local_root / "gone.txt"
            )

        assert connected.calls == []

    @pytest.mark.asyncio
    async def test_upload_directory(
        self, connected: FakeRemoteSession, local_root: Path
    ) -> None:
        """Directory uploads only create the remote directory."""
        (local_root / "assets").mkdir()

        result = await apply_upload(
            connected, REMOTE_BASE, "assets", EntryType.DIRECTORY, local_root / "assets"
        )

        assert f"{REMOTE_BASE}/assets" in connected.dirs
        assert connected.uploaded() == []
        assert result.entry_type is EntryType.DIRECTORY

    @pytest.mark.asyncio
    async def test_size_mismatch_is_warning_only(
        self,
        connected: FakeRemoteSession,
        local_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A size mismatch after upload is logged, not raised."""
        local = local_root / "a.txt"
        local.write_text("hello")
        connected.size_skew = 3

        with caplog.at_level(logging.WARNING, logger="ftpwatch"):
            result = await apply_upload(connected, REMOTE_BASE, "a.txt", EntryType.FILE, local)

        assert not result.verified
        assert "size mismatch" in caplog.text
        assert "local: 5, remote: 8" in caplog.text

    @pytest.mark.asyncio
    async def test_verification_listing_failure_is_ignored(
        self, connected: FakeRemoteSession, local_root: Path
    ) -> None:
        """The upload succeeds even when the directory cannot be listed."""
        local = local_root / "a.txt"
        local.write_text("hello")
        connected.fail_next("list", RemoteError("451 Local error"))

        result = await apply_upload(connected, REMOTE_BASE, "a.txt", EntryType.FILE, local)

        assert not result.verified
        assert connected.files[f"{REMOTE_BASE}/a.txt"] == b"hello"

    @pytest.mark.asyncio
    async def test_upload_list_download_round_trip(
        self, connected: FakeRemoteSession, local_root: Path, tmp_path: Path
    ) -> None:
        """An uploaded file is listed with its size and downloads unchanged."""
        content = b"<?php echo 'hi';\n"
        local = local_root / "index.php"
        local.write_bytes(content)

        await apply_upload(connected, REMOTE_BASE, "index.php", EntryType.FILE, local)
        entries = connected.list(REMOTE_BASE)
        downloaded = tmp_path / "downloaded.php"
        connected.download(f"{REMOTE_BASE}/index.php", downloaded)

        assert [(e.name, e.size) for e in entries] == [("index.php", len(content))]
        assert downloaded.read_bytes() == content


class TestApplyDelete:
    """Tests for apply_delete."""

    @pytest.mark.asyncio
    async def test_delete_file(self, connected: FakeRemoteSession) -> None:
        """Deleting an existing remote file."""
        connected.files[f"{REMOTE_BASE}/a.txt"] = b"x"

        assert await apply_delete(connected, REMOTE_BASE, "a.txt", EntryType.FILE)
        assert connected.files == {}

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(
        self, connected: FakeRemoteSession, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Deleting an already missing file counts as success."""
        connected.files[f"{REMOTE_BASE}/a.txt"] = b"x"

        with caplog.at_level(logging.INFO, logger="ftpwatch"):
            first = await apply_delete(connected, REMOTE_BASE, "a.txt", EntryType.FILE)
            second = await apply_delete(connected, REMOTE_BASE, "a.txt", EntryType.FILE)

        assert first and second
        assert "Already deleted: a.txt" in caplog.text

    @pytest.mark.asyncio
    async def test_delete_skipped_when_disconnected(self, session: FakeRemoteSession) -> None:
        """Nothing is attempted without a connection."""
        assert not await apply_delete(session, REMOTE_BASE, "a.txt", EntryType.FILE)
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_delete_empty_directory(self, connected: FakeRemoteSession) -> None:
        """Empty directories are removed."""
        connected.ensure_dir(f"{REMOTE_BASE}/assets")

        assert await apply_delete(connected, REMOTE_BASE, "assets", EntryType.DIRECTORY)
        assert f"{REMOTE_BASE}/assets" not in connected.dirs

    @pytest.mark.asyncio
    async def test_delete_non_empty_directory_is_warning(
        self, connected: FakeRemoteSession, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A non-empty directory is left in place with a warning."""
        connected.ensure_dir(f"{REMOTE_BASE}/assets")
        connected.files[f"{REMOTE_BASE}/assets/logo.png"] = b"png"

        with caplog.at_level(logging.WARNING, logger="ftpwatch"):
            removed = await apply_delete(connected, REMOTE_BASE, "assets", EntryType.DIRECTORY)

        assert not removed
        assert f"{REMOTE_BASE}/assets/logo.png" in connected.files
        assert "Could not delete directory assets" in caplog.text

    @pytest.mark.asyncio
    async def test_delete_directory_connection_lost_propagates(
        self, connected: FakeRemoteSession
    ) -> None:
        """Connection loss while removing a directory is raised."""
        connected.ensure_dir(f"{REMOTE_BASE}/assets")
        connected.fail_next("remove_dir", RemoteConnectionLost("421 Timeout"))

        with pytest.raises(RemoteConnectionLost):
            await apply_delete(connected, REMOTE_BASE, "assets", EntryType.DIRECTORY)

    @pytest.mark.asyncio
    async def test_delete_file_transient_error_propagates(
        self, connected: FakeRemoteSession
    ) -> None:
        """Other file delete failures are left to the caller."""
        connected.fail_next("remove", RemoteError("450 File busy", code=450))

        with pytest.raises(RemoteError):
            await apply_delete(connected, REMOTE_BASE, "a.txt", EntryType.FILE)
