"""One-shot remote commands for the ftpwatch CLI.

Commands:
- ls: List a remote directory
- upload: Upload local files or folders once
- delete: Delete remote files or folders once
- check: Upload a probe file, verify it, download it back and delete it
"""

from __future__ import annotations

import asyncio
import sys
import tempfile
import time
from datetime import UTC, datetime
from pathlib import Path

import click

from ftpwatch.client.cli.config import (
    DEFAULT_LOCAL_DIR,
    configure_logging,
    connected_session,
    get_local_root,
    load_watch_config,
)
from ftpwatch.client.remote import RemoteError
from ftpwatch.client.sync import (
    EntryType,
    LocalFileMissingError,
    apply_delete,
    apply_upload,
    remote_path_for,
)

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: $FTPWATCH_CONFIG or .vscode/sftp.json).",
)
local_option = click.option(
    "--local",
    "local_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_LOCAL_DIR,
    show_default=True,
    help="Local folder mirrored to the server.",
)


@click.command("ls")
@config_option
@local_option
@click.argument("remote_path", required=False)
def list_remote(config_path: Path | None, local_dir: Path, remote_path: str | None) -> None:
    """List a remote directory (default: the mirror of the local folder)."""
    config = load_watch_config(config_path)
    target = remote_path or config.remote_root(local_dir.name)

    with connected_session(config) as session:
        click.echo(f"Listing {target}\n")
        try:
            entries = session.list(target)
        except RemoteError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        if not entries:
            click.echo("  (directory is empty)")
        for entry in sorted(entries, key=lambda e: (not e.is_directory, e.name)):
            if entry.is_directory:
                click.echo(f"  d {entry.name}/")
                continue
            modified = f"  {entry.modified_at:%Y-%m-%d %H:%M}" if entry.modified_at else ""
            click.echo(f"  - {entry.name} ({entry.size} bytes){modified}")
        click.echo("")


def _relative_to_root(path: Path, local_root: Path) -> str:
    try:
        return path.resolve().relative_to(local_root).as_posix()
    except ValueError:
        click.echo(f"Error: {path} is not inside {local_root}", err=True)
        sys.exit(1)


@click.command()
@config_option
@local_option
@click.option("--verbose", "-v", is_flag=True, help="Show debug output.")
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
def upload(
    config_path: Path | None, local_dir: Path, verbose: bool, paths: tuple[Path, ...]
) -> None:
    """Upload local files or folders inside the local folder."""
    configure_logging(verbose)
    config = load_watch_config(config_path)
    local_root = get_local_root(local_dir)
    remote_base = config.remote_root(local_root.name)
    failed = 0

    with connected_session(config) as session:
        for path in paths:
            relative_path = _relative_to_root(path, local_root)
            entry_type = EntryType.DIRECTORY if path.is_dir() else EntryType.FILE
            try:
                asyncio.run(
                    apply_upload(session, remote_base, relative_path, entry_type, path.resolve())
                )
            except (RemoteError, LocalFileMissingError) as e:
                click.echo(f"  ✗ {relative_path}: {e}", err=True)
                failed += 1

    if failed:
        sys.exit(1)


@click.command()
@config_option
@local_option
@click.option("--dir", "is_dir", is_flag=True, help="Paths are directories (removed if empty).")
@click.option("--verbose", "-v", is_flag=True, help="Show debug output.")
@click.argument("relative_paths", nargs=-1, required=True)
def delete(
    config_path: Path | None,
    local_dir: Path,
    is_dir: bool,
    verbose: bool,
    relative_paths: tuple[str, ...],
) -> None:
    """Delete remote entries given by their path relative to the local folder."""
    configure_logging(verbose)
    config = load_watch_config(config_path)
    remote_base = config.remote_root(local_dir.name)
    entry_type = EntryType.DIRECTORY if is_dir else EntryType.FILE
    failed = 0

    with connected_session(config) as session:
        for relative_path in relative_paths:
            try:
                if not asyncio.run(apply_delete(session, remote_base, relative_path, entry_type)):
                    failed += 1
            except RemoteError as e:
                click.echo(f"  ✗ {relative_path}: {e}", err=True)
                failed += 1

    if failed:
        sys.exit(1)


@click.command()
@config_option
@local_option
def check(config_path: Path | None, local_dir: Path) -> None:
    """Check the server: upload a probe file, verify, download and delete it."""
    config = load_watch_config(config_path)
    remote_base = config.remote_root(local_dir.name)
    probe_name = f"TEST-UPLOAD-{int(time.time() * 1000)}.txt"
    remote_file = remote_path_for(remote_base, probe_name)
    content = (
        f"Test upload at {datetime.now(UTC).isoformat()}\nPath: {remote_file}\n"
    ).encode()
    ok = True

    with tempfile.TemporaryDirectory() as tmp, connected_session(config) as session:
        probe = Path(tmp) / probe_name
        probe.write_bytes(content)

        click.echo(f"Working directory: {session.pwd()}")
        click.echo(f"Uploading to: {remote_file}")
        try:
            session.ensure_dir(remote_base)
            session.upload(probe, remote_file)
        except RemoteError as e:
            click.echo(f"  ✗ Upload failed: {e}", err=True)
            sys.exit(1)
        click.echo("  ✓ Uploaded")

        try:
            entries = session.list(remote_base)
        except RemoteError as e:
            click.echo(f"  ✗ Could not list {remote_base}: {e}", err=True)
            entries = []
            ok = False
        found = next((e for e in entries if e.name == probe_name), None)
        if found is None:
            click.echo("  ✗ File not found in directory listing", err=True)
            ok = False
        elif found.size != len(content):
            click.echo(
                f"  ✗ Size mismatch (local: {len(content)}, remote: {found.size})", err=True
            )
            ok = False
        else:
            click.echo(f"  ✓ Listed with {found.size} bytes")

        downloaded = Path(tmp) / f"DOWNLOADED-{probe_name}"
        try:
            session.download(remote_file, downloaded)
        except RemoteError as e:
            click.echo(f"  ✗ Could not download file back: {e}", err=True)
            ok = False
        else:
            if downloaded.read_bytes() == content:
                click.echo("  ✓ Downloaded back, content matches")
            else:
                click.echo("  ✗ Downloaded content differs", err=True)
                ok = False

        try:
            session.remove(remote_file)
            click.echo("  ✓ Probe file deleted from server")
        except RemoteError as e:
            click.echo(f"  ✗ Could not delete probe file: {e}", err=True)
            ok = False

    if not ok:
        sys.exit(1)
    click.echo("Check complete.")
