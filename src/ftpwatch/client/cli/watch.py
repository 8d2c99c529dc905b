"""Watch command for the ftpwatch CLI.

Commands:
- watch: Mirror a local folder to the remote server continuously
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from pathlib import Path

import click

from ftpwatch.client.cli.config import (
    DEFAULT_LOCAL_DIR,
    configure_logging,
    get_local_root,
    load_watch_config,
)
from ftpwatch.client.remote import create_session
from ftpwatch.client.sync import (
    FatalAuthError,
    FatalConnectionError,
    FileWatcher,
    IgnorePatterns,
    SyncEngine,
)
from ftpwatch.core.config import WatchConfig


async def watch_and_sync(config: WatchConfig, local_root: Path, remote_base: str) -> None:
    """Run the watcher and sync engine until SIGINT/SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows; Ctrl+C then surfaces as KeyboardInterrupt
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    engine = SyncEngine(create_session(config), local_root, remote_base)
    watcher = FileWatcher(local_root, IgnorePatterns(config.ignore))
    await engine.run(watcher.events(stop), stop)


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: $FTPWATCH_CONFIG or .vscode/sftp.json).",
)
@click.option(
    "--local",
    "local_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_LOCAL_DIR,
    show_default=True,
    help="Local folder to watch.",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output.")
def watch(config_path: Path | None, local_dir: Path, verbose: bool) -> None:
    """Watch a local folder and mirror every change to the server.

    New and modified files are uploaded once they stop changing, deleted
    files and folders are removed remotely. Only changes made while the
    watcher runs are mirrored. Press Ctrl+C to stop.
    """
    configure_logging(verbose)
    config = load_watch_config(config_path)
    local_root = get_local_root(local_dir)
    remote_base = config.remote_root(local_root.name)

    click.echo("Starting FTP watcher...")
    click.echo(f"Host: {config.host}:{config.port}")
    click.echo(f"Username: {config.username}")
    click.echo(f"Remote: {remote_base}/")
    click.echo(f"Watching: {local_root}\n")

    try:
        asyncio.run(watch_and_sync(config, local_root, remote_base))
    except FatalAuthError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Check the username and password in the config file.", err=True)
        sys.exit(1)
    except FatalConnectionError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Please check:", err=True)
        click.echo("  - the server is reachable", err=True)
        click.echo("  - host and port are correct", err=True)
        click.echo("  - firewall/network settings allow the connection", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        pass

    click.echo("Stopped.")
