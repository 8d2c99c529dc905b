"""Configuration utilities for the ftpwatch CLI.

This module provides shared helpers used across CLI commands: locating and
loading the config file, resolving the watched folder, opening a session
and routing log records to the terminal.
"""

from __future__ import annotations

import contextlib
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from ftpwatch.client.remote import RemoteAuthError, RemoteError, create_session
from ftpwatch.core.config import ConfigError, WatchConfig, load_config

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ftpwatch.client.remote import RemoteSession

CONFIG_ENV = "FTPWATCH_CONFIG"
DEFAULT_LOCAL_DIR = "hub-child"


def get_config_file(path: Path | None = None) -> Path:
    """Get the path to the config file.

    Args:
        path: Explicit path from the command line, if any.

    Returns:
        The explicit path, $FTPWATCH_CONFIG, or .vscode/sftp.json in the
        current directory.
    """
    if path is not None:
        return path
    if os.environ.get(CONFIG_ENV):
        return Path(os.environ[CONFIG_ENV]).expanduser()
    return Path.cwd() / ".vscode" / "sftp.json"


def load_watch_config(path: Path | None = None) -> WatchConfig:
    """Load the config or exit with status 1."""
    config_file = get_config_file(path)
    try:
        return load_config(config_file)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo(
            "Create .vscode/sftp.json with host, username, password and remotePath.",
            err=True,
        )
        sys.exit(1)


def get_local_root(local_dir: Path) -> Path:
    """Resolve the watched folder or exit with status 1."""
    local_root = local_dir.expanduser().resolve()
    if not local_root.is_dir():
        click.echo(f"Error: Local folder not found: {local_root}", err=True)
        sys.exit(1)
    return local_root


@contextlib.contextmanager
def connected_session(config: WatchConfig) -> Iterator[RemoteSession]:
    """Open a session for a one-shot command, exiting with 1 on failure."""
    session = create_session(config)
    click.echo(f"Connecting to {config.describe()}...")
    try:
        session.connect()
    except RemoteAuthError as e:
        click.echo(f"Error: Authentication failed: {e}", err=True)
        click.echo("Check the username and password in the config file.", err=True)
        sys.exit(1)
    except RemoteError as e:
        click.echo(f"Error: Could not connect: {e}", err=True)
        sys.exit(1)

    try:
        yield session
    finally:
        session.close()
        click.echo("Disconnected.")


class ClickLogHandler(logging.Handler):
    """Logging handler writing through click.echo.

    Warnings and errors go to stderr, everything else to stdout.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            click.echo(msg, err=record.levelno >= logging.WARNING)
        except Exception:
            self.handleError(record)


def configure_logging(verbose: bool = False) -> None:
    """Route ftpwatch log records to the terminal.

    Args:
        verbose: Show debug records and logger names.
    """
    handler = ClickLogHandler()
    if verbose:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(message)s", "%H:%M:%S"))

    ftpwatch_logger = logging.getLogger("ftpwatch")
    for existing in ftpwatch_logger.handlers[:]:
        ftpwatch_logger.removeHandler(existing)
    ftpwatch_logger.addHandler(handler)
    ftpwatch_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    ftpwatch_logger.propagate = False
