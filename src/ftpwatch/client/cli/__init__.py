"""Command-line interface for ftpwatch.

This module provides the main CLI entry point and assembles all commands.

Commands:
- watch: Mirror a local folder to the server continuously
- ls: List a remote directory
- upload: Upload local files or folders once
- delete: Delete remote entries once
- check: Probe the server with an upload/download round trip
"""

from __future__ import annotations

import click

from ftpwatch.client.cli.config import (
    configure_logging,
    get_config_file,
    get_local_root,
    load_watch_config,
)
from ftpwatch.client.cli.remote import check, delete, list_remote, upload
from ftpwatch.client.cli.watch import watch


@click.group()
@click.version_option(package_name="ftpwatch")
def cli() -> None:
    """ftpwatch - Mirror a local folder to an FTP server as it changes."""


cli.add_command(watch)

# One-shot commands
cli.add_command(list_remote)
cli.add_command(upload)
cli.add_command(delete)
cli.add_command(check)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "configure_logging",
    "get_config_file",
    "get_local_root",
    "load_watch_config",
]
