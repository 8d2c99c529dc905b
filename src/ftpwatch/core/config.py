"""Connection configuration for ftpwatch.

This module defines the configuration loaded from the project's
``.vscode/sftp.json`` file (the same file used by editor SFTP extensions),
shared by the watcher and the one-shot CLI commands.
"""

from __future__ import annotations

import json
import logging
import os
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_PORT = 21
DEFAULT_PROTOCOL = "ftp"
DEFAULT_REMOTE_PATH = "/public_html/razvoj/wp-content/themes/"

DEFAULT_IGNORE_PATTERNS = [
    "node_modules/**",
    ".git/**",
    ".DS_Store",
    "*.log",
    ".vscode/**",
]

SUPPORTED_PROTOCOLS = ("ftp", "ftps", "sftp")

# Environment overrides for credentials kept out of the config file
PASSWORD_ENV = "FTPWATCH_PASSWORD"
USERNAME_ENV = "FTPWATCH_USERNAME"


class ConfigError(Exception):
    """Configuration is missing or invalid."""


@dataclass
class WatchConfig:
    """Configuration for connecting to the remote file server.

    Attributes:
        host: Remote server hostname.
        username: Login name.
        password: Login password.
        port: Server port (21 for FTP).
        protocol: Transfer protocol ("ftp", "ftps" or "sftp").
        remote_path: Remote base directory, always ending with "/".
        ignore: Ignore patterns relative to the watched folder.
        timeout: Socket timeout in seconds.
    """

    host: str
    username: str
    password: str
    port: int = DEFAULT_PORT
    protocol: str = DEFAULT_PROTOCOL
    remote_path: str = DEFAULT_REMOTE_PATH
    ignore: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    timeout: float = 30.0

    def __post_init__(self) -> None:
        """Normalize protocol and remote path."""
        self.protocol = (self.protocol or DEFAULT_PROTOCOL).lower()
        self.remote_path = self.remote_path or DEFAULT_REMOTE_PATH
        if not self.remote_path.endswith("/"):
            self.remote_path += "/"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WatchConfig:
        """Build a config from the parsed sftp.json mapping.

        Credentials are stripped of surrounding whitespace and may be
        overridden by the FTPWATCH_USERNAME / FTPWATCH_PASSWORD environment
        variables.

        Raises:
            ConfigError: If the host, username or password is missing.
        """
        host = str(data.get("host") or "").strip()
        username = str(os.environ.get(USERNAME_ENV) or data.get("username") or "").strip()
        password = str(os.environ.get(PASSWORD_ENV) or data.get("password") or "").strip()

        if not host:
            raise ConfigError("FTP host must be configured")
        if not username:
            raise ConfigError("FTP username must be configured")
        if not password:
            raise ConfigError(
                f"FTP password must be configured (add \"password\" to the config "
                f"file or set {PASSWORD_ENV})"
            )

        try:
            port = int(data.get("port") or DEFAULT_PORT)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid port: {data.get('port')!r}") from e

        patterns = data.get("ignore")
        if patterns:
            ignore = [_strip_leading_globstar(str(p)) for p in patterns]
        else:
            ignore = list(DEFAULT_IGNORE_PATTERNS)

        return cls(
            host=host,
            username=username,
            password=password,
            port=port,
            protocol=str(data.get("protocol") or DEFAULT_PROTOCOL),
            remote_path=str(data.get("remotePath") or DEFAULT_REMOTE_PATH),
            ignore=ignore,
        )

    @property
    def is_ftp(self) -> bool:
        """Check if the plain FTP protocol is configured."""
        return self.protocol == "ftp"

    @property
    def is_secure(self) -> bool:
        """Check if FTP over TLS is requested."""
        return self.protocol == "ftps"

    def remote_root(self, local_name: str) -> str:
        """Get the remote directory mirrored by a local folder.

        The local folder is mirrored into a directory of the same name
        under the configured remote path.

        Args:
            local_name: Name of the watched local folder (e.g. "hub-child").

        Returns:
            Remote POSIX path without a trailing slash.
        """
        return posixpath.join(self.remote_path, local_name.strip("/"))

    def describe(self) -> str:
        """Get a one-line description safe for logs (no password)."""
        return f"{self.protocol}://{self.username}@{self.host}:{self.port}"


def _strip_leading_globstar(pattern: str) -> str:
    """Remove a leading "**/" so patterns are relative to the watched root."""
    while pattern.startswith("**/"):
        pattern = pattern[3:]
    return pattern


def load_config(path: Path) -> WatchConfig:
    """Load configuration from a JSON file.

    Args:
        path: Path to the config file (usually .vscode/sftp.json).

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file is missing, unreadable or incomplete.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a JSON object: {path}")

    config = WatchConfig.from_dict(data)
    if not config.is_ftp:
        logger.warning("Protocol is set to %r but the watcher expects FTP", config.protocol)
        if config.protocol not in SUPPORTED_PROTOCOLS:
            logger.warning("Unknown protocol %r, falling back to plain FTP", config.protocol)
    return config
