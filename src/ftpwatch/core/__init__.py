"""Core module - Shared configuration."""

from ftpwatch.core.config import (
    DEFAULT_IGNORE_PATTERNS,
    DEFAULT_PORT,
    DEFAULT_PROTOCOL,
    DEFAULT_REMOTE_PATH,
    ConfigError,
    WatchConfig,
    load_config,
)

__all__ = [
    "DEFAULT_IGNORE_PATTERNS",
    "DEFAULT_PORT",
    "DEFAULT_PROTOCOL",
    "DEFAULT_REMOTE_PATH",
    "ConfigError",
    "WatchConfig",
    "load_config",
]
