"""Ignore patterns for the file watcher.

This module provides:
- IgnorePatterns: Glob matching of paths relative to the watched root

Matching rules:
- Patterns are matched segment by segment with fnmatch, so "*" and "?"
  never cross a "/"
- A "**" segment matches any number of segments, including none
  ("node_modules/**" matches "node_modules" and everything below it)
- A pattern without "/" also matches the basename at any depth
  ("*.log" matches "logs/debug.log")
- A trailing "/" matches the directory itself and everything below it
"""

from __future__ import annotations

import fnmatch

from ftpwatch.core.config import DEFAULT_IGNORE_PATTERNS


def _match_segments(pattern: list[str], parts: list[str]) -> bool:
    if not pattern:
        return not parts
    head, rest = pattern[0], pattern[1:]
    if head == "**":
        return any(_match_segments(rest, parts[i:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatch.fnmatchcase(parts[0], head) and _match_segments(rest, parts[1:])


def glob_match(pattern: str, rel_path: str) -> bool:
    """Check if a relative POSIX path matches a glob pattern.

    Args:
        pattern: Glob pattern ("**" crosses separators, "*" does not).
        rel_path: Path relative to the watched root, forward slashes.

    Returns:
        True if the whole path matches.
    """
    pattern_parts = [p for p in pattern.strip("/").split("/") if p]
    path_parts = [p for p in rel_path.strip("/").split("/") if p]
    return _match_segments(pattern_parts, path_parts)


class IgnorePatterns:
    """Handles ignore pattern matching for watched paths."""

    def __init__(self, patterns: list[str] | None = None) -> None:
        """Initialize with patterns.

        Args:
            patterns: Glob patterns; the defaults are used when None.
        """
        if patterns is None:
            patterns = DEFAULT_IGNORE_PATTERNS
        self._patterns = list(patterns)

    @property
    def patterns(self) -> list[str]:
        """Get the active patterns."""
        return list(self._patterns)

    def add_pattern(self, pattern: str) -> None:
        """Add an ignore pattern."""
        self._patterns.append(pattern)

    def matches(self, rel_path: str, is_dir: bool = False) -> bool:
        """Check if a relative path is ignored.

        Args:
            rel_path: Path relative to the watched root, forward slashes.
            is_dir: Whether the path is a directory.

        Returns:
            True if the path should be ignored.
        """
        if not rel_path or rel_path == ".":
            return False
        name = rel_path.rstrip("/").rsplit("/", 1)[-1]

        for pattern in self._patterns:
            if pattern.endswith("/") and not pattern.endswith("**/"):
                pattern = pattern.rstrip("/")
                if glob_match(pattern + "/*/**", rel_path):
                    return True
                if is_dir and glob_match(pattern, rel_path):
                    return True
                continue
            if glob_match(pattern, rel_path):
                return True
            if "/" not in pattern and fnmatch.fnmatchcase(name, pattern):
                return True

        return False
