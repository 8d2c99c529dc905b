"""Shared fixtures for all tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest


@pytest.fixture(autouse=True)
def reset_ftpwatch_logger() -> Iterator[None]:
    """Undo CLI logging setup so records reach caplog in later tests."""
    yield
    logger = logging.getLogger("ftpwatch")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
