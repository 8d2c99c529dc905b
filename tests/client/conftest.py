"""Shared fixtures for client tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.client.fakes import FakeRemoteSession


@pytest.fixture
def session() -> FakeRemoteSession:
    """Create a disconnected fake session."""
    return FakeRemoteSession()


@pytest.fixture
def connected(session: FakeRemoteSession) -> FakeRemoteSession:
    """Create a connected fake session."""
    session.connect()
    return session


@pytest.fixture
def local_root(tmp_path: Path) -> Path:
    """Create the watched local folder."""
    root = tmp_path / "hub-child"
    root.mkdir()
    return root
