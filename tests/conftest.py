"""Pytest configuration for sqltutor tests."""

import pytest

from sqltutor.transcript import TranscriptStore


@pytest.fixture
def store(tmp_path):
    """Transcript store writing into a temporary history directory."""
    return TranscriptStore(tmp_path / "conversations")


@pytest.fixture
def session_id(store):
    """A fresh session named "Demo" bound to the default database."""
    return store.create("Demo")
