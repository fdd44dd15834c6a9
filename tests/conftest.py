"""Shared test fixtures."""

from pathlib import Path

import pytest

from passtalk.storage.preferences import PreferenceStore
from passtalk.storage.secrets import API_KEY_NAME, MemorySecretStore
from passtalk.storage.store import SQLiteCredentialStore


@pytest.fixture
def prefs(tmp_path: Path):
    """A PreferenceStore rooted in a temporary directory, installed as the singleton."""
    PreferenceStore._reset()
    p = PreferenceStore(path=tmp_path / "preferences.json")
    PreferenceStore._instance = p
    yield p
    PreferenceStore._reset()


@pytest.fixture
def secrets() -> MemorySecretStore:
    """A secret store holding a test API key."""
    return MemorySecretStore({API_KEY_NAME: "sk-test"})


@pytest.fixture
def store(tmp_path: Path) -> SQLiteCredentialStore:
    """A credential store backed by a temp database."""
    return SQLiteCredentialStore(db_path=tmp_path / "test.db", device_id="test-device")
