"""Tests for the API key secret stores."""

import stat
from pathlib import Path

import pytest

from passtalk.storage.secrets import (
    API_KEY_NAME,
    FileSecretStore,
    MemorySecretStore,
    SecretStoreError,
)


class TestMemorySecretStore:
    def test_set_get_delete(self) -> None:
        store = MemorySecretStore()
        assert store.get(API_KEY_NAME) is None

        store.set(API_KEY_NAME, "sk-1")
        assert store.get(API_KEY_NAME) == "sk-1"

        store.delete(API_KEY_NAME)
        assert store.get(API_KEY_NAME) is None

    def test_initial_values_are_copied(self) -> None:
        initial = {API_KEY_NAME: "sk-1"}
        store = MemorySecretStore(initial)
        store.set(API_KEY_NAME, "sk-2")
        assert initial[API_KEY_NAME] == "sk-1"


class TestFileSecretStore:
    def test_missing_file_reads_empty(self, tmp_path: Path) -> None:
        store = FileSecretStore(tmp_path / "secrets.json")
        assert store.get(API_KEY_NAME) is None

    def test_round_trip_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "secrets.json"
        FileSecretStore(path).set(API_KEY_NAME, "sk-file")
        assert FileSecretStore(path).get(API_KEY_NAME) == "sk-file"

    def test_file_is_owner_only(self, tmp_path: Path) -> None:
        path = tmp_path / "secrets.json"
        FileSecretStore(path).set(API_KEY_NAME, "sk-file")
        mode = stat.S_IMODE(path.stat().st_mode)
        assert mode & 0o077 == 0

    def test_delete(self, tmp_path: Path) -> None:
        store = FileSecretStore(tmp_path / "secrets.json")
        store.set(API_KEY_NAME, "sk-file")
        store.set("other", "x")
        store.delete(API_KEY_NAME)
        assert store.get(API_KEY_NAME) is None
        assert store.get("other") == "x"

    def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "secrets.json"
        path.write_text("{not json")
        with pytest.raises(SecretStoreError):
            FileSecretStore(path).get(API_KEY_NAME)

    def test_non_object_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "secrets.json"
        path.write_text("[1, 2]")
        with pytest.raises(SecretStoreError):
            FileSecretStore(path).get(API_KEY_NAME)
