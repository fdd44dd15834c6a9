"""Secret storage for the provider API key.

``FileSecretStore`` keeps secrets in a JSON file readable only by the owner.
``MemorySecretStore`` holds them in process memory (tests, one-off runs).
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

API_KEY_NAME = "openai_api_key"


class SecretStoreError(Exception):
    """Reading or writing the secret store failed."""


class SecretStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemorySecretStore:
    """In-process secret store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileSecretStore:
    """Secrets persisted to a JSON file created with mode 0600."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise SecretStoreError(f"Cannot read secrets from {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise SecretStoreError(f"Secrets file {self._path} is not a JSON object")
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, values: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(values, fh)
        except OSError as exc:
            raise SecretStoreError(f"Cannot write secrets to {self._path}: {exc}") from exc

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._read()
        values[key] = value
        self._write(values)
        logger.info("Stored secret %s", key)

    def delete(self, key: str) -> None:
        values = self._read()
        if values.pop(key, None) is not None:
            self._write(values)
            logger.info("Deleted secret %s", key)
