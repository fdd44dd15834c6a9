"""User preferences: provider overrides and the local device ID."""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING

from passtalk.ai.provider import ProviderConfiguration
from passtalk.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

ENDPOINT_KEY = "openai_endpoint"
MODEL_KEY = "openai_model"
SYSTEM_PROMPT_KEY = "system_prompt"
DEVICE_ID_KEY = "device_id"


class PreferenceStore:
    """String key-value preferences persisted to a JSON file.

    Singleton accessed via ``PreferenceStore.get()``.  Pass an explicit *path*
    for test isolation (e.g. ``tmp_path / "preferences.json"``).
    """

    _instance: PreferenceStore | None = None

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or settings.preferences_path

    @classmethod
    def get(cls) -> PreferenceStore:
        """Return the shared PreferenceStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Raw access ------------------------------------------------------------

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Unreadable preferences file %s, ignoring it", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, values: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(values, ensure_ascii=False, indent=2), encoding="utf-8")

    def get_value(self, key: str) -> str | None:
        return self._load().get(key)

    def set_value(self, key: str, value: str) -> None:
        values = self._load()
        values[key] = value
        self._save(values)

    def delete_value(self, key: str) -> None:
        values = self._load()
        if values.pop(key, None) is not None:
            self._save(values)

    # -- Provider settings -----------------------------------------------------

    def save_provider(self, endpoint: str | None = None, model: str | None = None) -> None:
        """Persist endpoint/model overrides; ``None`` leaves a value untouched."""
        values = self._load()
        if endpoint is not None:
            values[ENDPOINT_KEY] = endpoint.strip()
        if model is not None:
            values[MODEL_KEY] = model.strip()
        self._save(values)
        logger.info("Saved provider settings (endpoint=%s, model=%s)", endpoint, model)

    def load_configuration(self) -> ProviderConfiguration:
        """Snapshot the current provider configuration.

        Saved values win; blanks fall back to ``Settings`` and then to the
        built-in defaults.
        """
        values = self._load()
        return ProviderConfiguration.resolve(
            endpoint=values.get(ENDPOINT_KEY, "").strip() or settings.openai_endpoint,
            model=values.get(MODEL_KEY, "").strip() or settings.openai_model,
            system_prompt=values.get(SYSTEM_PROMPT_KEY, "").strip() or settings.system_prompt,
        )

    # -- Device ID -------------------------------------------------------------

    def device_id(self) -> str:
        """Return this device's ID, generating and persisting it on first use."""
        existing = self.get_value(DEVICE_ID_KEY)
        if existing:
            return existing
        value = uuid.uuid4().hex
        self.set_value(DEVICE_ID_KEY, value)
        return value
