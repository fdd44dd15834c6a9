"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4.1-mini"


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """PassTalk configuration. All values come from environment variables.

    Endpoint, model and system prompt are only the fallbacks; values saved
    through the preference store take precedence at request time.
    """

    # AI provider
    openai_endpoint: str = Field(default=DEFAULT_ENDPOINT)
    openai_model: str = Field(default=DEFAULT_MODEL)
    system_prompt: str = Field(default="")
    request_timeout_seconds: float = Field(default=30.0)

    # Conversation
    history_window: int = Field(default=12)

    # Local files
    database_path: Path = Field(default=Path("data/passtalk.db"))
    secrets_path: Path = Field(default=Path("data/secrets.json"))
    preferences_path: Path = Field(default=Path("data/preferences.json"))

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


settings = Settings()
