"""Async client for OpenAI-compatible entry-parsing endpoints.

Builds the request for the configured wire mode, sends it with httpx, maps
transport and HTTP failures to typed errors, and hands the response body to
the adapter and decoder. Response-format problems never raise; they degrade
to an ``unknown`` parse result.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from passtalk.ai.adapter import extract_output_text
from passtalk.ai.decoder import decode_parse_result
from passtalk.ai.prompt import (
    CONNECTION_TEST_PROMPT,
    CONNECTION_TEST_USER_TEXT,
    OUTPUT_SCHEMA,
    SCHEMA_NAME,
)
from passtalk.config import settings
from passtalk.models import ChatRole, ParseResult
from passtalk.storage.secrets import API_KEY_NAME, SecretStoreError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from passtalk.ai.provider import ProviderConfiguration
    from passtalk.models import ChatMessage
    from passtalk.storage.preferences import PreferenceStore
    from passtalk.storage.secrets import SecretStore

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base class for failures talking to the AI provider."""

    user_message = "请求失败，请稍后重试。"


class MissingAPIKeyError(ProviderError):
    """No API key has been saved."""

    user_message = "请先在设置中填写并保存 API Key。"


class ProviderNetworkError(ProviderError):
    """No HTTP response was obtained (connection failure, timeout ...)."""

    user_message = "网络请求失败，请稍后重试。"


class ProviderHTTPError(ProviderError):
    """The provider answered with a non-2xx status."""

    def __init__(self, status: int, detail: str) -> None:
        super().__init__(f"HTTP {status}: {detail}")
        self.status = status
        self.detail = detail

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return f"API 请求失败（HTTP {self.status}）：{self.detail}"


def http_error_detail(response: httpx.Response) -> str:
    """Best-effort provider error text: ``error.message``, raw body, or ``HTTP <code>``."""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    text = response.text.strip()
    return text or f"HTTP {response.status_code}"


def build_input_messages(
    history: Sequence[ChatMessage],
    latest_user_text: str,
    system_prompt: str,
    window: int = 12,
) -> list[dict[str, str]]:
    """System prompt, then the trailing *window* history turns.

    When there is no history, the latest user text stands in for it.
    """
    messages = [{"role": "system", "content": system_prompt}]
    recent = list(history)[-window:] if window > 0 else []
    if not recent:
        messages.append({"role": "user", "content": latest_user_text})
        return messages

    for message in recent:
        role = "assistant" if message.role == ChatRole.ASSISTANT else "user"
        messages.append({"role": role, "content": message.content})
    return messages


def build_request_body(
    config: ProviderConfiguration,
    messages: list[dict[str, str]],
    *,
    structured: bool = True,
) -> dict[str, Any]:
    """Request body for the configured wire mode.

    *structured* asks for the JSON parse result; ``False`` asks for plain
    text (used by the connection test).
    """
    if config.uses_chat_completions:
        body: dict[str, Any] = {
            "model": config.model,
            "messages": messages,
            "temperature": 0,
        }
        if structured:
            body["response_format"] = {"type": "json_object"}
        return body

    if structured:
        text_format: dict[str, Any] = {
            "type": "json_schema",
            "name": SCHEMA_NAME,
            "schema": OUTPUT_SCHEMA,
            "strict": True,
        }
    else:
        text_format = {"type": "text"}
    return {"model": config.model, "input": messages, "text": {"format": text_format}}


class AIProviderClient:
    """Parses chat turns into ``ParseResult`` via the configured provider."""

    def __init__(
        self,
        secrets: SecretStore,
        preferences: PreferenceStore,
        *,
        timeout: float | None = None,
        history_window: int | None = None,
    ) -> None:
        self._secrets = secrets
        self._preferences = preferences
        self._timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._history_window = (
            history_window if history_window is not None else settings.history_window
        )

    def _api_key(self) -> str:
        try:
            key = self._secrets.get(API_KEY_NAME)
        except SecretStoreError as exc:
            logger.warning("Could not read API key: %s", exc)
            raise MissingAPIKeyError(str(exc)) from exc
        if not key or not key.strip():
            raise MissingAPIKeyError("API key is not configured")
        return key.strip()

    async def _post(
        self, config: ProviderConfiguration, api_key: str, body: dict[str, Any]
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(config.endpoint, headers=headers, json=body)
        except httpx.TimeoutException as exc:
            logger.warning("Request to %s timed out", config.endpoint)
            raise ProviderNetworkError(f"timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Request to %s failed: %s", config.endpoint, exc)
            raise ProviderNetworkError(str(exc)) from exc

        if not resp.is_success:
            detail = http_error_detail(resp)
            logger.warning("Provider returned HTTP %d: %s", resp.status_code, detail[:200])
            raise ProviderHTTPError(resp.status_code, detail)
        return resp

    async def parse(
        self,
        text: str,
        history: Sequence[ChatMessage],
        config: ProviderConfiguration | None = None,
    ) -> ParseResult:
        """Classify *text* (with trailing *history*) into a ``ParseResult``.

        Raises:
            MissingAPIKeyError: No API key is saved.
            ProviderNetworkError: No HTTP response was obtained.
            ProviderHTTPError: The provider returned a non-2xx status.
        """
        api_key = self._api_key()
        config = config or self._preferences.load_configuration()

        messages = build_input_messages(
            history, text, config.system_prompt, window=self._history_window
        )
        body = build_request_body(config, messages)
        logger.info(
            "Parsing message via %s (%s, model=%s, %d turns)",
            config.endpoint,
            config.wire_mode.value,
            config.model,
            len(messages) - 1,
        )

        resp = await self._post(config, api_key, body)
        output = extract_output_text(resp.content, config.wire_mode)
        if output is None:
            return ParseResult.degraded("模型返回格式无法解析。请换个说法再试一次。")
        return decode_parse_result(output)

    async def test_connection(
        self, endpoint: str | None = None, model: str | None = None
    ) -> str:
        """Save the given provider settings, then verify them with a tiny request.

        Returns a human-readable confirmation naming the resolved endpoint
        and model.
        """
        self._preferences.save_provider(endpoint=endpoint, model=model)
        api_key = self._api_key()
        config = self._preferences.load_configuration()

        messages = [
            {"role": "system", "content": CONNECTION_TEST_PROMPT},
            {"role": "user", "content": CONNECTION_TEST_USER_TEXT},
        ]
        await self._post(config, api_key, build_request_body(config, messages, structured=False))
        logger.info("Connection test passed for %s (%s)", config.endpoint, config.model)
        return f"连接成功\nEndpoint: {config.endpoint}\nModel: {config.model}"
