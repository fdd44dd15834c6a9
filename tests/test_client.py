"""Tests for the AI provider client."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from passtalk.ai.client import (
    AIProviderClient,
    MissingAPIKeyError,
    ProviderHTTPError,
    ProviderNetworkError,
    build_input_messages,
    build_request_body,
    http_error_detail,
)
from passtalk.ai.prompt import DEFAULT_SYSTEM_PROMPT, OUTPUT_SCHEMA, SCHEMA_NAME
from passtalk.ai.provider import ProviderConfiguration
from passtalk.models import ChatMessage, ChatRole, Intent, PresetTag
from passtalk.storage.secrets import MemorySecretStore

CHAT_URL = "https://gateway.example.com/v1/chat/completions"
RESPONSES_URL = "https://api.openai.com/v1/responses"

SAVE_PAYLOAD = {
    "intent": "save",
    "platform": "GitHub",
    "account": "alex@x.com",
    "password": "Gh!2024",
    "note": None,
    "primaryTag": "devtools",
    "secondaryTag": None,
    "missingFields": [],
    "followUpQuestion": None,
    "queryKeyword": None,
}

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _mock_httpx_client(mock_client_cls: MagicMock, response: httpx.Response) -> AsyncMock:
    """Wire up an AsyncClient context-manager mock whose post returns *response*."""
    mock_client = AsyncMock()
    mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


def _response(status_code: int = 200, url: str = CHAT_URL, **kwargs) -> httpx.Response:
    return httpx.Response(status_code=status_code, request=httpx.Request("POST", url), **kwargs)


def _chat_response(content) -> httpx.Response:
    return _response(json={"choices": [{"message": {"role": "assistant", "content": content}}]})


@pytest.fixture
def client(secrets, prefs) -> AIProviderClient:
    prefs.save_provider(endpoint=CHAT_URL, model="gpt-test")
    return AIProviderClient(secrets, prefs, timeout=5, history_window=12)


def _history(n: int) -> list[ChatMessage]:
    return [
        ChatMessage(role=ChatRole.USER if i % 2 == 0 else ChatRole.ASSISTANT, content=f"m{i}")
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


class TestBuildInputMessages:
    def test_empty_history_uses_latest_text(self):
        messages = build_input_messages([], "hello", "SYS")
        assert messages == [
            {"role": "system", "content": "SYS"},
            {"role": "user", "content": "hello"},
        ]

    def test_history_is_bounded_to_window(self):
        messages = build_input_messages(_history(20), "ignored", "SYS", window=12)
        assert len(messages) == 13
        assert messages[1]["content"] == "m8"
        assert messages[-1]["content"] == "m19"

    def test_roles_are_mapped(self):
        messages = build_input_messages(_history(2), "x", "SYS")
        assert [m["role"] for m in messages] == ["system", "user", "assistant"]


class TestBuildRequestBody:
    def test_chat_completions_shape(self):
        config = ProviderConfiguration.resolve(endpoint=CHAT_URL, model="m")
        body = build_request_body(config, [{"role": "user", "content": "hi"}])
        assert body == {
            "model": "m",
            "messages": [{"role": "user", "content": "hi"}],
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }

    def test_responses_shape(self):
        config = ProviderConfiguration.resolve(endpoint=RESPONSES_URL, model="m")
        body = build_request_body(config, [{"role": "user", "content": "hi"}])
        assert body["input"] == [{"role": "user", "content": "hi"}]
        fmt = body["text"]["format"]
        assert fmt["type"] == "json_schema"
        assert fmt["name"] == SCHEMA_NAME
        assert fmt["schema"] is OUTPUT_SCHEMA
        assert fmt["strict"] is True
        assert "messages" not in body

    def test_plain_text_chat_has_no_response_format(self):
        config = ProviderConfiguration.resolve(endpoint=CHAT_URL, model="m")
        body = build_request_body(config, [], structured=False)
        assert "response_format" not in body

    def test_plain_text_responses_format(self):
        config = ProviderConfiguration.resolve(endpoint=RESPONSES_URL, model="m")
        body = build_request_body(config, [], structured=False)
        assert body["text"] == {"format": {"type": "text"}}


class TestHttpErrorDetail:
    def test_error_message_from_json(self):
        resp = _response(401, json={"error": {"message": "invalid key"}})
        assert http_error_detail(resp) == "invalid key"

    def test_raw_body_fallback(self):
        resp = _response(502, text="Bad Gateway")
        assert http_error_detail(resp) == "Bad Gateway"

    def test_generic_fallback(self):
        resp = _response(500, content=b"")
        assert http_error_detail(resp) == "HTTP 500"


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------


async def test_parse_chat_completions(client: AIProviderClient) -> None:
    resp = _chat_response(f"```json\n{json.dumps(SAVE_PAYLOAD)}\n```")

    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        mock_client = _mock_httpx_client(mock_cls, resp)
        result = await client.parse("记一下 GitHub alex@x.com 密码 Gh!2024", [])

    assert result.intent is Intent.SAVE
    assert result.platform == "GitHub"
    assert result.primary_tag is PresetTag.DEVTOOLS

    args, kwargs = mock_client.post.call_args
    assert args[0] == CHAT_URL
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["json"]["model"] == "gpt-test"
    assert kwargs["json"]["messages"][0] == {"role": "system", "content": DEFAULT_SYSTEM_PROMPT}
    assert kwargs["json"]["messages"][1]["content"] == "记一下 GitHub alex@x.com 密码 Gh!2024"
    mock_cls.assert_called_once_with(timeout=5)


async def test_parse_responses_mode(client: AIProviderClient, prefs) -> None:
    prefs.save_provider(endpoint=RESPONSES_URL)
    resp = _response(
        url=RESPONSES_URL,
        json={
            "output": [
                {
                    "content": [
                        {"type": "reasoning", "text": "{}"},
                        {"type": "output_text", "text": json.dumps(SAVE_PAYLOAD)},
                    ]
                }
            ]
        },
    )

    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        mock_client = _mock_httpx_client(mock_cls, resp)
        result = await client.parse("hi", _history(3))

    assert result.account == "alex@x.com"
    args, kwargs = mock_client.post.call_args
    assert args[0] == RESPONSES_URL
    assert "input" in kwargs["json"]
    assert len(kwargs["json"]["input"]) == 4


async def test_parse_explicit_config_overrides_preferences(client: AIProviderClient) -> None:
    config = ProviderConfiguration.resolve(endpoint="https://other.example.com", model="alt")
    resp = _chat_response(json.dumps(SAVE_PAYLOAD))

    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        mock_client = _mock_httpx_client(mock_cls, resp)
        await client.parse("hi", [], config=config)

    args, kwargs = mock_client.post.call_args
    assert args[0] == "https://other.example.com/v1/chat/completions"
    assert kwargs["json"]["model"] == "alt"


async def test_parse_unextractable_response_degrades(client: AIProviderClient) -> None:
    resp = _response(json={"unexpected": True})

    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, resp)
        result = await client.parse("hi", [])

    assert result.intent is Intent.UNKNOWN
    assert "无法解析" in result.follow_up_question


async def test_parse_prose_only_degrades(client: AIProviderClient) -> None:
    resp = _chat_response("Sorry, I can't help with that.")

    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, resp)
        result = await client.parse("hi", [])

    assert result.intent is Intent.UNKNOWN
    assert result.follow_up_question


async def test_parse_missing_api_key(prefs) -> None:
    client = AIProviderClient(MemorySecretStore(), prefs)
    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        with pytest.raises(MissingAPIKeyError):
            await client.parse("hi", [])
    mock_cls.assert_not_called()


async def test_parse_blank_api_key(prefs) -> None:
    client = AIProviderClient(MemorySecretStore({"openai_api_key": "   "}), prefs)
    with pytest.raises(MissingAPIKeyError):
        await client.parse("hi", [])


async def test_parse_http_error(client: AIProviderClient) -> None:
    resp = _response(401, json={"error": {"message": "invalid key"}})

    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, resp)
        with pytest.raises(ProviderHTTPError) as exc_info:
            await client.parse("hi", [])

    assert exc_info.value.status == 401
    assert exc_info.value.detail == "invalid key"
    assert "401" in exc_info.value.user_message
    assert "invalid key" in exc_info.value.user_message


async def test_parse_network_error(client: AIProviderClient) -> None:
    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        mock_client = _mock_httpx_client(mock_cls, _response())
        mock_client.post.side_effect = httpx.ConnectError("Connection refused")
        with pytest.raises(ProviderNetworkError):
            await client.parse("hi", [])


async def test_parse_timeout_is_network_error(client: AIProviderClient) -> None:
    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        mock_client = _mock_httpx_client(mock_cls, _response())
        mock_client.post.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(ProviderNetworkError):
            await client.parse("hi", [])


# ---------------------------------------------------------------------------
# test_connection
# ---------------------------------------------------------------------------


async def test_connection_saves_settings_first(client: AIProviderClient, prefs) -> None:
    resp = _chat_response("ok")

    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        mock_client = _mock_httpx_client(mock_cls, resp)
        message = await client.test_connection(
            endpoint="https://api.longcat.chat/openai", model="LongCat-Flash"
        )

    expected_url = "https://api.longcat.chat/openai/v1/chat/completions"
    assert message == f"连接成功\nEndpoint: {expected_url}\nModel: LongCat-Flash"
    assert prefs.load_configuration().model == "LongCat-Flash"

    args, kwargs = mock_client.post.call_args
    assert args[0] == expected_url
    assert kwargs["json"]["messages"] == [
        {"role": "system", "content": "回复 ok"},
        {"role": "user", "content": "hi"},
    ]
    assert "response_format" not in kwargs["json"]


async def test_connection_saves_even_without_key(prefs) -> None:
    client = AIProviderClient(MemorySecretStore(), prefs)
    with pytest.raises(MissingAPIKeyError):
        await client.test_connection(model="saved-anyway")
    assert prefs.load_configuration().model == "saved-anyway"


async def test_connection_http_error(client: AIProviderClient) -> None:
    resp = _response(404, text="Not Found")

    with patch("passtalk.ai.client.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, resp)
        with pytest.raises(ProviderHTTPError, match="404"):
            await client.test_connection()
