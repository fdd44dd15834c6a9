"""Extract the model's JSON payload from a provider response body.

Two response shapes are supported:

- **Chat completions** (``/chat/completions``): the payload is the free text
  in ``choices[0].message.content``, possibly wrapped in a markdown fence or
  surrounded by prose.
- **Responses** (``/responses``): the payload is the first ``output_text``
  content item, produced under a JSON-schema constraint.

Extraction is a pure transform and never raises; ``None`` means no text was
found and lets the caller degrade gracefully.
"""

from __future__ import annotations

import json
import logging
import re
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_LEADING_FENCE_RE = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_TRAILING_FENCE_RE = re.compile(r"\n?```\s*$")


class WireMode(StrEnum):
    """Which request/response shape the configured endpoint speaks."""

    CHAT_COMPLETIONS = "chat_completions"
    RESPONSES = "responses"


def strip_code_fence(text: str) -> str:
    """Remove a leading ```` ```json ```` / ```` ``` ```` fence and its closing fence."""
    work = text.strip()
    if not work.startswith("```"):
        return work
    work = _LEADING_FENCE_RE.sub("", work, count=1)
    work = _TRAILING_FENCE_RE.sub("", work, count=1)
    return work.strip()


def extract_json_object(text: str) -> str:
    """Slice from the first ``{`` to the last ``}``, dropping surrounding prose.

    Returns the fence-stripped text unchanged when no object braces exist.
    """
    work = strip_code_fence(text)
    start = work.find("{")
    end = work.rfind("}")
    if start == -1 or end == -1 or end < start:
        return work
    return work[start : end + 1]


def _chat_completions_text(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None

    content = message.get("content")
    if isinstance(content, str):
        return extract_json_object(content)
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if not isinstance(text, str):
                text = part.get("content")
            if isinstance(text, str):
                parts.append(text)
        return extract_json_object("\n".join(parts))
    return None


def _responses_text(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    output = payload.get("output")
    if not isinstance(output, list):
        return None

    for item in output:
        if not isinstance(item, dict) or not isinstance(item.get("content"), list):
            continue
        for content in item["content"]:
            if isinstance(content, dict) and content.get("type") == "output_text":
                text = content.get("text")
                return text if isinstance(text, str) else None
    return None


_EXTRACTORS: dict[WireMode, Callable[[Any], str | None]] = {
    WireMode.CHAT_COMPLETIONS: _chat_completions_text,
    WireMode.RESPONSES: _responses_text,
}


def extract_output_text(body: str | bytes, mode: WireMode) -> str | None:
    """Return the JSON text carried by a response *body*, or ``None``."""
    try:
        payload = json.loads(body)
    except (ValueError, TypeError, RecursionError):
        logger.warning("Provider response body is not JSON (%d bytes)", len(body))
        return None

    text = _EXTRACTORS[mode](payload)
    if text is None:
        logger.warning("No output text found in %s response", mode.value)
    return text
