"""Provider configuration and endpoint normalization."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from passtalk.ai.adapter import WireMode
from passtalk.ai.prompt import DEFAULT_SYSTEM_PROMPT
from passtalk.config import DEFAULT_ENDPOINT, DEFAULT_MODEL

logger = logging.getLogger(__name__)

_KNOWN_SUFFIXES = ("/responses", "/chat/completions")
_COMPAT_PATH = "/v1/chat/completions"


def normalize_endpoint(raw: str | None) -> str:
    """Resolve a configured endpoint to a full request URL.

    URLs already ending in ``/responses`` or ``/chat/completions`` are kept.
    Bare base URLs get ``/v1/chat/completions`` appended, since most
    OpenAI-compatible gateways only implement that route. Blank or malformed
    input falls back to the default endpoint.
    """
    candidate = (raw or "").strip()
    if not candidate:
        return DEFAULT_ENDPOINT
    try:
        parts = urlsplit(candidate)
    except ValueError:
        logger.warning("Malformed endpoint %r, using default", candidate)
        return DEFAULT_ENDPOINT
    if not parts.scheme or not parts.netloc:
        logger.warning("Endpoint %r has no scheme or host, using default", candidate)
        return DEFAULT_ENDPOINT

    if parts.path.lower().endswith(_KNOWN_SUFFIXES):
        return candidate

    base_path = parts.path.strip("/")
    path = f"/{base_path}{_COMPAT_PATH}" if base_path else _COMPAT_PATH
    return urlunsplit(parts._replace(path=path))


def wire_mode_for(endpoint: str) -> WireMode:
    """Chat-completions mode iff the endpoint path ends in ``/chat/completions``."""
    path = urlsplit(endpoint).path.lower()
    if path.endswith("/chat/completions"):
        return WireMode.CHAT_COMPLETIONS
    return WireMode.RESPONSES


@dataclass(frozen=True)
class ProviderConfiguration:
    """Endpoint, model and prompt for a single request."""

    endpoint: str
    model: str
    system_prompt: str
    wire_mode: WireMode

    @classmethod
    def resolve(
        cls,
        endpoint: str | None = None,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> ProviderConfiguration:
        """Build a configuration from raw values, applying defaults to blanks."""
        url = normalize_endpoint(endpoint)
        return cls(
            endpoint=url,
            model=(model or "").strip() or DEFAULT_MODEL,
            system_prompt=(system_prompt or "").strip() or DEFAULT_SYSTEM_PROMPT,
            wire_mode=wire_mode_for(url),
        )

    @property
    def uses_chat_completions(self) -> bool:
        return self.wire_mode is WireMode.CHAT_COMPLETIONS
