"""Decode the model's JSON payload into a ``ParseResult``.

Decoding is two-tier. The model is asked for strict JSON, so the payload is
first validated against the canonical shape. Compatibility-mode providers
often add prose, drop keys or change casing, so anything that is still a JSON
object is then read field by field with lenient coercion. Nothing here raises:
a payload that is not a JSON object becomes an ``unknown`` result carrying a
diagnostic follow-up question.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from passtalk.models import Intent, ParseResult, PresetTag

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("platform", "account", "password")


class _StrictPayload(BaseModel):
    """Canonical wire shape: all ten keys present, exact enum values."""

    model_config = ConfigDict(strict=True)

    intent: Intent
    platform: str | None
    account: str | None
    password: str | None
    note: str | None
    primaryTag: PresetTag | None  # noqa: N815
    secondaryTag: PresetTag | None  # noqa: N815
    missingFields: list[str]  # noqa: N815
    followUpQuestion: str | None  # noqa: N815
    queryKeyword: str | None  # noqa: N815


@dataclass(frozen=True)
class StrictResult:
    result: ParseResult


@dataclass(frozen=True)
class LenientFields:
    result: ParseResult


@dataclass(frozen=True)
class DecodeFailure:
    reason: str
    raw: str


DecodeOutcome = StrictResult | LenientFields | DecodeFailure


# -- Per-field coercion --------------------------------------------------------


def coerce_text(value: Any) -> str | None:
    """Trimmed string, or None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def coerce_intent(value: Any) -> Intent:
    """Case-insensitive intent; anything unrecognised is ``unknown``."""
    text = coerce_text(value)
    try:
        return Intent(text.lower()) if text else Intent.UNKNOWN
    except ValueError:
        return Intent.UNKNOWN


def coerce_tag(value: Any) -> PresetTag | None:
    """Case-insensitive preset tag; invalid values map to None."""
    text = coerce_text(value)
    if text is None:
        return None
    try:
        return PresetTag(text.lower())
    except ValueError:
        return None


def coerce_string_list(value: Any) -> list[str]:
    """Trimmed non-blank strings from a list; anything else is dropped."""
    if not isinstance(value, list):
        return []
    return [text for item in value if (text := coerce_text(item)) is not None]


# -- Decoding ------------------------------------------------------------------


def _fill_missing_fields(result: ParseResult) -> ParseResult:
    """Synthesize ``missing_fields`` for save/update when the model left it empty."""
    if result.missing_fields or result.intent not in (Intent.SAVE, Intent.UPDATE):
        return result
    missing = [name for name in REQUIRED_FIELDS if getattr(result, name) is None]
    return result.model_copy(update={"missing_fields": missing})


def _from_strict(payload: _StrictPayload) -> ParseResult:
    return ParseResult(
        intent=payload.intent,
        platform=coerce_text(payload.platform),
        account=coerce_text(payload.account),
        password=coerce_text(payload.password),
        note=coerce_text(payload.note),
        primary_tag=payload.primaryTag,
        secondary_tag=payload.secondaryTag,
        missing_fields=coerce_string_list(payload.missingFields),
        follow_up_question=coerce_text(payload.followUpQuestion),
        query_keyword=coerce_text(payload.queryKeyword),
    )


def _from_mapping(obj: dict[str, Any]) -> ParseResult:
    return ParseResult(
        intent=coerce_intent(obj.get("intent")),
        platform=coerce_text(obj.get("platform")),
        account=coerce_text(obj.get("account")),
        password=coerce_text(obj.get("password")),
        note=coerce_text(obj.get("note")),
        primary_tag=coerce_tag(obj.get("primaryTag")),
        secondary_tag=coerce_tag(obj.get("secondaryTag")),
        missing_fields=coerce_string_list(obj.get("missingFields")),
        follow_up_question=coerce_text(obj.get("followUpQuestion")),
        query_keyword=coerce_text(obj.get("queryKeyword")),
    )


def classify(text: str) -> DecodeOutcome:
    """Decode *text* strictly, then leniently, reporting which tier succeeded."""
    try:
        strict = _StrictPayload.model_validate_json(text)
    except ValidationError:
        pass
    else:
        return StrictResult(_fill_missing_fields(_from_strict(strict)))

    try:
        obj = json.loads(text)
    except json.JSONDecodeError as exc:
        return DecodeFailure(reason=f"无法解析为 JSON 对象（{exc.msg}）", raw=text)
    except RecursionError:
        return DecodeFailure(reason="JSON 嵌套过深", raw=text)
    if not isinstance(obj, dict):
        return DecodeFailure(reason="无法解析为 JSON 对象", raw=text)

    return LenientFields(_fill_missing_fields(_from_mapping(obj)))


def decode_parse_result(text: str) -> ParseResult:
    """Return a ``ParseResult`` for *text*; never raises."""
    match classify(text):
        case StrictResult(result=result):
            return result
        case LenientFields(result=result):
            logger.info("Model output failed strict decode; used lenient fields")
            return result
        case DecodeFailure(reason=reason, raw=raw):
            logger.warning("Undecodable model output (%d chars): %s", len(raw), reason)
            return ParseResult.degraded(f"模型输出 JSON 不符合预期：{reason}")
