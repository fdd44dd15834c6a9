"""Data models for chat messages, parse results and credential entries."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class PresetTag(StrEnum):
    """The fixed set of category tags an entry can carry."""

    SOCIAL = "social"
    SHOPPING = "shopping"
    FINANCE = "finance"
    WORK = "work"
    ENTERTAINMENT = "entertainment"
    EMAIL = "email"
    DEVTOOLS = "devtools"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return _TAG_DISPLAY_NAMES[self]


_TAG_DISPLAY_NAMES: dict[PresetTag, str] = {
    PresetTag.SOCIAL: "社交",
    PresetTag.SHOPPING: "购物",
    PresetTag.FINANCE: "金融",
    PresetTag.WORK: "工作",
    PresetTag.ENTERTAINMENT: "娱乐",
    PresetTag.EMAIL: "邮箱",
    PresetTag.DEVTOOLS: "开发工具",
    PresetTag.OTHER: "其他",
}


class Intent(StrEnum):
    SAVE = "save"
    QUERY = "query"
    UPDATE = "update"
    UNKNOWN = "unknown"


class ChatRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class PayloadType(StrEnum):
    TEXT = "text"
    CARD = "card"
    FOLLOW_UP = "followUp"


class SyncState(StrEnum):
    LOCAL_ONLY = "local_only"
    PENDING_UPLOAD = "pending_upload"
    SYNCED = "synced"
    CONFLICT = "conflict"


class ChatMessage(BaseModel):
    """A single conversation turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str
    payload_type: PayloadType = PayloadType.TEXT
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ParseResult(BaseModel):
    """Structured fields extracted from one user utterance by the model.

    Attribute names are snake_case; the wire payload uses the camelCase
    aliases (``primaryTag``, ``missingFields`` ...).
    """

    model_config = ConfigDict(populate_by_name=True)

    intent: Intent = Intent.UNKNOWN
    platform: str | None = None
    account: str | None = None
    password: str | None = None
    note: str | None = None
    primary_tag: PresetTag | None = Field(default=None, alias="primaryTag")
    secondary_tag: PresetTag | None = Field(default=None, alias="secondaryTag")
    missing_fields: list[str] = Field(default_factory=list, alias="missingFields")
    follow_up_question: str | None = Field(default=None, alias="followUpQuestion")
    query_keyword: str | None = Field(default=None, alias="queryKeyword")

    @classmethod
    def degraded(cls, question: str) -> ParseResult:
        """An ``unknown`` result carrying a diagnostic follow-up question."""
        return cls(intent=Intent.UNKNOWN, follow_up_question=question)


class EntryPatch(BaseModel):
    """The create/update shape handed to the credential store."""

    platform: str
    account: str
    password: str
    note: str = ""
    primary_tag: PresetTag = PresetTag.OTHER
    secondary_tag: PresetTag | None = None


class PasswordEntry(BaseModel):
    """A stored credential row, including sync bookkeeping."""

    id: int | None = None
    record_uuid: str
    platform: str
    account: str
    password: str
    note: str = ""
    primary_tag: PresetTag = PresetTag.OTHER
    secondary_tag: PresetTag | None = None
    created_at: datetime
    updated_at: datetime
    sync_version: int = 1
    is_deleted: bool = False
    deleted_at: datetime | None = None
    updated_by_device: str = ""
    sync_state: SyncState = SyncState.LOCAL_ONLY
