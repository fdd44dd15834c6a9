"""Pending-entry drafts accumulated across chat turns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from passtalk.models import EntryPatch, Intent, PresetTag

if TYPE_CHECKING:
    from passtalk.models import ParseResult

FIELD_LABELS: dict[str, str] = {
    "platform": "平台",
    "account": "账号",
    "password": "密码",
}
REQUIRED_FIELDS = tuple(FIELD_LABELS)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


@dataclass(frozen=True)
class PendingEntryDraft:
    """A partial credential entry that has not been persisted yet."""

    platform: str | None = None
    account: str | None = None
    password: str | None = None
    note: str = ""
    primary_tag: PresetTag = PresetTag.OTHER
    secondary_tag: PresetTag | None = None
    intent: Intent = Intent.SAVE

    def missing_fields(self) -> list[str]:
        """Absent required fields, always in platform, account, password order."""
        return [name for name in REQUIRED_FIELDS if _clean(getattr(self, name)) is None]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()

    def try_finalize(self) -> EntryPatch | None:
        """Return the patch to persist, or None while fields are missing."""
        if not self.is_complete:
            return None
        return EntryPatch(
            platform=_clean(self.platform) or "",
            account=_clean(self.account) or "",
            password=_clean(self.password) or "",
            note=self.note.strip(),
            primary_tag=self.primary_tag or PresetTag.OTHER,
            secondary_tag=self.secondary_tag,
        )

    def follow_up_question(self) -> str:
        return build_missing_question(self.missing_fields())


def build_missing_question(missing: list[str]) -> str:
    """Fixed-template question naming the still-missing fields."""
    labels = [FIELD_LABELS[name] for name in REQUIRED_FIELDS if name in missing]
    if not labels:
        return "信息已经齐全。"
    return f"我还需要{'、'.join(labels)}，请补充一下。"


def merge(parse: ParseResult, existing: PendingEntryDraft | None = None) -> PendingEntryDraft:
    """Lay newly parsed fields over *existing*; blanks never overwrite values."""
    base = existing or PendingEntryDraft()

    # An update stays an update for the rest of the arc.
    intent = Intent.UPDATE if Intent.UPDATE in (parse.intent, base.intent) else Intent.SAVE

    return PendingEntryDraft(
        platform=_clean(parse.platform) or base.platform,
        account=_clean(parse.account) or base.account,
        password=_clean(parse.password) or base.password,
        note=_clean(parse.note) or base.note,
        primary_tag=parse.primary_tag or base.primary_tag,
        secondary_tag=parse.secondary_tag or base.secondary_tag,
        intent=intent,
    )
