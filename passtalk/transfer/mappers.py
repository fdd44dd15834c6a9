"""Stateless converters between import/export formats and entry patches."""

from __future__ import annotations

import csv
import io
import json
from typing import TYPE_CHECKING, Any

from passtalk.models import EntryPatch, PresetTag

if TYPE_CHECKING:
    from collections.abc import Sequence

    from passtalk.models import PasswordEntry

CSV_EXPORT_HEADER = [
    "platform",
    "account",
    "password",
    "note",
    "primary_tag",
    "secondary_tag",
    "created_at",
    "updated_at",
]

_CSV_COLUMNS: dict[str, tuple[str, ...]] = {
    "platform": ("platform", "name", "title"),
    "account": ("account", "username", "login"),
    "password": ("password", "pass"),
    "note": ("note", "notes"),
    "tag": ("tag", "primary_tag"),
}


class ImportFormatError(Exception):
    """The import payload could not be decoded."""


def _tag(raw: Any) -> PresetTag | None:
    if not isinstance(raw, str):
        return None
    try:
        return PresetTag(raw.strip().lower())
    except ValueError:
        return None


def _str(raw: Any) -> str:
    return raw if isinstance(raw, str) else ""


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ImportFormatError("Import file is not valid UTF-8") from exc


def _load_json(data: bytes) -> Any:
    try:
        return json.loads(_decode(data))
    except json.JSONDecodeError as exc:
        raise ImportFormatError(f"Import file is not valid JSON: {exc.msg}") from exc


# -- CSV -----------------------------------------------------------------------


def map_generic_csv(data: bytes) -> list[EntryPatch]:
    """Map a CSV export from any manager, matching common column names."""
    rows = list(csv.reader(io.StringIO(_decode(data), newline="")))
    if not rows:
        return []

    header = [name.strip().lower() for name in rows[0]]
    index = {name: i for i, name in enumerate(header)}

    def value(row: list[str], field: str) -> str:
        for key in _CSV_COLUMNS[field]:
            i = index.get(key)
            if i is not None and i < len(row):
                return row[i].strip()
        return ""

    patches = []
    for row in rows[1:]:
        fields = {name: value(row, name) for name in _CSV_COLUMNS}
        if not any(fields.values()):
            continue
        patches.append(
            EntryPatch(
                platform=fields["platform"],
                account=fields["account"],
                password=fields["password"],
                note=fields["note"],
                primary_tag=_tag(fields["tag"]) or PresetTag.OTHER,
            )
        )
    return patches


def export_csv(entries: Sequence[PasswordEntry]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_EXPORT_HEADER)
    for entry in entries:
        writer.writerow([
            entry.platform,
            entry.account,
            entry.password,
            entry.note,
            entry.primary_tag.value,
            entry.secondary_tag.value if entry.secondary_tag else "",
            entry.created_at.isoformat(),
            entry.updated_at.isoformat(),
        ])
    return buffer.getvalue().encode("utf-8")


# -- JSON ----------------------------------------------------------------------


def map_passtalk_json(data: bytes) -> list[EntryPatch]:
    """Map PassTalk's own JSON export."""
    payload = _load_json(data)
    if not isinstance(payload, list):
        raise ImportFormatError("PassTalk JSON must be a list of entries")

    patches = []
    for item in payload:
        if not isinstance(item, dict):
            raise ImportFormatError("PassTalk JSON entries must be objects")
        patches.append(
            EntryPatch(
                platform=_str(item.get("platform")),
                account=_str(item.get("account")),
                password=_str(item.get("password")),
                note=_str(item.get("note")),
                primary_tag=_tag(item.get("primaryTag")) or PresetTag.OTHER,
                secondary_tag=_tag(item.get("secondaryTag")),
            )
        )
    return patches


def map_bitwarden(data: bytes) -> list[EntryPatch]:
    """Map a Bitwarden JSON export; items without a login are skipped."""
    root = _load_json(data)
    items = root.get("items", []) if isinstance(root, dict) else []

    patches = []
    for item in items:
        login = item.get("login") if isinstance(item, dict) else None
        if not isinstance(login, dict):
            continue
        patches.append(
            EntryPatch(
                platform=_str(item.get("name")),
                account=_str(login.get("username")),
                password=_str(login.get("password")),
                note=_str(item.get("notes")),
            )
        )
    return patches


def map_one_password(data: bytes) -> list[EntryPatch]:
    """Map a 1Password JSON export (list of items with designated fields)."""
    root = _load_json(data)
    items = root if isinstance(root, list) else []

    def designated(fields: list, designation: str) -> str:
        for field in fields:
            if isinstance(field, dict) and field.get("designation") == designation:
                return _str(field.get("value"))
        return ""

    patches = []
    for item in items:
        if not isinstance(item, dict):
            continue
        fields = item.get("fields") if isinstance(item.get("fields"), list) else []
        patches.append(
            EntryPatch(
                platform=_str(item.get("title")),
                account=designated(fields, "username"),
                password=designated(fields, "password"),
                note=_str(item.get("notesPlain")),
            )
        )
    return patches


def export_passtalk_json(entries: Sequence[PasswordEntry]) -> bytes:
    payload = [
        {
            "platform": entry.platform,
            "account": entry.account,
            "password": entry.password,
            "note": entry.note,
            "primaryTag": entry.primary_tag.value,
            "secondaryTag": entry.secondary_tag.value if entry.secondary_tag else None,
        }
        for entry in entries
    ]
    return json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True).encode("utf-8")
