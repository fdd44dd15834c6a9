"""Credential storage: aiosqlite CRUD for password entries."""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import aiosqlite

from passtalk.config import settings
from passtalk.models import PasswordEntry, PresetTag, SyncState

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from passtalk.models import EntryPatch

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS password_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    record_uuid TEXT NOT NULL UNIQUE,
    platform TEXT NOT NULL,
    account TEXT NOT NULL,
    password TEXT NOT NULL,
    note TEXT NOT NULL,
    primary_tag TEXT NOT NULL,
    secondary_tag TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    sync_version INTEGER NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT,
    updated_by_device TEXT NOT NULL,
    sync_state TEXT NOT NULL
)
"""

_SELECT = """
SELECT id, record_uuid, platform, account, password, note, primary_tag,
       secondary_tag, created_at, updated_at, sync_version, is_deleted,
       deleted_at, updated_by_device, sync_state
FROM password_entries
"""


class StorageError(Exception):
    """A credential store operation failed."""


class CredentialStore(Protocol):
    async def create(self, patch: EntryPatch) -> str: ...

    async def update(self, record_uuid: str, patch: EntryPatch) -> bool: ...

    async def delete(self, record_uuid: str) -> bool: ...

    async def search(
        self, keyword: str, tag: PresetTag | None = None
    ) -> list[PasswordEntry]: ...

    async def get(self, record_uuid: str) -> PasswordEntry | None: ...


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _sync_state(raw: str | None) -> SyncState:
    try:
        return SyncState(raw)
    except ValueError:
        return SyncState.LOCAL_ONLY


def _row_to_entry(row: tuple) -> PasswordEntry:
    try:
        return PasswordEntry(
            id=row[0],
            record_uuid=row[1],
            platform=row[2],
            account=row[3],
            password=row[4],
            note=row[5],
            primary_tag=PresetTag(row[6]),
            secondary_tag=PresetTag(row[7]) if row[7] else None,
            created_at=datetime.fromisoformat(row[8]),
            updated_at=datetime.fromisoformat(row[9]),
            sync_version=row[10],
            is_deleted=bool(row[11]),
            deleted_at=datetime.fromisoformat(row[12]) if row[12] else None,
            updated_by_device=row[13],
            sync_state=_sync_state(row[14]),
        )
    except ValueError as exc:
        raise StorageError(f"Invalid password_entries row {row[1]!r}: {exc}") from exc


class SQLiteCredentialStore:
    """Persists password entries in SQLite.

    Singleton accessed via ``SQLiteCredentialStore.instance()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: SQLiteCredentialStore | None = None

    def __init__(self, db_path: Path | None = None, device_id: str | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._device_id = device_id
        self._initialised = False

    @classmethod
    def instance(cls) -> SQLiteCredentialStore:
        """Return the shared store instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    @property
    def device_id(self) -> str:
        if self._device_id is None:
            from passtalk.storage.preferences import PreferenceStore

            try:
                self._device_id = PreferenceStore.get().device_id()
            except OSError as exc:
                raise StorageError(f"Cannot record device ID: {exc}") from exc
        return self._device_id

    @asynccontextmanager
    async def _connect(self, action: str) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection, creating the schema once, and map driver errors."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            db = await aiosqlite.connect(str(self._db_path))
        except (OSError, aiosqlite.Error) as exc:
            raise StorageError(f"Cannot open database {self._db_path}: {exc}") from exc
        try:
            if not self._initialised:
                await db.execute(_CREATE_TABLE)
                await db.commit()
                self._initialised = True
            yield db
        except aiosqlite.Error as exc:
            logger.warning("Storage failure during %s: %s", action, exc)
            raise StorageError(f"Failed to {action}: {exc}") from exc
        finally:
            await db.close()

    async def _fetch(self, sql: str, params: tuple = ()) -> list[PasswordEntry]:
        async with self._connect("read entries") as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [_row_to_entry(row) for row in rows]

    # -- CRUD ------------------------------------------------------------------

    async def create(self, patch: EntryPatch) -> str:
        """Insert a new entry. Returns its record UUID."""
        now = _now()
        record_uuid = str(uuid.uuid4())
        device_id = self.device_id
        async with self._connect("create entry") as db:
            await db.execute(
                """
                INSERT INTO password_entries
                    (record_uuid, platform, account, password, note, primary_tag,
                     secondary_tag, created_at, updated_at, sync_version, is_deleted,
                     deleted_at, updated_by_device, sync_state)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, 0, NULL, ?, ?)
                """,
                (
                    record_uuid,
                    patch.platform,
                    patch.account,
                    patch.password,
                    patch.note,
                    patch.primary_tag.value,
                    patch.secondary_tag.value if patch.secondary_tag else None,
                    now,
                    now,
                    device_id,
                    SyncState.LOCAL_ONLY.value,
                ),
            )
            await db.commit()
        logger.info("Created entry %s (%s)", record_uuid, patch.platform)
        return record_uuid

    async def update(self, record_uuid: str, patch: EntryPatch) -> bool:
        """Overwrite an entry's fields. Returns True if a row was updated."""
        device_id = self.device_id
        async with self._connect("update entry") as db:
            cursor = await db.execute(
                """
                UPDATE password_entries
                SET platform = ?, account = ?, password = ?, note = ?,
                    primary_tag = ?, secondary_tag = ?, updated_at = ?,
                    sync_version = sync_version + 1, updated_by_device = ?,
                    sync_state = ?
                WHERE record_uuid = ?
                """,
                (
                    patch.platform,
                    patch.account,
                    patch.password,
                    patch.note,
                    patch.primary_tag.value,
                    patch.secondary_tag.value if patch.secondary_tag else None,
                    _now(),
                    device_id,
                    SyncState.PENDING_UPLOAD.value,
                    record_uuid,
                ),
            )
            await db.commit()
            updated = cursor.rowcount > 0
        if updated:
            logger.info("Updated entry %s", record_uuid)
        return updated

    async def delete(self, record_uuid: str) -> bool:
        """Soft-delete an entry. Returns True if a row was marked deleted."""
        now = _now()
        device_id = self.device_id
        async with self._connect("delete entry") as db:
            cursor = await db.execute(
                """
                UPDATE password_entries
                SET is_deleted = 1, deleted_at = ?, updated_at = ?,
                    sync_version = sync_version + 1, updated_by_device = ?,
                    sync_state = ?
                WHERE record_uuid = ?
                """,
                (now, now, device_id, SyncState.PENDING_UPLOAD.value, record_uuid),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted entry %s", record_uuid)
        return deleted

    async def get(self, record_uuid: str) -> PasswordEntry | None:
        """Fetch an entry by record UUID (deleted rows included), or None."""
        rows = await self._fetch(f"{_SELECT} WHERE record_uuid = ? LIMIT 1", (record_uuid,))
        return rows[0] if rows else None

    async def list_entries(self, include_deleted: bool = False) -> list[PasswordEntry]:
        """All entries, most recently updated first."""
        where = "" if include_deleted else " WHERE is_deleted = 0"
        return await self._fetch(f"{_SELECT}{where} ORDER BY updated_at DESC")

    async def search(self, keyword: str, tag: PresetTag | None = None) -> list[PasswordEntry]:
        """Fuzzy-match non-deleted entries on text fields, optionally by tag."""
        clauses = ["is_deleted = 0"]
        params: list[str] = []

        keyword = keyword.strip()
        if keyword:
            clauses.append(
                "(platform LIKE ? OR account LIKE ? OR note LIKE ?"
                " OR primary_tag LIKE ? OR secondary_tag LIKE ?)"
            )
            params.extend([f"%{keyword}%"] * 5)

        if tag is not None:
            clauses.append("(primary_tag = ? OR secondary_tag = ?)")
            params.extend([tag.value, tag.value])

        sql = f"{_SELECT} WHERE {' AND '.join(clauses)} ORDER BY updated_at DESC"
        return await self._fetch(sql, tuple(params))

    async def clear_all(self) -> int:
        """Remove every entry. Returns the number of rows deleted."""
        async with self._connect("clear entries") as db:
            cursor = await db.execute("DELETE FROM password_entries")
            await db.commit()
            count = cursor.rowcount
        logger.info("Cleared %d entries", count)
        return count
