"""Bulk import into and export out of the credential store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from passtalk.transfer import mappers

if TYPE_CHECKING:
    from passtalk.storage.store import SQLiteCredentialStore

logger = logging.getLogger(__name__)


class ImportFormat(StrEnum):
    CSV = "csv"
    JSON = "json"
    BITWARDEN = "bitwarden"
    ONE_PASSWORD = "1password"


class ExportFormat(StrEnum):
    CSV = "csv"
    JSON = "json"


_IMPORTERS = {
    ImportFormat.CSV: mappers.map_generic_csv,
    ImportFormat.JSON: mappers.map_passtalk_json,
    ImportFormat.BITWARDEN: mappers.map_bitwarden,
    ImportFormat.ONE_PASSWORD: mappers.map_one_password,
}

_EXPORTERS = {
    ExportFormat.CSV: mappers.export_csv,
    ExportFormat.JSON: mappers.export_passtalk_json,
}


@dataclass(frozen=True)
class ImportReport:
    imported: int
    skipped: int


class TransferService:
    """Imports patches into, and exports entries out of, a credential store."""

    def __init__(self, store: SQLiteCredentialStore) -> None:
        self._store = store

    async def import_entries(self, data: bytes, fmt: ImportFormat) -> ImportReport:
        """Create an entry per mapped patch; patches lacking platform or account are skipped."""
        patches = _IMPORTERS[fmt](data)
        imported = skipped = 0
        for patch in patches:
            if not patch.platform.strip() or not patch.account.strip():
                skipped += 1
                continue
            await self._store.create(patch)
            imported += 1
        logger.info("Imported %d entries from %s (%d skipped)", imported, fmt.value, skipped)
        return ImportReport(imported=imported, skipped=skipped)

    async def export_entries(self, fmt: ExportFormat) -> bytes:
        entries = await self._store.list_entries(include_deleted=False)
        logger.info("Exporting %d entries as %s", len(entries), fmt.value)
        return _EXPORTERS[fmt](entries)
