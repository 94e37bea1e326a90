"""Backup restorer: read, validate, then apply a backup.

Lifecycle: READING -> VALIDATING -> APPLYING -> DONE | REJECTED.

Accepts the zip produced by the archiver or a bare ``backup_data.json``
(asset-free). Every structural or count problem rejects the whole archive
before anything is written to the store.
"""

from __future__ import annotations

import asyncio
import json
import logging
import zipfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ejibaya.backup.types import (
    DOCUMENT_NAME,
    PHOTOS_PREFIX,
    SUPPORTED_SCHEMA_VERSIONS,
    BackupMetadata,
    PhotoEntry,
    RestoreReport,
    RestorerState,
)
from ejibaya.core.errors import ArchiveInvalidError, RestoreError, StorageError
from ejibaya.storage.base import RECORDS_TABLE, SNAPSHOT_TABLES, RecordStore

logger = logging.getLogger(__name__)


def read_archive(path: Path) -> tuple[dict[str, Any], set[str] | None]:
    """Load the backup document and the names of embedded photos.

    Returns:
        (document, photo entry names); names are None for a bare JSON file

    Raises:
        FileNotFoundError: If ``path`` does not exist
        ArchiveInvalidError: If the file cannot be read as a backup
    """
    if not path.exists():
        raise FileNotFoundError(f"Backup file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        raw = path.read_bytes()
        photo_entries = None
    elif suffix == ".zip":
        try:
            with zipfile.ZipFile(path) as zip_file:
                names = zip_file.namelist()
                if DOCUMENT_NAME not in names:
                    raise ArchiveInvalidError(f"{DOCUMENT_NAME} not found in {path.name}")
                raw = zip_file.read(DOCUMENT_NAME)
        except zipfile.BadZipFile as e:
            raise ArchiveInvalidError(f"{path.name} is not a valid zip archive: {e}") from e
        photo_entries = {
            name for name in names if name.startswith(PHOTOS_PREFIX) and not name.endswith("/")
        }
    else:
        raise ArchiveInvalidError(f"Unsupported backup format: {path.suffix or path.name}")

    try:
        document = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ArchiveInvalidError(f"{DOCUMENT_NAME} is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise ArchiveInvalidError(f"{DOCUMENT_NAME} must hold a JSON object")
    return document, photo_entries


def _snapshot(document: dict[str, Any], table: str, required: bool = False) -> list:
    if table not in document:
        if required:
            raise ArchiveInvalidError(f"Backup is missing the '{table}' snapshot")
        return []
    rows = document[table]
    if not isinstance(rows, list):
        raise ArchiveInvalidError(f"Snapshot '{table}' must be a list")
    return rows


def _check_count(name: str, declared: int, actual: int) -> None:
    if declared != actual:
        raise ArchiveInvalidError(f"metadata.{name} is {declared} but the backup holds {actual}")


def validate_backup(
    document: dict[str, Any], photo_entries: set[str] | None = None
) -> BackupMetadata:
    """Check structure and declared counts of a backup document.

    Args:
        document: Parsed ``backup_data.json``
        photo_entries: Names of ``photos/`` entries in the container, or None
            for a bare JSON document

    Returns:
        Parsed metadata

    Raises:
        ArchiveInvalidError: On any structural problem or count mismatch
    """
    raw_metadata = document.get("metadata")
    if not isinstance(raw_metadata, dict):
        raise ArchiveInvalidError("Backup is missing 'metadata'")

    version = raw_metadata.get("schema_version")
    if not version:
        raise ArchiveInvalidError("metadata.schema_version is missing")
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ArchiveInvalidError(
            f"Unsupported schema_version {version!r} "
            f"(supported: {', '.join(sorted(SUPPORTED_SCHEMA_VERSIONS))})"
        )

    try:
        metadata = BackupMetadata.model_validate(raw_metadata)
    except ValidationError as e:
        raise ArchiveInvalidError(f"Invalid metadata: {e}") from e

    users = _snapshot(document, "users", required=True)
    records = _snapshot(document, RECORDS_TABLE)
    for table in SNAPSHOT_TABLES:
        _snapshot(document, table)

    try:
        manifest = [PhotoEntry.model_validate(item) for item in _snapshot(document, "photos")]
    except ValidationError as e:
        raise ArchiveInvalidError(f"Invalid photo manifest: {e}") from e

    _check_count("total_users", metadata.total_users, len(users))
    _check_count("total_records", metadata.total_records, len(records))
    _check_count("total_photos", metadata.total_photos, len(manifest))

    if photo_entries is not None:
        _check_count("total_photos", metadata.total_photos, len(photo_entries))
        missing = [entry.path for entry in manifest if entry.path not in photo_entries]
        if missing:
            raise ArchiveInvalidError(
                f"{len(missing)} manifest photos are not in the archive, e.g. {missing[0]}"
            )

    return metadata


class BackupRestorer:
    """Validates backups and hands them to the store.

    Example:
        >>> restorer = BackupRestorer(store)
        >>> report = await restorer.restore(Path("backups/ejibaya_backup_complete_....zip"))
        >>> report.applied
        False
    """

    def __init__(self, store: RecordStore | None = None):
        self.store = store
        self.state = RestorerState.IDLE

    async def restore(self, path: Path, apply: bool = False) -> RestoreReport:
        """Validate a backup and, when ``apply`` is set, write it to the store.

        Raises:
            FileNotFoundError: If the file does not exist
            ArchiveInvalidError: If validation fails (nothing is written)
            RestoreError: If the store rejects the validated snapshot
        """
        path = Path(path)
        try:
            self.state = RestorerState.READING
            document, photo_entries = await asyncio.to_thread(read_archive, path)

            self.state = RestorerState.VALIDATING
            metadata = validate_backup(document, photo_entries)
        except ArchiveInvalidError as e:
            self.state = RestorerState.REJECTED
            logger.error(f"Backup {path.name} rejected: {e}")
            raise

        tables = {table: _snapshot(document, table) for table in SNAPSHOT_TABLES}
        report = RestoreReport(
            source_path=path,
            metadata=metadata,
            table_counts={table: len(rows) for table, rows in tables.items()},
            photo_entries=len(photo_entries) if photo_entries is not None else 0,
            container="json" if photo_entries is None else "zip",
        )
        logger.info(
            f"Backup {path.name} valid: schema {metadata.schema_version}, "
            f"{metadata.total_records} records, {metadata.total_users} users, "
            f"{metadata.total_photos} photos"
        )

        if not apply:
            self.state = RestorerState.DONE
            return report

        if self.store is None:
            raise RestoreError("No record store configured to apply the backup")

        self.state = RestorerState.APPLYING
        try:
            await self.store.apply_snapshot(tables)
        except StorageError as e:
            self.state = RestorerState.REJECTED
            raise RestoreError(f"Store rejected the snapshot: {e}") from e

        report.applied = True
        self.state = RestorerState.DONE
        logger.info(f"Backup {path.name} applied")
        return report
