"""Backup archiver: relational snapshots plus remote photos in one zip.

Lifecycle: COLLECTING_TABLES -> COLLECTING_ASSETS -> PACKING -> DONE | FAILED.

Archive layout:
    backup_data.json            snapshots, photo manifest and metadata
    photos/record_{id}_{role}_{filename}

A photo that cannot be downloaded is logged and left out; ``total_photos``
counts only the photos actually embedded, so it always equals the number of
``photos/`` entries and the manifest length.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import urllib.parse
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import httpx

from ejibaya.backup.types import (
    DOCUMENT_NAME,
    PHOTOS_PREFIX,
    SCHEMA_VERSION,
    ArchiverState,
    AssetRef,
    BackupMetadata,
    BackupReport,
    PhotoEntry,
)
from ejibaya.core.audit_logger import log_action
from ejibaya.core.errors import AssetFetchError, BackupError, StorageError
from ejibaya.core.rate_limiter import RateLimiter
from ejibaya.storage.base import RECORDS_TABLE, SNAPSHOT_TABLES, RecordStore

logger = logging.getLogger(__name__)

PHOTOS_TABLE = "record_photos"
USERS_TABLE = "users"

# (column on collection_records, role)
RECORD_PHOTO_COLUMNS: tuple[tuple[str, str], ...] = (
    ("meter_photo_url", "meter"),
    ("invoice_photo_url", "invoice"),
)
DEFAULT_PHOTO_ROLE = "other"


def backup_filename(moment: datetime) -> str:
    """Archive name embedding the capture date and time.

    Example:
        >>> backup_filename(datetime(2025, 3, 1, 14, 5, 9))
        'ejibaya_backup_complete_2025-03-01_14-05-09.zip'
    """
    return f"ejibaya_backup_complete_{moment:%Y-%m-%d}_{moment:%H-%M-%S}.zip"


def url_filename(url: str) -> str:
    """Last path segment of a URL, without query or fragment."""
    path = urllib.parse.urlparse(url).path
    return urllib.parse.unquote(path.rsplit("/", 1)[-1])


def photo_entry_name(url: str, record_id: str, role: str, capture_ms: int, seq: int) -> str:
    """Deterministic archive entry name for one photo.

    Legacy uploads carry names like ``M_IMG_1759418703702_tnp1o.jpg``; any last
    segment containing ``_`` is kept. Otherwise a synthetic name is derived
    from the capture time and the photo's position in the run.
    """
    try:
        filename = url_filename(url)
    except ValueError:
        # unparsable URL: the fetch skips it, so a synthetic name is enough
        filename = ""
    if "_" in filename:
        return f"{PHOTOS_PREFIX}record_{record_id}_{role}_{filename}"
    return (
        f"{PHOTOS_PREFIX}record_{record_id}_{role}_"
        f"{role.upper()}_IMG_{capture_ms}_{seq}.jpg"
    )


def collect_asset_refs(tables: dict[str, list[dict[str, Any]]]) -> list[AssetRef]:
    """List every photo URL referenced by records and photo-metadata rows."""
    refs: list[AssetRef] = []

    for record in tables.get(RECORDS_TABLE, []):
        for column, role in RECORD_PHOTO_COLUMNS:
            url = record.get(column)
            if url:
                refs.append(AssetRef(record_id=str(record.get("id")), role=role, url=url))

    for photo in tables.get(PHOTOS_TABLE, []):
        url = photo.get("photo_url")
        if url:
            refs.append(
                AssetRef(
                    record_id=str(photo.get("record_id")),
                    role=photo.get("photo_type") or DEFAULT_PHOTO_ROLE,
                    url=url,
                )
            )

    return refs


def _write_archive(
    destination: Path, document: bytes, assets: list[tuple[PhotoEntry, bytes]]
) -> None:
    temp_path = destination.with_name(destination.name + ".part")
    try:
        with zipfile.ZipFile(temp_path, "w", zipfile.ZIP_DEFLATED) as zip_file:
            zip_file.writestr(DOCUMENT_NAME, document)
            for entry, content in assets:
                zip_file.writestr(entry.path, content)
        os.replace(temp_path, destination)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


class BackupArchiver:
    """Creates complete backups of the record store.

    Example:
        >>> archiver = BackupArchiver(store, output_dir=Path("backups"))
        >>> report = await archiver.create_backup()
        >>> report.archive_path.name
        'ejibaya_backup_complete_2025-03-01_14-05-09.zip'
    """

    def __init__(
        self,
        store: RecordStore,
        output_dir: Path = Path("backups"),
        http_client: httpx.AsyncClient | None = None,
        asset_timeout: float = 60.0,
        rate_limiter: RateLimiter | None = None,
        max_concurrent_fetches: int = 1,
        actor_user_id: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize archiver.

        Args:
            store: Record store to snapshot
            output_dir: Directory receiving the archive
            http_client: Client used for photo downloads (created per run if None)
            asset_timeout: Per-photo download timeout in seconds
            rate_limiter: Per-host pacing for downloads
            max_concurrent_fetches: Downloads in flight at once (1 = sequential)
            actor_user_id: User recorded in the activity log (None skips it)
            clock: Source of the local capture time (for tests)
        """
        self.store = store
        self.output_dir = Path(output_dir)
        self.http_client = http_client
        self.asset_timeout = asset_timeout
        self.rate_limiter = rate_limiter or RateLimiter()
        self.max_concurrent_fetches = max(1, max_concurrent_fetches)
        self.actor_user_id = actor_user_id
        self.clock = clock or datetime.now
        self.state = ArchiverState.IDLE

    async def create_backup(self) -> BackupReport:
        """Run a full backup.

        Returns:
            BackupReport describing the written archive

        Raises:
            BackupError: If a table snapshot or the archive write fails
        """
        captured_at = self.clock()
        capture_ms = int(captured_at.timestamp() * 1000)

        try:
            self.state = ArchiverState.COLLECTING_TABLES
            tables = await self.collect_tables()

            self.state = ArchiverState.COLLECTING_ASSETS
            refs = collect_asset_refs(tables)
            assets, failed = await self.collect_assets(refs, capture_ms)

            self.state = ArchiverState.PACKING
            metadata = BackupMetadata(
                backup_date=captured_at.astimezone(timezone.utc).isoformat(),
                total_records=len(tables[RECORDS_TABLE]),
                total_photos=len(assets),
                total_users=len(tables[USERS_TABLE]),
                schema_version=SCHEMA_VERSION,
            )
            document = dict(tables)
            document["photos"] = [entry.model_dump() for entry, _ in assets]
            document["metadata"] = metadata.model_dump()
            payload = json.dumps(document, ensure_ascii=False, indent=2, default=str)

            self.output_dir.mkdir(parents=True, exist_ok=True)
            archive_path = self.output_dir / backup_filename(captured_at)
            await asyncio.to_thread(
                _write_archive, archive_path, payload.encode("utf-8"), assets
            )
        except StorageError as e:
            self.state = ArchiverState.FAILED
            raise BackupError(f"Snapshot failed: {e}") from e
        except OSError as e:
            self.state = ArchiverState.FAILED
            raise BackupError(f"Writing archive failed: {e}") from e
        except Exception:
            self.state = ArchiverState.FAILED
            raise

        self.state = ArchiverState.DONE
        logger.info(
            f"Backup written to {archive_path}: {metadata.total_records} records, "
            f"{metadata.total_users} users, {metadata.total_photos} photos "
            f"({len(failed)} photos unavailable)"
        )

        await log_action(
            self.store,
            "backup_data",
            self.actor_user_id,
            target_type="backup",
            target_name="نسخة احتياطية كاملة مع الصور",
            details={
                "total_records": metadata.total_records,
                "total_photos": metadata.total_photos,
                "total_users": metadata.total_users,
                "backup_type": "complete_with_images",
            },
        )

        return BackupReport(
            archive_path=archive_path,
            metadata=metadata,
            assets_referenced=len(refs),
            assets_failed=failed,
        )

    async def collect_tables(self) -> dict[str, list[dict[str, Any]]]:
        """Snapshot every backed-up table, in dependency order."""
        tables = {}
        for table in SNAPSHOT_TABLES:
            rows = await self.store.list_all(table)
            tables[table] = rows
            logger.info(f"Snapshot {table}: {len(rows)} rows")
        return tables

    async def collect_assets(
        self, refs: list[AssetRef], capture_ms: int
    ) -> tuple[list[tuple[PhotoEntry, bytes]], list[str]]:
        """Download referenced photos.

        Entry names are assigned in reference order before any download
        starts, so names and manifest order do not depend on fetch timing.

        Returns:
            (embedded entries with their bytes, URLs that could not be fetched)
        """
        planned: list[PhotoEntry] = []
        names: set[str] = set()
        for seq, ref in enumerate(refs, start=1):
            name = photo_entry_name(ref.url, ref.record_id, ref.role, capture_ms, seq)
            if name in names:
                continue
            names.add(name)
            planned.append(
                PhotoEntry(path=name, record_id=ref.record_id, role=ref.role, source_url=ref.url)
            )

        if not planned:
            return [], []

        logger.info(f"Downloading {len(planned)} photos")

        if self.http_client is not None:
            contents = await self._fetch_all(self.http_client, planned)
        else:
            async with httpx.AsyncClient(
                timeout=self.asset_timeout, follow_redirects=True
            ) as client:
                contents = await self._fetch_all(client, planned)

        assets = []
        failed = []
        for entry, content in zip(planned, contents):
            if content is None:
                failed.append(entry.source_url)
            else:
                assets.append((entry, content))
        return assets, failed

    async def _fetch_all(
        self, client: httpx.AsyncClient, planned: list[PhotoEntry]
    ) -> list[bytes | None]:
        if self.max_concurrent_fetches == 1:
            return [await self._fetch_or_skip(client, entry) for entry in planned]

        semaphore = asyncio.Semaphore(self.max_concurrent_fetches)

        async def bounded(entry: PhotoEntry) -> bytes | None:
            async with semaphore:
                return await self._fetch_or_skip(client, entry)

        return await asyncio.gather(*(bounded(entry) for entry in planned))

    async def _fetch_or_skip(self, client: httpx.AsyncClient, entry: PhotoEntry) -> bytes | None:
        try:
            return await self.fetch_asset(client, entry.source_url)
        except AssetFetchError as e:
            logger.warning(f"Photo for record {entry.record_id} ({entry.role}) skipped: {e}")
            return None

    async def fetch_asset(self, client: httpx.AsyncClient, url: str) -> bytes:
        """Download one photo.

        Raises:
            AssetFetchError: On HTTP error status, transport failure or a malformed URL
        """
        try:
            await self.rate_limiter.acquire(url)
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AssetFetchError(url, f"HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            raise AssetFetchError(url, str(exc) or type(exc).__name__) from exc
        except (httpx.InvalidURL, ValueError) as exc:
            raise AssetFetchError(url, f"invalid URL: {exc}") from exc
        return response.content
