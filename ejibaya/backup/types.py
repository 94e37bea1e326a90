"""Types shared by the backup archiver and restorer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

SCHEMA_VERSION = "2.0.0"
SUPPORTED_SCHEMA_VERSIONS = frozenset({SCHEMA_VERSION})

DOCUMENT_NAME = "backup_data.json"
PHOTOS_PREFIX = "photos/"


class ArchiverState(str, Enum):
    """Lifecycle of one backup run."""

    IDLE = "IDLE"
    COLLECTING_TABLES = "COLLECTING_TABLES"
    COLLECTING_ASSETS = "COLLECTING_ASSETS"
    PACKING = "PACKING"
    DONE = "DONE"
    FAILED = "FAILED"


class RestorerState(str, Enum):
    """Lifecycle of one restore run."""

    IDLE = "IDLE"
    READING = "READING"
    VALIDATING = "VALIDATING"
    APPLYING = "APPLYING"
    DONE = "DONE"
    REJECTED = "REJECTED"


class BackupMetadata(BaseModel):
    """Self-describing header of a backup document."""

    backup_date: str
    total_records: int = Field(ge=0)
    total_photos: int = Field(ge=0)
    total_users: int = Field(ge=0)
    schema_version: str


class PhotoEntry(BaseModel):
    """Manifest entry for one binary embedded under ``photos/``."""

    path: str
    record_id: str
    role: str
    source_url: str


@dataclass(frozen=True)
class AssetRef:
    """A remote photo referenced by a record or photo-metadata row."""

    record_id: str
    role: str
    url: str


@dataclass
class BackupReport:
    """Outcome of a backup run."""

    archive_path: Path
    metadata: BackupMetadata
    assets_referenced: int = 0
    assets_failed: list[str] = field(default_factory=list)

    @property
    def photos_embedded(self) -> int:
        return self.metadata.total_photos


@dataclass
class RestoreReport:
    """Outcome of a restore run."""

    source_path: Path
    metadata: BackupMetadata
    table_counts: dict[str, int] = field(default_factory=dict)
    photo_entries: int = 0
    applied: bool = False
    container: Optional[str] = None  # "zip" or "json"
