"""Type definitions for pipeline operations."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ejibaya.models import CanonicalRecord


class ImportStatus(str, Enum):
    """Status of an import operation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    SKIPPED = "SKIPPED"


class RejectionReason(str, Enum):
    """Why a source row did not become a canonical record."""

    INSUFFICIENT_COLUMNS = "INSUFFICIENT_COLUMNS"
    ALL_FIELDS_EMPTY = "ALL_FIELDS_EMPTY"
    ACCOUNT_NUMBER_TOO_LONG = "ACCOUNT_NUMBER_TOO_LONG"
    INVALID_CATEGORY = "INVALID_CATEGORY"


class LoadMode(str, Enum):
    """What the driver does with the records of a source."""

    CONVERT = "convert"  # write canonical CSV
    LOAD = "load"  # batched insert
    UPSERT = "upsert"  # per-record insert with duplicate check


@dataclass
class BuildOutcome:
    """Result of building one source row."""

    record: Optional[CanonicalRecord] = None
    reason: Optional[RejectionReason] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass
class RunContext:
    """Per-run accumulator threaded through every stage.

    Owned by the top-level driver; never shared between runs.
    """

    preview_limit: int = 3
    max_messages: int = 200

    rows_seen: int = 0
    accepted: int = 0
    rejections: Counter = field(default_factory=Counter)
    messages: list[str] = field(default_factory=list)
    preview: list[CanonicalRecord] = field(default_factory=list)
    seen_pairs: set[tuple[str, str]] = field(default_factory=set)

    def record_outcome(self, outcome: BuildOutcome, row_number: int | None = None) -> None:
        """Count one built row and keep a preview / rejection note."""
        self.rows_seen += 1
        if outcome.ok:
            self.accepted += 1
            if len(self.preview) < self.preview_limit:
                self.preview.append(outcome.record)
            return

        self.rejections[outcome.reason] += 1
        if len(self.messages) < self.max_messages:
            where = f"Row {row_number}" if row_number is not None else "Row"
            note = f"{where}: {outcome.reason.value}"
            if outcome.detail:
                note += f" ({outcome.detail})"
            self.messages.append(note)

    def note(self, message: str) -> None:
        """Keep a free-form message for the run summary (bounded)."""
        if len(self.messages) < self.max_messages:
            self.messages.append(message)

    @property
    def rejected(self) -> int:
        return sum(self.rejections.values())

    def summary(self) -> dict:
        return {
            "rows_seen": self.rows_seen,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "rejections": {reason.value: count for reason, count in self.rejections.items()},
        }


@dataclass
class LoadResult:
    """Outcome of a batched load."""

    uploaded: int = 0
    failed: int = 0
    total: int = 0
    failed_batches: list[int] = field(default_factory=list)


@dataclass
class UpsertResult:
    """Outcome of a per-record idempotent upsert."""

    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    total: int = 0


@dataclass
class ImportResult:
    """Result of running one source through the pipeline."""

    source_name: str
    status: ImportStatus
    mode: LoadMode = LoadMode.LOAD
    records_built: int = 0
    records_rejected: int = 0
    records_inserted: int = 0
    records_duplicate: int = 0
    records_failed: int = 0
    output_path: Optional[str] = None
    message: str = ""
    error_details: Optional[dict] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """Check if import was successful (an empty source is not a failure)."""
        return self.status in (
            ImportStatus.SUCCESS,
            ImportStatus.PARTIAL_SUCCESS,
            ImportStatus.SKIPPED,
        )
