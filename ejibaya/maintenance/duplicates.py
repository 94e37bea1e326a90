"""Duplicate-record maintenance.

Records sharing (account_number, meter_number) are grouped; the newest one
(by ``submitted_at``, falling back to ``created_at``) is kept and the rest are
deleted together with their dependent rows.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ejibaya.core.errors import StorageError
from ejibaya.storage.base import ACTIVITY_LOG_TABLE, RECORDS_TABLE, RecordStore

logger = logging.getLogger(__name__)

# (table, column referencing collection_records.id), deleted before the record
DEPENDENT_TABLES: tuple[tuple[str, str], ...] = (
    ("record_changes_log", "record_id"),
    ("record_photos", "record_id"),
    (ACTIVITY_LOG_TABLE, "target_id"),
)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)
_FRACTION = re.compile(r"\.(\d+)")


@dataclass
class DuplicateGroup:
    """Records sharing one identifying key."""

    account_number: str
    meter_number: str
    keep: dict[str, Any]
    delete: list[dict[str, Any]]

    @property
    def count(self) -> int:
        return len(self.delete) + 1


@dataclass
class DedupeResult:
    groups: int = 0
    to_delete: int = 0
    deleted: int = 0
    failed: int = 0
    deleted_ids: list[Any] = field(default_factory=list)


def _timestamp(row: dict[str, Any]) -> datetime:
    value = row.get("submitted_at") or row.get("created_at")
    if not value:
        return _OLDEST
    try:
        text = str(value).replace("Z", "+00:00")
        # Postgres trims trailing zeros; fromisoformat wants 3 or 6 digits
        text = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
        moment = datetime.fromisoformat(text)
    except ValueError:
        return _OLDEST
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def find_duplicate_groups(rows: list[dict[str, Any]]) -> list[DuplicateGroup]:
    """Group rows by (account_number, meter_number) and pick the survivor.

    Rows missing either identifier are ignored.
    """
    by_key: dict[tuple[str, str], list[dict[str, Any]]] = defaultdict(list)
    for row in rows:
        account, meter = row.get("account_number"), row.get("meter_number")
        if account and meter:
            by_key[(account, meter)].append(row)

    groups = []
    for (account, meter), members in by_key.items():
        if len(members) < 2:
            continue
        # sorted() is stable, so equal timestamps keep store order
        ordered = sorted(members, key=_timestamp, reverse=True)
        groups.append(
            DuplicateGroup(
                account_number=account,
                meter_number=meter,
                keep=ordered[0],
                delete=ordered[1:],
            )
        )
    return groups


async def remove_duplicates(
    store: RecordStore,
    apply: bool = False,
    pause_every: int = 10,
    pause_seconds: float = 1.0,
) -> DedupeResult:
    """Find duplicate records and, when ``apply`` is set, delete them.

    Args:
        store: Record store
        apply: Delete for real (default is a dry run that only counts)
        pause_every: Pause after this many groups
        pause_seconds: Length of that pause

    Returns:
        DedupeResult with group, deletion and failure counts
    """
    rows = await store.list_all(RECORDS_TABLE)
    groups = find_duplicate_groups(rows)
    result = DedupeResult(
        groups=len(groups),
        to_delete=sum(len(group.delete) for group in groups),
    )
    logger.info(
        f"Scanned {len(rows)} records: {result.groups} duplicate keys, "
        f"{result.to_delete} records to delete"
    )

    if not apply or not groups:
        return result

    for index, group in enumerate(groups, start=1):
        for row in group.delete:
            record_id = row.get("id")
            try:
                for table, column in DEPENDENT_TABLES:
                    await store.delete_where(table, column, [record_id])
                await store.delete_where(RECORDS_TABLE, "id", [record_id])
            except StorageError as e:
                result.failed += 1
                logger.error(f"Could not delete duplicate record {record_id}: {e}")
                continue
            result.deleted += 1
            result.deleted_ids.append(record_id)

        if pause_every and index % pause_every == 0 and index < len(groups) and pause_seconds > 0:
            await asyncio.sleep(pause_seconds)

    logger.info(f"Deleted {result.deleted} duplicate records ({result.failed} failed)")
    return result
