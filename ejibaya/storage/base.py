"""Contract of the remote record store consumed by the pipeline.

The store itself (tables, auth, row policies) belongs to the surrounding
application; the pipeline only calls these operations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

RECORDS_TABLE = "collection_records"
ACTIVITY_LOG_TABLE = "activity_logs"

# Snapshot order; also the dependency order used when applying a snapshot
SNAPSHOT_TABLES: tuple[str, ...] = (
    "users",
    "collection_records",
    "activity_logs",
    "record_photos",
    "user_sessions",
)


class RecordStore(ABC):
    """Abstract storage API.

    Implementations raise ``StorageError`` for any failed call.
    """

    @abstractmethod
    async def insert_records(
        self, rows: list[dict[str, Any]], table: str = RECORDS_TABLE
    ) -> list[dict[str, Any]]:
        """Insert rows in one all-or-nothing call and return the inserted rows."""

    @abstractmethod
    async def find_record(
        self, account_number: str, meter_number: str, table: str = RECORDS_TABLE
    ) -> dict[str, Any] | None:
        """Return the first row matching the identifying key, if any."""

    @abstractmethod
    async def list_all(self, table: str) -> list[dict[str, Any]]:
        """Return a full snapshot of a table."""

    @abstractmethod
    async def append_activity_log(self, entry: dict[str, Any]) -> None:
        """Append one audit entry."""

    @abstractmethod
    async def delete_where(self, table: str, column: str, values: list[Any]) -> int:
        """Delete rows whose ``column`` is in ``values``; return the count."""

    @abstractmethod
    async def apply_snapshot(self, tables: dict[str, list[dict[str, Any]]]) -> None:
        """Write a validated backup snapshot back to the store."""

    async def close(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> RecordStore:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
