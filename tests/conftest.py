"""Pytest configuration and fixtures for ejibaya tests.

Provides an in-memory record store and common sample data.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import Any

import pytest

from ejibaya.config import reset_config
from ejibaya.core.errors import StorageError
from ejibaya.models import CanonicalRecord, Category
from ejibaya.storage.base import ACTIVITY_LOG_TABLE, RECORDS_TABLE, RecordStore

STORE_ENV_VARS = (
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "VITE_SUPABASE_URL",
    "VITE_SUPABASE_ANON_KEY",
)


class InMemoryStore(RecordStore):
    """RecordStore fake keeping every table in a dict of lists.

    Args:
        tables: Initial table contents
        fail_insert_calls: 1-based insert call numbers that raise StorageError
        fail_activity_log: Make append_activity_log raise StorageError
    """

    def __init__(
        self,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        fail_insert_calls: set[int] | None = None,
        fail_activity_log: bool = False,
    ):
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for name, rows in (tables or {}).items():
            self.tables[name] = copy.deepcopy(rows)
        self.fail_insert_calls = fail_insert_calls or set()
        self.fail_activity_log = fail_activity_log
        self.insert_calls = 0
        self.find_calls = 0
        self.applied_snapshot: dict[str, list[dict[str, Any]]] | None = None
        self.closed = False
        self._next_id = 1

    async def insert_records(self, rows, table=RECORDS_TABLE):
        self.insert_calls += 1
        if self.insert_calls in self.fail_insert_calls:
            raise StorageError(f"insert call {self.insert_calls} failed", status_code=500)
        inserted = []
        for row in rows:
            stored = dict(row)
            stored.setdefault("id", f"rec-{self._next_id}")
            self._next_id += 1
            self.tables[table].append(stored)
            inserted.append(stored)
        return inserted

    async def find_record(self, account_number, meter_number, table=RECORDS_TABLE):
        self.find_calls += 1
        for row in self.tables[table]:
            if row.get("account_number") == account_number and row.get("meter_number") == meter_number:
                return row
        return None

    async def list_all(self, table):
        return [dict(row) for row in self.tables[table]]

    async def append_activity_log(self, entry):
        if self.fail_activity_log:
            raise StorageError("activity log unavailable", status_code=503)
        self.tables[ACTIVITY_LOG_TABLE].append(dict(entry))

    async def delete_where(self, table, column, values):
        before = len(self.tables[table])
        self.tables[table] = [row for row in self.tables[table] if row.get(column) not in values]
        return before - len(self.tables[table])

    async def apply_snapshot(self, tables):
        self.applied_snapshot = copy.deepcopy(tables)

    async def close(self):
        self.closed = True


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory record store."""
    return InMemoryStore()


@pytest.fixture
def clean_env(monkeypatch):
    """Environment without store credentials and a fresh config singleton."""
    for name in STORE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield monkeypatch
    reset_config()


@pytest.fixture
def sample_record() -> CanonicalRecord:
    """A fully populated canonical record."""
    return CanonicalRecord(
        account_number="345123456789",
        subscriber_name="Ali, A.",
        region="North",
        meter_number="M-001",
        category=Category.COMMERCIAL,
        last_reading="120",
    )


@pytest.fixture
def sample_records() -> list[CanonicalRecord]:
    """Five distinct records."""
    return [
        CanonicalRecord(
            account_number=f"34000000000{i}",
            subscriber_name=f"Subscriber {i}",
            region="Kut",
            meter_number=f"{10000 + i}",
            category=Category.RESIDENTIAL,
            last_reading=str(100 * i),
        )
        for i in range(5)
    ]


@pytest.fixture
def make_store():
    """Factory for stores with preset tables or injected failures."""
    return InMemoryStore
