"""Storage API contract and the PostgREST-backed implementation."""

from ejibaya.storage.base import RECORDS_TABLE, RecordStore

__all__ = ["RECORDS_TABLE", "RecordStore"]
