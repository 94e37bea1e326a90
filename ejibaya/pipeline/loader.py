"""Bulk loader: pushes canonical records to the record store.

Two modes:
- ``load``: order-preserving fixed-size batches, one atomic insert per batch,
  fixed pacing between batches. A failed batch is counted whole and the run
  moves on to the next batch.
- ``upsert``: per-record existence check on (account_number, meter_number),
  used for small, noisy PDF extractions where exactness beats throughput.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ejibaya.core.errors import StorageError
from ejibaya.models import CanonicalRecord
from ejibaya.pipeline.types import LoadResult, RunContext, UpsertResult
from ejibaya.storage.base import RECORDS_TABLE, RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 1000
DEFAULT_BATCH_DELAY_SECONDS = 0.1


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive batches of at most ``size``.

    Example:
        >>> partition([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class BulkLoader:
    """Loads canonical records into the store."""

    def __init__(
        self,
        store: RecordStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
        retry_attempts: int = 1,
        retry_wait_seconds: float = 1.0,
        upsert_pause_every: int = 50,
        upsert_pause_seconds: float = 1.0,
        table: str = RECORDS_TABLE,
    ):
        """Initialize loader.

        Args:
            store: Destination record store
            batch_size: Records per insert call
            batch_delay_seconds: Pause between consecutive batches
            retry_attempts: Attempts per batch (1 disables retries)
            retry_wait_seconds: Base of the exponential backoff between attempts
            upsert_pause_every: Upsert mode pauses after this many records
            upsert_pause_seconds: Length of that pause
            table: Destination table
        """
        if batch_size < 1:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.store = store
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait_seconds = retry_wait_seconds
        self.upsert_pause_every = upsert_pause_every
        self.upsert_pause_seconds = upsert_pause_seconds
        self.table = table

    async def _insert_batch(self, rows: list[dict]) -> list[dict]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=30),
            retry=retry_if_exception_type(StorageError),
            reraise=True,
        ):
            with attempt:
                return await self.store.insert_records(rows, table=self.table)
        return []

    async def load(
        self, records: Sequence[CanonicalRecord], context: RunContext | None = None
    ) -> LoadResult:
        """Insert records in order-preserving batches.

        Args:
            records: Records to insert
            context: Run context receiving one note per failed batch

        Returns:
            LoadResult with uploaded/failed/total counts
        """
        batches = partition(records, self.batch_size)
        result = LoadResult(total=len(records))
        total_batches = len(batches)

        logger.info(
            f"Uploading {len(records)} records in {total_batches} batches of {self.batch_size}"
        )

        for number, batch in enumerate(batches, start=1):
            try:
                # inserts are all-or-nothing; the returned rows may be filtered
                await self._insert_batch([r.to_row() for r in batch])
                result.uploaded += len(batch)
                logger.info(
                    f"Batch {number}/{total_batches}: {len(batch)} records "
                    f"(total {result.uploaded}/{result.total})"
                )
            except StorageError as e:
                result.failed += len(batch)
                result.failed_batches.append(number)
                logger.error(f"Batch {number}/{total_batches} failed: {e}")
                if context is not None:
                    context.note(f"Batch {number}: BATCH_FAILED ({len(batch)} records)")

            if number < total_batches and self.batch_delay_seconds > 0:
                await asyncio.sleep(self.batch_delay_seconds)

        logger.info(
            f"Upload finished: {result.uploaded} uploaded, {result.failed} failed, "
            f"{result.total} total"
        )
        return result

    async def upsert(
        self, records: Sequence[CanonicalRecord], context: RunContext | None = None
    ) -> UpsertResult:
        """Insert records one by one, skipping keys already in the store."""
        result = UpsertResult(total=len(records))

        for index, record in enumerate(records, start=1):
            try:
                existing = await self.store.find_record(
                    record.account_number, record.meter_number, table=self.table
                )
                if existing:
                    result.duplicates += 1
                else:
                    await self.store.insert_records([record.to_row()], table=self.table)
                    result.inserted += 1
            except StorageError as e:
                result.failed += 1
                logger.error(
                    f"{index}/{len(records)}: record {record.account_number} failed: {e}"
                )
                if context is not None:
                    context.note(f"Record {record.account_number}: insert failed")

            if index % 100 == 0 or index == len(records):
                logger.info(
                    f"{index}/{len(records)}: {result.inserted} inserted, "
                    f"{result.duplicates} already present"
                )

            if (
                self.upsert_pause_every
                and index % self.upsert_pause_every == 0
                and index < len(records)
                and self.upsert_pause_seconds > 0
            ):
                await asyncio.sleep(self.upsert_pause_seconds)

        return result
