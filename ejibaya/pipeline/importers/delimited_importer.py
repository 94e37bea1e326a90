"""Delimited-text importer for legacy subscriber exports.

Handles both the raw legacy export and the canonical CSV produced by the
conversion step: both carry account, name, region, meter, category and last
reading in their first six columns.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator

from ejibaya.canonical.delimited import iter_records
from ejibaya.models import CanonicalRecord
from ejibaya.pipeline.base_importer import BaseImporter
from ejibaya.pipeline.config_loader import register_importer
from ejibaya.pipeline.types import RunContext


def _read_text(path: Path, encoding: str) -> str:
    # newline="" keeps CRLF inside quoted fields intact
    with open(path, encoding=encoding, newline="") as f:
        return f.read()


@register_importer("delimited")
class DelimitedFileImporter(BaseImporter):
    """Import records from a delimited text file.

    Configuration:
    - file_path: Path to the file (required)
    - delimiter: Field separator (default ",")
    - has_header: Skip the first record (default True)
    - encoding: File encoding (default "utf-8-sig", which drops a BOM)
    - progress_every: Log progress every N accepted rows (default 10000)

    Example config:
        {
            "file_path": "DATA/subscribers.csv",
            "delimiter": ",",
            "has_header": true
        }
    """

    async def fetch_records(self, context: RunContext) -> AsyncIterator[CanonicalRecord]:
        """Read the file and yield canonical records."""
        file_path = self._get_path()
        delimiter = self._get_config_value("delimiter", ",")
        has_header = self._get_config_value("has_header", True)
        encoding = self._get_config_value("encoding", "utf-8-sig")
        progress_every = self._get_config_value("progress_every", 10000)

        text = await asyncio.to_thread(_read_text, file_path, encoding)
        self.logger.info(f"Read {len(text):,} characters from {file_path}")

        header_pending = has_header
        for line_number, fields in iter_records(text, delimiter):
            if header_pending:
                header_pending = False
                continue

            outcome = self.builder.from_fields(fields)
            context.record_outcome(outcome, line_number)

            if not outcome.ok:
                self.logger.debug(f"Line {line_number} skipped: {outcome.reason.value}")
                continue

            if progress_every and context.accepted % progress_every == 0:
                self.logger.info(f"Processed {context.accepted:,} rows...")

            yield outcome.record
