"""PDF importer for scanned billing tables.

Recovers (account, meter) pairs from one or more PDFs. Pairs are deduplicated
across all files of the run through ``RunContext.seen_pairs``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator

from ejibaya.extraction.pdf_pairs import (
    DEFAULT_ACCOUNT_PREFIXES,
    extract_pairs,
    read_pdf_text,
)
from ejibaya.models import CanonicalRecord
from ejibaya.pipeline.base_importer import BaseImporter
from ejibaya.pipeline.config_loader import register_importer
from ejibaya.pipeline.types import RunContext


@register_importer("pdf")
class PdfPairImporter(BaseImporter):
    """Import (account, meter) pairs from PDF files.

    Configuration:
    - file_paths: List of PDF paths (or a single ``file_path``)
    - account_prefixes: Account-number prefixes (default ["34"])

    Missing files are skipped with a warning; the run fails only when none of
    the configured files exists.
    """

    def _pdf_paths(self) -> list[Path]:
        paths = self._get_config_value("file_paths")
        if paths is None:
            paths = [self._get_config_value("file_path", required=True)]

        existing = []
        for raw in paths:
            path = Path(raw)
            if path.exists():
                existing.append(path)
            else:
                self.logger.warning(f"PDF not found, skipping: {path}")

        if not existing:
            raise FileNotFoundError(f"None of the configured PDFs exist: {list(paths)}")
        return existing

    def validate(self) -> None:
        self._pdf_paths()

    async def fetch_records(self, context: RunContext) -> AsyncIterator[CanonicalRecord]:
        """Extract pairs from every file and yield minimal records."""
        prefixes = tuple(self._get_config_value("account_prefixes", DEFAULT_ACCOUNT_PREFIXES))

        for path in self._pdf_paths():
            text = await asyncio.to_thread(read_pdf_text, path)
            if not text.strip():
                self.logger.warning(f"No text extracted from {path.name}")
                continue

            pairs = extract_pairs(text, prefixes, seen=context.seen_pairs)
            self.logger.info(f"Extracted {len(pairs)} pairs from {path.name}")

            for pair in pairs:
                outcome = self.builder.from_pair(pair)
                context.record_outcome(outcome)
                if outcome.ok:
                    yield outcome.record
