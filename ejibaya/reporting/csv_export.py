"""Canonical CSV export.

Writes canonical records with the fixed eight-column header. Output is
UTF-8 with a BOM by default so spreadsheet tools detect Arabic text.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from ejibaya.canonical.delimited import write_row
from ejibaya.models import CSV_HEADER, CanonicalRecord

logger = logging.getLogger(__name__)


def write_canonical_csv(
    records: Iterable[CanonicalRecord],
    output_path: Path,
    delimiter: str = ",",
    bom: bool = True,
) -> int:
    """Write records to ``output_path`` and return the number of data rows.

    The file is written next to its destination under a ``.part`` name and
    renamed once complete, so an interrupted export never leaves a truncated
    file behind.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.with_name(output_path.name + ".part")
    encoding = "utf-8-sig" if bom else "utf-8"

    count = 0
    try:
        with open(temp_path, "w", encoding=encoding, newline="") as f:
            f.write(write_row(CSV_HEADER, delimiter) + "\n")
            for record in records:
                f.write(write_row(record.to_csv_fields(), delimiter) + "\n")
                count += 1
        os.replace(temp_path, output_path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise

    logger.info(f"Wrote {count} records to {output_path}")
    return count
