"""Spreadsheet importer for Excel subscriber workbooks.

Reads the first sheet with pandas and maps Arabic column headers onto
canonical field names.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import pandas as pd

from ejibaya.canonical.normalize import clean_text
from ejibaya.core.errors import SetupError
from ejibaya.models import CanonicalRecord
from ejibaya.pipeline.base_importer import BaseImporter
from ejibaya.pipeline.config_loader import register_importer
from ejibaya.pipeline.types import RunContext

# (header as exported, canonical field); several headers may feed one field
HEADER_ALIASES: tuple[tuple[str, str], ...] = (
    ("رقم الحساب", "account_number"),
    ("الاسم", "subscriber_name"),
    ("المنطقة", "region"),
    ("العنوان", "region"),
    ("رقم المقياس", "meter_number"),
    ("الصنف", "category"),
    ("القراءة السابقة", "last_reading"),
    ("القرادة السابقة", "last_reading"),  # misspelling found in real exports
)


def resolve_columns(columns: list[Any]) -> dict[str, Any]:
    """Map canonical field names to the first matching sheet column.

    Args:
        columns: Sheet column labels, in sheet order

    Returns:
        Dict of field name -> column label (fields without a column are absent)
    """
    aliases = dict(HEADER_ALIASES)
    resolved: dict[str, Any] = {}
    for column in columns:
        field_name = aliases.get(clean_text(column))
        if field_name and field_name not in resolved:
            resolved[field_name] = column
    return resolved


def cell_to_text(value: Any) -> str:
    """Render a spreadsheet cell as text.

    Integral floats lose their ".0" so that numeric account and meter cells
    keep their digits intact.

    Examples:
        >>> cell_to_text(345123456789.0)
        '345123456789'
        >>> cell_to_text(float("nan"))
        ''
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    if value is pd.NaT:
        return ""
    return str(value)


@register_importer("spreadsheet")
class SpreadsheetImporter(BaseImporter):
    """Import records from the first sheet of an Excel workbook.

    Configuration:
    - file_path: Path to the .xlsx file (required)
    - progress_every: Log progress every N accepted rows (default 10000)

    Example config:
        {
            "file_path": "DATA/subscribers.xlsx"
        }
    """

    async def fetch_records(self, context: RunContext) -> AsyncIterator[CanonicalRecord]:
        """Read the workbook and yield canonical records."""
        file_path = self._get_path()
        progress_every = self._get_config_value("progress_every", 10000)

        df = await asyncio.to_thread(pd.read_excel, file_path, sheet_name=0, dtype=object)
        self.logger.info(f"Read {len(df)} rows from {file_path}")

        columns = resolve_columns(list(df.columns))
        if not columns:
            raise SetupError(
                f"No recognised columns in {file_path}; expected headers such as "
                f"{', '.join(header for header, _ in HEADER_ALIASES[:3])}"
            )
        missing = sorted({name for _, name in HEADER_ALIASES} - set(columns))
        if missing:
            self.logger.warning(f"Columns not found, left blank: {missing}")

        for idx, row in df.iterrows():
            values = {name: cell_to_text(row[column]) for name, column in columns.items()}
            # +2: header row, and sheets are 1-based
            row_number = int(idx) + 2

            outcome = self.builder.from_mapping(values)
            context.record_outcome(outcome, row_number)
            if not outcome.ok:
                continue

            if progress_every and context.accepted % progress_every == 0:
                self.logger.info(f"Processed {context.accepted:,} rows...")

            yield outcome.record
