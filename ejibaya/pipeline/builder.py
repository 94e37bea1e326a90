"""Canonical-record builder.

Composes normalizer output into CanonicalRecord values, or a rejection reason.
Rejections are returned, never raised; the caller counts them on its
RunContext and decides whether to continue.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ejibaya.canonical.normalize import (
    clean_identifier,
    clean_text,
    is_account_too_long,
    is_explicitly_uncategorized,
    resolve_category,
)
from ejibaya.models import CanonicalRecord, ExtractedPair
from ejibaya.pipeline.types import BuildOutcome, RejectionReason

# Verification defaults for rows that come from scanned PDF tables
PDF_RECORD_DEFAULTS: dict[str, Any] = {
    "meter_photo_verified": False,
    "invoice_photo_verified": False,
    "verification_status": "غير مدقق",
}


@dataclass(frozen=True)
class ColumnPositions:
    """Field positions for the delimited path."""

    account_number: int = 0
    subscriber_name: int = 1
    region: int = 2
    meter_number: int = 3
    category: int = 4
    last_reading: int = 5

    @property
    def min_columns(self) -> int:
        return max(
            self.account_number,
            self.subscriber_name,
            self.region,
            self.meter_number,
            self.category,
            self.last_reading,
        ) + 1


class RecordBuilder:
    """Turns raw fields, header-mapped rows and PDF pairs into records.

    Example:
        >>> builder = RecordBuilder()
        >>> outcome = builder.from_fields(["345123456789", "Ali", "North", "M-1", "21", "7"])
        >>> outcome.record.category.value
        'منزلي'
    """

    def __init__(
        self,
        positions: ColumnPositions | None = None,
        reject_unknown_categories: bool = False,
    ):
        self.positions = positions or ColumnPositions()
        self.reject_unknown_categories = reject_unknown_categories

    def from_fields(self, fields: Sequence[Any]) -> BuildOutcome:
        """Build from positional fields (delimited path)."""
        if len(fields) < self.positions.min_columns:
            return BuildOutcome(
                reason=RejectionReason.INSUFFICIENT_COLUMNS,
                detail=f"{len(fields)} columns",
            )

        p = self.positions
        return self.from_mapping(
            {
                "account_number": fields[p.account_number],
                "subscriber_name": fields[p.subscriber_name],
                "region": fields[p.region],
                "meter_number": fields[p.meter_number],
                "category": fields[p.category],
                "last_reading": fields[p.last_reading],
            }
        )

    def from_mapping(self, values: Mapping[str, Any]) -> BuildOutcome:
        """Build from a field-name mapping; absent fields are blank."""
        account_number = clean_identifier(values.get("account_number"))
        subscriber_name = clean_text(values.get("subscriber_name"))
        meter_number = clean_text(values.get("meter_number"))

        if not account_number and not subscriber_name and not meter_number:
            return BuildOutcome(reason=RejectionReason.ALL_FIELDS_EMPTY)

        if is_account_too_long(account_number):
            return BuildOutcome(
                reason=RejectionReason.ACCOUNT_NUMBER_TOO_LONG,
                detail=f"{len(account_number)} digits",
            )

        raw_category = values.get("category")
        category = resolve_category(raw_category)
        if (
            not category
            and self.reject_unknown_categories
            and not is_explicitly_uncategorized(raw_category)
        ):
            return BuildOutcome(
                reason=RejectionReason.INVALID_CATEGORY,
                detail=repr(clean_text(raw_category)),
            )

        record = CanonicalRecord(
            account_number=account_number,
            subscriber_name=subscriber_name,
            region=clean_text(values.get("region")),
            meter_number=meter_number,
            category=category or None,
            last_reading=clean_text(values.get("last_reading")),
        )
        return BuildOutcome(record=record)

    def from_pair(self, pair: ExtractedPair) -> BuildOutcome:
        """Build a minimal record from an extracted PDF pair."""
        record = CanonicalRecord(
            account_number=pair.account_number,
            meter_number=pair.meter_number,
            extra=dict(PDF_RECORD_DEFAULTS),
        )
        return BuildOutcome(record=record)
