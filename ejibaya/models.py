"""ejibaya Pydantic models for type-safe record validation.

All sources (delimited text, spreadsheets, PDF tables) converge on
CanonicalRecord before they are written to CSV or loaded into the store.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

CSV_HEADER: tuple[str, ...] = (
    "account_number",
    "subscriber_name",
    "region",
    "meter_number",
    "category",
    "last_reading",
    "status",
    "is_refused",
)

_DIGITS = re.compile(r"^\d*$")


class Category(str, Enum):
    """Canonical subscriber categories (Arabic labels are stored verbatim)."""

    RESIDENTIAL = "منزلي"
    COMMERCIAL = "تجاري"
    INDUSTRIAL = "صناعي"
    AGRICULTURAL = "زراعي"
    GOVERNMENTAL = "حكومي"


class RecordStatus(str, Enum):
    """Collection status of a subscriber record."""

    PENDING = "pending"
    COMPLETED = "completed"
    REFUSED = "refused"


class CanonicalRecord(BaseModel):
    """Normalized subscriber record persisted downstream.

    Empty text fields are kept as "" here and converted to NULL by to_row().
    """

    account_number: str = ""
    subscriber_name: str = ""
    region: str = ""
    meter_number: str = ""
    category: Category | None = None
    last_reading: str = ""
    status: RecordStatus = RecordStatus.PENDING
    is_refused: bool = False

    # Extra columns set by specific importers (e.g. PDF verification flags)
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("account_number")
    @classmethod
    def validate_account_number(cls, v: str) -> str:
        """Account numbers are digits only, at most 12 of them."""
        if not _DIGITS.match(v):
            raise ValueError(f"account_number must be digits only, got {v!r}")
        if len(v) > 12:
            raise ValueError(f"account_number longer than 12 digits: {v!r}")
        return v

    @field_validator("category", mode="before")
    @classmethod
    def blank_category_is_unset(cls, v: Any) -> Any:
        if v == "":
            return None
        return v

    @property
    def is_empty(self) -> bool:
        """True when all identifying fields are blank."""
        return not (self.account_number or self.subscriber_name or self.meter_number)

    @property
    def key(self) -> tuple[str, str]:
        return (self.account_number, self.meter_number)

    def to_row(self) -> dict[str, Any]:
        """Payload for the storage API (blank text becomes NULL)."""
        row: dict[str, Any] = {
            "account_number": self.account_number or None,
            "subscriber_name": self.subscriber_name or None,
            "region": self.region or None,
            "meter_number": self.meter_number or None,
            "category": self.category.value if self.category else None,
            "last_reading": self.last_reading or None,
            "status": self.status.value,
            "is_refused": self.is_refused,
        }
        row.update(self.extra)
        return row

    def to_csv_fields(self) -> list[str]:
        """Values in CSV_HEADER order."""
        return [
            self.account_number,
            self.subscriber_name,
            self.region,
            self.meter_number,
            self.category.value if self.category else "",
            self.last_reading,
            self.status.value,
            "true" if self.is_refused else "false",
        ]


class ExtractedPair(BaseModel):
    """(account, meter) pair recovered from unstructured PDF text."""

    account_number: str
    meter_number: str

    @field_validator("account_number")
    @classmethod
    def validate_account(cls, v: str) -> str:
        if not re.fullmatch(r"\d{12}", v):
            raise ValueError(f"account_number must be exactly 12 digits, got {v!r}")
        return v

    @field_validator("meter_number")
    @classmethod
    def validate_meter(cls, v: str) -> str:
        if not re.fullmatch(r"\d{5,8}", v):
            raise ValueError(f"meter_number must be 5-8 digits, got {v!r}")
        return v

    @model_validator(mode="after")
    def meter_differs_from_account(self) -> ExtractedPair:
        if self.meter_number == self.account_number:
            raise ValueError("meter_number must differ from account_number")
        return self

    @property
    def key(self) -> tuple[str, str]:
        return (self.account_number, self.meter_number)

    class Config:
        frozen = True
