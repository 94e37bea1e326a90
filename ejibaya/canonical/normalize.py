"""Pure field normalizers for legacy subscriber records.

Every function here is total: malformed input produces a best-effort value or
an empty string, never an exception.
"""

from __future__ import annotations

import re
from typing import Any

from ejibaya.models import Category

MAX_ACCOUNT_DIGITS = 12

# Sentinel used by the legacy system for "no category"
NO_CATEGORY_LABEL = "بدون صنف"

_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
_NON_DIGIT = re.compile(r"[^0-9]")
_LEADING_INT = re.compile(r"[+-]?\d+")

CATEGORY_CODES: dict[int, Category | None] = {
    0: None,
    1: Category.GOVERNMENTAL,
    2: Category.GOVERNMENTAL,
    8: Category.GOVERNMENTAL,
    23: Category.GOVERNMENTAL,
    101: Category.GOVERNMENTAL,
    102: Category.GOVERNMENTAL,
    108: Category.GOVERNMENTAL,
    4: Category.INDUSTRIAL,
    5: Category.INDUSTRIAL,
    6: Category.INDUSTRIAL,
    7: Category.INDUSTRIAL,
    17: Category.INDUSTRIAL,
    104: Category.INDUSTRIAL,
    105: Category.INDUSTRIAL,
    106: Category.INDUSTRIAL,
    107: Category.INDUSTRIAL,
    9: Category.COMMERCIAL,
    19: Category.COMMERCIAL,
    24: Category.COMMERCIAL,
    33: Category.COMMERCIAL,
    21: Category.RESIDENTIAL,
    26: Category.RESIDENTIAL,
    27: Category.RESIDENTIAL,
    28: Category.RESIDENTIAL,
    29: Category.RESIDENTIAL,
    39: Category.RESIDENTIAL,
    22: Category.AGRICULTURAL,
}

_LABELS = {c.value: c for c in Category}


def clean_text(value: Any) -> str:
    """Stringify, trim and strip zero-width/BOM characters.

    Examples:
        >>> clean_text("  \\ufeffAli ")
        'Ali'
        >>> clean_text(None)
        ''
    """
    if value is None:
        return ""
    try:
        text = value if isinstance(value, str) else str(value)
    except Exception:
        return ""
    return _ZERO_WIDTH.sub("", text).strip()


def clean_identifier(value: Any) -> str:
    """Strip every non-digit character from an identifier.

    Over-long results are returned whole: the builder rejects them with
    ACCOUNT_NUMBER_TOO_LONG instead of truncating, so this stays idempotent.
    """
    return _NON_DIGIT.sub("", clean_text(value))


def is_account_too_long(account_number: str) -> bool:
    return len(account_number) > MAX_ACCOUNT_DIGITS


def parse_category_code(value: Any) -> int | None:
    """Parse the leading integer of a raw category value, or None."""
    match = _LEADING_INT.match(clean_text(value))
    if not match:
        return None
    return int(match.group(0))


def resolve_category(value: Any) -> str:
    """Map a raw category value to one of the five canonical labels or "".

    Args:
        value: Canonical label, legacy sentinel, integer code or anything else

    Returns:
        Canonical Arabic label, or empty string when unset/unknown
    """
    text = clean_text(value)
    if not text or text == NO_CATEGORY_LABEL:
        return ""
    if text in _LABELS:
        return text

    code = parse_category_code(text)
    if code is None:
        return ""
    category = CATEGORY_CODES.get(code)
    return category.value if category else ""


def is_explicitly_uncategorized(value: Any) -> bool:
    """True for blank values, the legacy sentinel, and code 0."""
    text = clean_text(value)
    if not text or text == NO_CATEGORY_LABEL:
        return True
    return parse_category_code(text) == 0


def escape_for_delimited_output(value: Any, delimiter: str = ",") -> str:
    """Quote a field iff it holds the delimiter, a quote, or a line break."""
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    if delimiter in text or '"' in text or "\n" in text or "\r" in text:
        return '"' + text.replace('"', '""') + '"'
    return text
