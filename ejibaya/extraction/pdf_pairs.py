"""Heuristic (account, meter) extraction from PDF page text.

Scanned billing tables lose their column boundaries once text is extracted,
so pairs are recovered line by line with an ordered list of independent
strategies. The first strategy that returns a pair wins for a given account
token. False negatives simply drop the line.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pypdf import PdfReader

from ejibaya.models import ExtractedPair

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_PREFIXES: tuple[str, ...] = ("34",)

_METER_TOKEN = re.compile(r"^\d{5,8}$")


@dataclass(frozen=True)
class LineContext:
    """Everything a strategy may look at besides the current line."""

    account_number: str
    account_end: int
    next_line: str | None = None


Strategy = Callable[[str, LineContext], Optional[ExtractedPair]]


def account_pattern(prefixes: Sequence[str] = DEFAULT_ACCOUNT_PREFIXES) -> re.Pattern:
    """Build the 12-digit account regex for the given prefix range.

    Example:
        >>> bool(account_pattern(("34",)).search("x 341234567890 y"))
        True
    """
    if not prefixes:
        raise ValueError("At least one account prefix is required")
    alternatives = []
    for prefix in prefixes:
        if not prefix.isdigit() or len(prefix) >= 12:
            raise ValueError(f"Invalid account prefix: {prefix!r}")
        alternatives.append(rf"{re.escape(prefix)}\d{{{12 - len(prefix)}}}")
    return re.compile(r"(?<!\d)(" + "|".join(alternatives) + r")(?!\d)")


def _first_meter_token(text: str, account_number: str) -> str | None:
    for token in text.split():
        if _METER_TOKEN.match(token) and token != account_number:
            return token
    return None


def _pair(account_number: str, meter_number: str) -> ExtractedPair | None:
    try:
        return ExtractedPair(account_number=account_number, meter_number=meter_number)
    except ValueError:
        return None


def same_line_sibling(line: str, ctx: LineContext) -> ExtractedPair | None:
    """First 5-8 digit token after the account on the same line."""
    meter = _first_meter_token(line[ctx.account_end:], ctx.account_number)
    return _pair(ctx.account_number, meter) if meter else None


def next_line_sibling(line: str, ctx: LineContext) -> ExtractedPair | None:
    """First 5-8 digit token on the following line."""
    if not ctx.next_line:
        return None
    meter = _first_meter_token(ctx.next_line, ctx.account_number)
    return _pair(ctx.account_number, meter) if meter else None


def fixed_width_row(line: str, ctx: LineContext) -> ExtractedPair | None:
    """Account, exactly four numeric columns, then the meter column."""
    pattern = re.compile(
        rf"(?<!\d){re.escape(ctx.account_number)}"
        r"\s+\d+\s+\d+\s+\d+\s+\d+\s+(\d{5,8})(?!\d)"
    )
    match = pattern.search(line)
    return _pair(ctx.account_number, match.group(1)) if match else None


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    same_line_sibling,
    next_line_sibling,
    fixed_width_row,
)


def extract_pairs(
    text: str,
    prefixes: Sequence[str] = DEFAULT_ACCOUNT_PREFIXES,
    seen: set[tuple[str, str]] | None = None,
    strategies: Iterable[Strategy] = DEFAULT_STRATEGIES,
) -> list[ExtractedPair]:
    """Scan page text and return unique (account, meter) pairs in scan order.

    Args:
        text: Extracted text of one or more pages
        prefixes: Account-number prefix range
        seen: Shared dedup set; pass the run's set to dedupe across sources
        strategies: Extraction strategies in priority order

    Returns:
        Newly found pairs (pairs already in ``seen`` are suppressed)
    """
    pattern = account_pattern(prefixes)
    seen = seen if seen is not None else set()
    strategies = tuple(strategies)
    lines = text.splitlines()
    found: list[ExtractedPair] = []
    candidates = 0

    for index, line in enumerate(lines):
        next_line = lines[index + 1] if index + 1 < len(lines) else None
        for match in pattern.finditer(line):
            candidates += 1
            ctx = LineContext(
                account_number=match.group(1),
                account_end=match.end(),
                next_line=next_line,
            )
            for strategy in strategies:
                pair = strategy(line, ctx)
                if pair is None:
                    continue
                if pair.key not in seen:
                    seen.add(pair.key)
                    found.append(pair)
                break

    logger.info(
        f"Scanned {len(lines)} lines: {candidates} account candidates, "
        f"{len(found)} new pairs"
    )
    return found


def read_pdf_text(file_path: Path) -> str:
    """Concatenate the extracted text of every page of a PDF."""
    if not file_path.exists():
        raise FileNotFoundError(f"PDF not found: {file_path}")

    reader = PdfReader(str(file_path))
    pages = [page.extract_text() or "" for page in reader.pages]
    logger.info(f"Read {len(pages)} pages from {file_path.name}")
    return "\n".join(pages)
