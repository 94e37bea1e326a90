"""Quote-aware delimited-text codec.

Parsing is stateless per logical line. Fields are returned untrimmed so that
``parse_line(write_row(fields)) == fields`` holds for any field content,
including the delimiter, quotes and line breaks.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from ejibaya.canonical.normalize import escape_for_delimited_output


def parse_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one logical line into raw fields.

    Rules:
    - a field may be wrapped in double quotes
    - inside quotes, ``""`` is an escaped literal quote
    - the delimiter inside quotes is literal
    - every other quote toggles the quoting state
    - the trailing field is always emitted

    Args:
        line: Raw text of one record (may contain quoted line breaks)
        delimiter: Single-character field separator

    Returns:
        Ordered list of field strings
    """
    if len(delimiter) != 1:
        raise ValueError(f"Delimiter must be a single character, got {delimiter!r}")

    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    length = len(line)

    while i < length:
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < length and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current))
    return fields


def write_row(fields: Iterable[object], delimiter: str = ",") -> str:
    """Serialize fields into one delimited line compatible with parse_line."""
    return delimiter.join(
        escape_for_delimited_output(field, delimiter) for field in fields
    )


def _drop_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def iter_logical_lines(text: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, logical_line)`` pairs from a whole document.

    Physical lines are joined while a quoted field is still open, so quoted
    line breaks (LF or CRLF) stay inside their field verbatim. A CR ending a
    record is dropped. Line numbers are 1-based and refer to the first
    physical line of each record.
    """
    buffer: list[str] = []
    start = 0
    quotes = 0

    for number, physical in enumerate(text.split("\n"), start=1):
        if not buffer:
            start = number
        buffer.append(physical)
        quotes += physical.count('"')
        # An escaped quote adds two, so odd parity means a field is still open
        if quotes % 2 == 0:
            yield start, _drop_cr("\n".join(buffer))
            buffer = []
            quotes = 0

    if buffer:
        yield start, _drop_cr("\n".join(buffer))


def iter_records(
    text: str, delimiter: str = ",", skip_blank: bool = True
) -> Iterator[tuple[int, list[str]]]:
    """Parse a whole delimited document into ``(line_number, fields)`` pairs."""
    for number, line in iter_logical_lines(text):
        if skip_blank and not line.strip():
            continue
        yield number, parse_line(line, delimiter)
