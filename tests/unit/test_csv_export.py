"""Unit tests for canonical CSV export."""

from __future__ import annotations

from pathlib import Path

from ejibaya.canonical.delimited import iter_records
from ejibaya.models import CSV_HEADER, CanonicalRecord
from ejibaya.reporting.csv_export import write_canonical_csv


def test_writes_bom_header_and_rows(tmp_path: Path, sample_record):
    output = tmp_path / "out" / "records.csv"

    count = write_canonical_csv([sample_record], output)

    raw = output.read_bytes()
    assert count == 1
    assert raw.startswith(b"\xef\xbb\xbf")
    text = raw.decode("utf-8-sig")
    rows = [fields for _, fields in iter_records(text)]
    assert tuple(rows[0]) == CSV_HEADER
    assert rows[1] == sample_record.to_csv_fields()
    assert '"Ali, A."' in text
    assert not (tmp_path / "out" / "records.csv.part").exists()


def test_without_bom(tmp_path: Path):
    output = tmp_path / "records.csv"

    write_canonical_csv([], output, bom=False)

    assert output.read_text(encoding="utf-8") == ",".join(CSV_HEADER) + "\n"


def test_round_trip_through_parser(tmp_path: Path):
    record = CanonicalRecord(
        account_number="345123456789",
        subscriber_name='He said "hi"\nthen left',
        region="North, East",
    )
    output = tmp_path / "records.csv"

    write_canonical_csv([record], output)

    rows = [fields for _, fields in iter_records(output.read_text(encoding="utf-8-sig"))]
    assert rows[1][1] == 'He said "hi"\nthen left'
    assert rows[1][2] == "North, East"


def test_crlf_in_field_survives_round_trip(tmp_path: Path):
    record = CanonicalRecord(account_number="345123456789", subscriber_name="a\r\nb")
    output = tmp_path / "records.csv"

    write_canonical_csv([record], output)

    with open(output, encoding="utf-8-sig", newline="") as f:
        rows = [fields for _, fields in iter_records(f.read())]
    assert rows[1] == record.to_csv_fields()
