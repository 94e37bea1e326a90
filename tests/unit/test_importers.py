"""Unit tests for the delimited, spreadsheet and PDF importers."""

from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import Workbook

from ejibaya.core.errors import SetupError
from ejibaya.models import Category
from ejibaya.pipeline.importers import DelimitedFileImporter, PdfPairImporter, SpreadsheetImporter
from ejibaya.pipeline.importers import pdf_importer
from ejibaya.pipeline.importers.spreadsheet_importer import cell_to_text, resolve_columns
from ejibaya.pipeline.types import RejectionReason, RunContext

LEGACY_CSV = (
    "\ufeffرقم الحساب,الاسم,العنوان,رقم المقياس,الصنف,القراءة السابقة\n"
    '"345123456789","Ali, A.","North","M-001","9","120"\n'
    '"345123456790","Mona","South","M-002","21","80"\n'
    ",,,,,\n"
    '"3451234567890","Too Long","South","M-003","21","1"\n'
    '"345123456791","Short"\n'
)


class TestDelimitedFileImporter:
    @pytest.mark.asyncio
    async def test_builds_records_and_counts_rejections(self, tmp_path: Path):
        path = tmp_path / "legacy.csv"
        path.write_text(LEGACY_CSV, encoding="utf-8")
        importer = DelimitedFileImporter("legacy", {"file_path": str(path)})
        context = RunContext()

        records = await importer.collect(context)

        assert [r.account_number for r in records] == ["345123456789", "345123456790"]
        assert records[0].subscriber_name == "Ali, A."
        assert records[0].category == Category.COMMERCIAL
        assert records[1].category == Category.RESIDENTIAL
        assert context.rejections[RejectionReason.ALL_FIELDS_EMPTY] == 1
        assert context.rejections[RejectionReason.ACCOUNT_NUMBER_TOO_LONG] == 1
        assert context.rejections[RejectionReason.INSUFFICIENT_COLUMNS] == 1
        assert context.rows_seen == 5

    @pytest.mark.asyncio
    async def test_without_header(self, tmp_path: Path):
        path = tmp_path / "data.csv"
        path.write_text("345123456789;Ali;North;M-1;21;5\n", encoding="utf-8")
        importer = DelimitedFileImporter(
            "plain", {"file_path": str(path), "delimiter": ";", "has_header": False}
        )

        records = await importer.collect(RunContext())

        assert len(records) == 1
        assert records[0].region == "North"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path):
        importer = DelimitedFileImporter("missing", {"file_path": str(tmp_path / "nope.csv")})

        with pytest.raises(FileNotFoundError):
            await importer.collect(RunContext())

    @pytest.mark.asyncio
    async def test_missing_path_config(self):
        importer = DelimitedFileImporter("unset", {})

        with pytest.raises(SetupError):
            await importer.collect(RunContext())


class TestSpreadsheetImporter:
    def test_resolve_columns_first_alias_wins(self):
        columns = ["الاسم", "المنطقة", "العنوان", "القرادة السابقة", "ملاحظات"]

        resolved = resolve_columns(columns)

        assert resolved == {
            "subscriber_name": "الاسم",
            "region": "المنطقة",
            "last_reading": "القرادة السابقة",
        }

    def test_cell_to_text(self):
        assert cell_to_text(345123456789.0) == "345123456789"
        assert cell_to_text(12.5) == "12.5"
        assert cell_to_text(None) == ""
        assert cell_to_text(float("nan")) == ""
        assert cell_to_text("M-1") == "M-1"

    @pytest.mark.asyncio
    async def test_reads_first_sheet(self, tmp_path: Path):
        path = tmp_path / "subscribers.xlsx"
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(["رقم الحساب", "الاسم", "العنوان", "رقم المقياس", "الصنف", "القراءة السابقة"])
        sheet.append([345123456789, "Ali", "North", "M-001", 9, 120])
        sheet.append([None, None, "Nowhere", None, None, None])
        sheet.append([345123456790, "Mona", None, 55012, 22, None])
        other = workbook.create_sheet("ignored")
        other.append(["رقم الحساب"])
        other.append([349999999999])
        workbook.save(path)

        importer = SpreadsheetImporter("excel", {"file_path": str(path)})
        context = RunContext()

        records = await importer.collect(context)

        assert [r.account_number for r in records] == ["345123456789", "345123456790"]
        assert records[0].category == Category.COMMERCIAL
        assert records[0].last_reading == "120"
        assert records[1].meter_number == "55012"
        assert records[1].region == ""
        assert records[1].category == Category.AGRICULTURAL
        assert context.rejections[RejectionReason.ALL_FIELDS_EMPTY] == 1
        assert context.messages == ["Row 3: ALL_FIELDS_EMPTY"]

    @pytest.mark.asyncio
    async def test_unrecognised_headers(self, tmp_path: Path):
        path = tmp_path / "other.xlsx"
        workbook = Workbook()
        workbook.active.append(["foo", "bar"])
        workbook.active.append([1, 2])
        workbook.save(path)

        with pytest.raises(SetupError):
            await SpreadsheetImporter("excel", {"file_path": str(path)}).collect(RunContext())


class TestPdfPairImporter:
    @pytest.mark.asyncio
    async def test_dedupes_across_files_and_skips_missing(self, tmp_path: Path, monkeypatch):
        first = tmp_path / "a.pdf"
        second = tmp_path / "b.pdf"
        first.write_bytes(b"%PDF")
        second.write_bytes(b"%PDF")
        pages = {
            first: "341234567890 10 20 30 40 55012\n342222222222 77777",
            second: "341234567890 55012\n343333333333 88888",
        }
        monkeypatch.setattr(pdf_importer, "read_pdf_text", lambda path: pages[path])

        importer = PdfPairImporter(
            "pdfs",
            {"file_paths": [str(first), str(tmp_path / "missing.pdf"), str(second)]},
        )
        context = RunContext()

        records = await importer.collect(context)

        assert [r.key for r in records] == [
            ("341234567890", "55012"),
            ("342222222222", "77777"),
            ("343333333333", "88888"),
        ]
        assert records[0].extra["verification_status"] == "غير مدقق"
        assert len(context.seen_pairs) == 3

    @pytest.mark.asyncio
    async def test_no_existing_file(self, tmp_path: Path):
        importer = PdfPairImporter("pdfs", {"file_paths": [str(tmp_path / "missing.pdf")]})

        with pytest.raises(FileNotFoundError):
            await importer.collect(RunContext())
