"""Unit tests for the canonical-record builder and run context."""

from __future__ import annotations

from ejibaya.canonical.delimited import parse_line
from ejibaya.models import Category, ExtractedPair, RecordStatus
from ejibaya.pipeline.builder import PDF_RECORD_DEFAULTS, ColumnPositions, RecordBuilder
from ejibaya.pipeline.types import RejectionReason, RunContext


class TestFromFields:
    def test_scenario_line(self):
        fields = parse_line('"345123456789","Ali, A.","North","M-001","9","120"')

        outcome = RecordBuilder().from_fields(fields)

        assert outcome.ok
        record = outcome.record
        assert record.account_number == "345123456789"
        assert record.subscriber_name == "Ali, A."
        assert record.region == "North"
        assert record.meter_number == "M-001"
        assert record.category == Category.COMMERCIAL
        assert record.last_reading == "120"
        assert record.status == RecordStatus.PENDING
        assert record.is_refused is False

    def test_insufficient_columns(self):
        outcome = RecordBuilder().from_fields(["345123456789", "Ali", "North"])

        assert outcome.reason == RejectionReason.INSUFFICIENT_COLUMNS

    def test_all_identifying_fields_empty(self):
        outcome = RecordBuilder().from_fields([" ", "", "North", "", "21", "5"])

        assert outcome.reason == RejectionReason.ALL_FIELDS_EMPTY

    def test_thirteen_digit_account_rejected(self):
        outcome = RecordBuilder().from_fields(["3451234567890", "Ali", "", "M-1", "21", ""])

        assert not outcome.ok
        assert outcome.reason == RejectionReason.ACCOUNT_NUMBER_TOO_LONG

    def test_account_is_cleaned(self):
        outcome = RecordBuilder().from_fields(["34-512 345 6789", "Ali", "", "M-1", "", ""])

        assert outcome.record.account_number == "345123456789"

    def test_code_21_and_unknown_code(self):
        builder = RecordBuilder()

        residential = builder.from_fields(["1", "A", "", "M", "21", ""]).record
        unknown = builder.from_fields(["2", "B", "", "M", "999", ""]).record

        assert residential.category == Category.RESIDENTIAL
        assert unknown.category is None

    def test_unknown_category_rejected_when_strict(self):
        builder = RecordBuilder(reject_unknown_categories=True)

        rejected = builder.from_fields(["2", "B", "", "M", "999", ""])
        sentinel = builder.from_fields(["3", "C", "", "M", "بدون صنف", ""])
        blank = builder.from_fields(["4", "D", "", "M", "", ""])

        assert rejected.reason == RejectionReason.INVALID_CATEGORY
        assert sentinel.ok and sentinel.record.category is None
        assert blank.ok

    def test_custom_positions(self):
        positions = ColumnPositions(
            account_number=1, subscriber_name=0, region=2,
            meter_number=3, category=4, last_reading=5,
        )
        outcome = RecordBuilder(positions).from_fields(["Ali", "345123456789", "", "M", "", ""])

        assert outcome.record.account_number == "345123456789"
        assert outcome.record.subscriber_name == "Ali"


class TestFromMappingAndPair:
    def test_mapping_with_absent_fields(self):
        outcome = RecordBuilder().from_mapping({"account_number": 345123456789, "category": 22})

        assert outcome.record.account_number == "345123456789"
        assert outcome.record.region == ""
        assert outcome.record.category == Category.AGRICULTURAL

    def test_pair_uses_pdf_defaults(self):
        pair = ExtractedPair(account_number="341234567890", meter_number="55012")

        record = RecordBuilder().from_pair(pair).record

        assert record.key == ("341234567890", "55012")
        row = record.to_row()
        for key, value in PDF_RECORD_DEFAULTS.items():
            assert row[key] == value
        assert row["subscriber_name"] is None


class TestRunContext:
    def test_counts_rejections_and_preview(self):
        builder = RecordBuilder()
        context = RunContext(preview_limit=2)
        rows = [
            ["1", "A", "", "M1", "", ""],
            ["2", "B", "", "M2", "", ""],
            ["", "", "", "", "", ""],
            ["3"],
            ["3", "C", "", "M3", "", ""],
        ]

        for number, fields in enumerate(rows, start=2):
            context.record_outcome(builder.from_fields(fields), number)

        assert context.rows_seen == 5
        assert context.accepted == 3
        assert context.rejected == 2
        assert [r.account_number for r in context.preview] == ["1", "2"]
        assert context.summary()["rejections"] == {
            "ALL_FIELDS_EMPTY": 1,
            "INSUFFICIENT_COLUMNS": 1,
        }
        assert context.messages[0].startswith("Row 4: ALL_FIELDS_EMPTY")

    def test_messages_are_bounded(self):
        context = RunContext(max_messages=2)
        builder = RecordBuilder()

        for _ in range(5):
            context.record_outcome(builder.from_fields([]))
        context.note("extra")

        assert context.rejected == 5
        assert len(context.messages) == 2
