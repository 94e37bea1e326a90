"""Unit tests for the quote-aware delimited codec."""

from __future__ import annotations

import pytest

from ejibaya.canonical.delimited import iter_records, parse_line, write_row


class TestParseLine:
    def test_quoted_fields_with_embedded_delimiter(self):
        line = '"345123456789","Ali, A.","North","M-001","9","120"'

        assert parse_line(line) == ["345123456789", "Ali, A.", "North", "M-001", "9", "120"]

    def test_escaped_quote(self):
        assert parse_line('"say ""hi""",x') == ['say "hi"', "x"]

    def test_trailing_empty_field_is_kept(self):
        assert parse_line("a,b,") == ["a", "b", ""]

    def test_fields_are_not_trimmed(self):
        assert parse_line(" a , b") == [" a ", " b"]

    def test_unbalanced_quote_does_not_raise(self):
        assert parse_line('"open,field') == ["open,field"]

    def test_custom_delimiter(self):
        assert parse_line("a;b,c", delimiter=";") == ["a", "b,c"]

    def test_delimiter_must_be_single_character(self):
        with pytest.raises(ValueError):
            parse_line("a,b", delimiter=",,")


class TestRoundTrip:
    @pytest.mark.parametrize(
        "fields",
        [
            ["plain", "Ali, A.", 'quote "inside"', "line\nbreak", ""],
            ["  spaced  ", '"', ",", "\r\n"],
            [""],
        ],
    )
    def test_parse_inverts_write(self, fields):
        assert parse_line(write_row(fields)) == fields

    def test_round_trip_with_semicolon(self):
        fields = ["a;b", "c,d"]
        assert parse_line(write_row(fields, ";"), ";") == fields


class TestIterRecords:
    def test_quoted_newline_stays_in_field(self):
        text = 'h1,h2\n"x\ny",z\n'

        assert list(iter_records(text)) == [(1, ["h1", "h2"]), (2, ["x\ny", "z"])]

    def test_crlf_and_blank_lines(self):
        text = "a,b\r\n\r\nc,d\r\n"

        assert list(iter_records(text)) == [(1, ["a", "b"]), (3, ["c", "d"])]

    def test_keep_blank_lines(self):
        records = list(iter_records("a\n\nb", skip_blank=False))

        assert records == [(1, ["a"]), (2, [""]), (3, ["b"])]

    def test_quoted_crlf_preserved(self):
        text = '1,"a\r\nb"\r\n2,c\r\n'

        assert list(iter_records(text)) == [(1, ["1", "a\r\nb"]), (3, ["2", "c"])]
