"""Tests for mapping statements back to source lines."""

from migraguard.correlate import DEFAULT_LINE, correlate_lines, leading_keyword
from migraguard.diagnostics import DiagnosticKind, Diagnostics
from migraguard.parser import Parser


def _lines(sql: str, diagnostics: Diagnostics | None = None) -> dict[int, int]:
    return correlate_lines(sql, Parser().parse(sql), diagnostics)


class TestCorrelateLines:
    """Test the leading-keyword search."""

    def test_one_statement_per_line(self) -> None:
        sql = "CREATE INDEX idx ON t (a);\n\nDROP TABLE old;\nSELECT 1;\n"
        assert _lines(sql) == {0: 1, 1: 3, 2: 4}

    def test_multi_line_statement_maps_to_first_line(self) -> None:
        sql = (
            "SELECT 1;\n"
            "\n"
            "ALTER TABLE users\n"
            "    ADD COLUMN age INT;\n"
        )
        assert _lines(sql) == {0: 1, 1: 3}

    def test_comment_lines_are_skipped(self) -> None:
        """A keyword at the start of a comment is not a statement start."""
        sql = "-- DROP TABLE is coming below\nSELECT 1;\nDROP TABLE old;\n"
        assert _lines(sql) == {0: 2, 1: 3}

    def test_matched_lines_are_consumed(self) -> None:
        """Two statements with the same keyword map to two different lines."""
        sql = "DROP TABLE a;\nDROP TABLE b;\n"
        assert _lines(sql) == {0: 1, 1: 2}

    def test_indented_statement(self) -> None:
        sql = "SELECT 1;\n    CREATE INDEX idx ON t (a);\n"
        assert _lines(sql) == {0: 1, 1: 2}

    def test_miss_falls_back_to_line_one(self) -> None:
        """Two statements on one line: the second is reported at line 1."""
        diagnostics = Diagnostics()
        sql = "\nSELECT 1; CREATE INDEX idx ON t (a);\n"
        lines = _lines(sql, diagnostics)

        assert lines == {0: 2, 1: DEFAULT_LINE}
        misses = diagnostics.of_kind(DiagnosticKind.LINE_CORRELATION_MISS)
        assert len(misses) == 1
        assert "CREATE" in misses[0].message
        assert "idx" in misses[0].message

    def test_no_statements(self) -> None:
        assert correlate_lines("-- nothing\n", []) == {}


class TestLeadingKeyword:
    def test_keywords_by_kind(self) -> None:
        statements = Parser().parse(
            "CREATE INDEX idx ON t (a); ALTER TABLE t ADD COLUMN b INT; "
            "TRUNCATE TABLE t; REINDEX INDEX idx;"
        )
        assert [leading_keyword(s) for s in statements] == [
            "CREATE",
            "ALTER",
            "TRUNCATE",
            "REINDEX",
        ]

    def test_common_table_expression(self) -> None:
        statement = Parser().parse("WITH x AS (SELECT 1) SELECT * FROM x;")[0]
        assert leading_keyword(statement) == "WITH"
