"""Tests for safety-assured exemption blocks."""

import pytest

from migraguard.directives import IgnoreRange, build_ignore_ranges, is_exempt
from migraguard.exceptions import (
    DirectiveError,
    NestedBlockError,
    UnclosedBlockError,
    UnmatchedEndError,
)


class TestBuildIgnoreRanges:
    """Test the directive scanner."""

    def test_no_directives(self) -> None:
        """Text without directives has no exempt ranges."""
        assert build_ignore_ranges("CREATE INDEX idx ON t (a);\nDROP TABLE t;\n") == []

    def test_single_block(self) -> None:
        """Lines strictly between the directives are exempt."""
        sql = (
            "SELECT 1;\n"  # 1
            "-- safety-assured:start\n"  # 2
            "CREATE INDEX idx ON t (a);\n"  # 3
            "DROP TABLE old;\n"  # 4
            "-- safety-assured:end\n"  # 5
            "SELECT 2;\n"  # 6
        )
        ranges = build_ignore_ranges(sql)
        assert ranges == [IgnoreRange(start_line=3, end_line=4)]

    def test_directive_lines_are_not_exempt(self) -> None:
        sql = "-- safety-assured:start\nCREATE INDEX idx ON t (a);\n-- safety-assured:end\n"
        ranges = build_ignore_ranges(sql)
        assert not is_exempt(1, ranges)
        assert is_exempt(2, ranges)
        assert not is_exempt(3, ranges)

    def test_multiple_blocks(self) -> None:
        sql = "\n".join(
            [
                "-- safety-assured:start",
                "a",
                "-- safety-assured:end",
                "b",
                "-- safety-assured:start",
                "c",
                "d",
                "-- safety-assured:end",
            ]
        )
        assert build_ignore_ranges(sql) == [IgnoreRange(2, 2), IgnoreRange(6, 7)]

    @pytest.mark.parametrize(
        "directive",
        [
            "-- SAFETY-ASSURED:START",
            "--safety-assured:start",
            "    -- Safety-Assured:Start (backfill on a new table)",
            "-- reviewed by dba: safety-assured:start",
        ],
    )
    def test_directive_matching_is_case_insensitive(self, directive: str) -> None:
        """Directives are recognised in any case and anywhere in a comment line."""
        sql = f"{directive}\nCREATE INDEX idx ON t (a);\n-- safety-assured:END\n"
        assert build_ignore_ranges(sql) == [IgnoreRange(2, 2)]

    def test_token_outside_comment_is_ignored(self) -> None:
        """A token that is not on a comment line is not a directive."""
        sql = "SELECT 'safety-assured:start';\nSELECT 1;\n"
        assert build_ignore_ranges(sql) == []

    def test_empty_block_exempts_nothing(self) -> None:
        sql = "-- safety-assured:start\n-- safety-assured:end\nCREATE INDEX idx ON t (a);\n"
        assert build_ignore_ranges(sql) == []


class TestDirectiveErrors:
    """Malformed blocks are fatal to the whole unit."""

    def test_lone_end(self) -> None:
        with pytest.raises(UnmatchedEndError) as exc_info:
            build_ignore_ranges("SELECT 1;\n-- safety-assured:end\n")
        assert exc_info.value.line == 2

    def test_nested_start(self) -> None:
        """start, start, end is rejected at the second start."""
        sql = (
            "-- safety-assured:start\n"
            "SELECT 1;\n"
            "-- safety-assured:start\n"
            "SELECT 2;\n"
            "-- safety-assured:end\n"
        )
        with pytest.raises(NestedBlockError) as exc_info:
            build_ignore_ranges(sql)
        assert exc_info.value.line == 3

    def test_unclosed_block(self) -> None:
        """An unclosed block is reported at the last line of the input."""
        sql = "SELECT 1;\n-- safety-assured:start\nSELECT 2;\nSELECT 3;"
        with pytest.raises(UnclosedBlockError) as exc_info:
            build_ignore_ranges(sql)
        assert exc_info.value.line == 4

    def test_errors_share_a_base_class(self) -> None:
        for error in (UnmatchedEndError(1), NestedBlockError(1), UnclosedBlockError(1)):
            assert isinstance(error, DirectiveError)
            assert "line 1" in str(error)


class TestIgnoreRange:
    def test_contains_is_inclusive(self) -> None:
        r = IgnoreRange(3, 5)
        assert 2 not in r
        assert 3 in r
        assert 5 in r
        assert 6 not in r
