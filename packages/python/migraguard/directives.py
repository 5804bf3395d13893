"""Safety-assured exemption blocks.

A migration can wrap statements it knows to be safe in a pair of comment
directives; no rule runs for statements inside the block::

    -- safety-assured:start
    CREATE INDEX idx_users_email ON users (email);
    -- safety-assured:end
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .exceptions import NestedBlockError, UnclosedBlockError, UnmatchedEndError

START_TOKEN = "safety-assured:start"
END_TOKEN = "safety-assured:end"

_DIRECTIVE = re.compile(
    r"^\s*--.*\bsafety-assured:(?P<which>start|end)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class IgnoreRange:
    """Inclusive line interval, excluding the directive lines themselves.

    Attributes:
        start_line: First exempt line (line after the start directive).
        end_line: Last exempt line (line before the end directive).
    """

    start_line: int
    end_line: int

    def __contains__(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


def build_ignore_ranges(sql: str) -> list[IgnoreRange]:
    """Scan ``sql`` for paired directives and return the exempt ranges.

    Blocks cannot nest. A block with no lines between its directives exempts
    nothing and produces no range.

    Raises:
        UnmatchedEndError: An end directive with no open block.
        NestedBlockError: A start directive inside an open block.
        UnclosedBlockError: Input ended with a block still open.
    """
    ranges: list[IgnoreRange] = []
    open_line: int | None = None
    line_number = 0

    for line_number, line in enumerate(sql.splitlines(), start=1):
        match = _DIRECTIVE.match(line)
        if match is None:
            continue
        if match.group("which").lower() == "start":
            if open_line is not None:
                raise NestedBlockError(line_number)
            open_line = line_number
        else:
            if open_line is None:
                raise UnmatchedEndError(line_number)
            if line_number - open_line > 1:
                ranges.append(IgnoreRange(open_line + 1, line_number - 1))
            open_line = None

    if open_line is not None:
        raise UnclosedBlockError(max(line_number, open_line))
    return ranges


def is_exempt(line: int, ranges: list[IgnoreRange]) -> bool:
    return any(line in r for r in ranges)
