"""Map parsed statements back to source lines.

sqlglot does not keep source positions on statement roots, so the line of
each statement is recovered by searching the text for its leading keyword.
This is a heuristic: two statements on one line, or a statement whose first
keyword sits on a later line than it starts, can be attributed to the wrong
line. When no line matches at all the statement is assigned line 1 and a
diagnostic is emitted.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from sqlglot import exp

from .diagnostics import DiagnosticKind
from .statement import StatementKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .diagnostics import Diagnostics
    from .statement import Statement

logger = logging.getLogger(__name__)

DEFAULT_LINE = 1

_LEADING_KEYWORDS = {
    StatementKind.CREATE_TABLE: "CREATE",
    StatementKind.CREATE_INDEX: "CREATE",
    StatementKind.CREATE_EXTENSION: "CREATE",
    StatementKind.CREATE_OTHER: "CREATE",
    StatementKind.ALTER_TABLE: "ALTER",
    StatementKind.DROP: "DROP",
    StatementKind.TRUNCATE: "TRUNCATE",
    StatementKind.REINDEX: "REINDEX",
    StatementKind.SELECT: "SELECT",
    StatementKind.INSERT: "INSERT",
    StatementKind.UPDATE: "UPDATE",
    StatementKind.DELETE: "DELETE",
}

_FIRST_WORD = re.compile(r"\s*([A-Za-z_]+)")


def leading_keyword(statement: Statement) -> str:
    """The keyword a statement's source text is expected to start with."""
    expression = statement.expression
    if any(isinstance(value, exp.With) for value in expression.args.values()):
        return "WITH"
    keyword = _LEADING_KEYWORDS.get(statement.kind)
    if keyword is not None:
        return keyword
    if isinstance(expression, exp.Command):
        return expression.text("this").upper()
    match = _FIRST_WORD.match(statement.sql())
    return match.group(1).upper() if match else ""


def _first_word(line: str) -> str | None:
    if line.lstrip().startswith("--"):
        return None
    match = _FIRST_WORD.match(line)
    return match.group(1).upper() if match else None


def _preview(statement: Statement, width: int = 60) -> str:
    text = " ".join(statement.sql().split())
    return text if len(text) <= width else text[: width - 3] + "..."


def correlate_lines(
    sql: str,
    statements: Sequence[Statement],
    diagnostics: Diagnostics | None = None,
) -> dict[int, int]:
    """Assign each statement index a 1-based source line.

    Statements are matched in order; each search starts just after the line
    consumed by the previous match, and a matched line is never reused.
    """
    lines = sql.splitlines()
    first_words = [_first_word(line) for line in lines]
    cursor = 0
    mapping: dict[int, int] = {}

    for index, statement in enumerate(statements):
        keyword = leading_keyword(statement)
        found = None
        for position in range(cursor, len(lines)):
            if first_words[position] == keyword:
                found = position
                break

        if found is None:
            mapping[index] = DEFAULT_LINE
            message = (
                f"No source line starts with {keyword or '<unknown>'} for statement "
                f"'{_preview(statement)}'; reporting it at line {DEFAULT_LINE}"
            )
            if diagnostics is not None:
                diagnostics.emit(DiagnosticKind.LINE_CORRELATION_MISS, message, line=DEFAULT_LINE)
            else:
                logger.warning("%s", message)
            continue

        mapping[index] = found + 1
        cursor = found + 1

    return mapping
