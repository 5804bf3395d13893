"""SQL parsing on top of sqlglot's Postgres grammar."""

from __future__ import annotations

import logging
import re

from sqlglot import exp
from sqlglot.dialects.postgres import Postgres
from sqlglot.errors import ParseError as SqlglotParseError
from sqlglot.errors import TokenError
from sqlglot.tokens import TokenType

from .exceptions import ParseError
from .nodes import command_text
from .statement import Statement

logger = logging.getLogger(__name__)


class MigrationDialect(Postgres):
    """Postgres dialect that keeps ``REINDEX`` as an opaque command.

    sqlglot has no REINDEX grammar; tokenizing it as a command hands the rest
    of the statement through verbatim instead of failing the whole unit.
    """

    class Tokenizer(Postgres.Tokenizer):
        KEYWORDS = {
            **Postgres.Tokenizer.KEYWORDS,
            "REINDEX": TokenType.COMMAND,
        }


# DDL that the rules must see structurally. When sqlglot can only keep one of
# these as an opaque Command, the grammar did not understand it.
_STRUCTURAL_DDL = re.compile(
    r"^(CREATE\s+(UNIQUE\s+)?INDEX|CREATE\s+TABLE|DROP\s+(TABLE|INDEX))\b",
    re.IGNORECASE,
)

# ALTER TABLE sub-commands the rules inspect. Other opaque forms such as
# VALIDATE CONSTRAINT or OWNER TO pass through as commands.
_INSPECTED_ALTER = re.compile(
    r"^ALTER\s+TABLE\s+.*?\b(ADD|DROP|ALTER|RENAME)\b",
    re.IGNORECASE | re.DOTALL,
)


class Parser:
    """Grammar adapter: SQL text in, statements or a ParseError out.

    Parsing is pure; the same text always yields the same statements.

    Example:
        >>> statements = Parser().parse("CREATE INDEX idx ON t (a);")
        >>> statements[0].kind
        <StatementKind.CREATE_INDEX: 'CREATE_INDEX'>
    """

    def __init__(self) -> None:
        self._dialect = MigrationDialect()

    def parse(self, sql: str) -> list[Statement]:
        """Parse every statement in ``sql``.

        Raises:
            ParseError: The grammar rejected the text, or could only keep a
                structural DDL statement as unparsed text.
        """
        try:
            expressions = self._dialect.parse(sql)
        except SqlglotParseError as e:
            raise _convert_parse_error(e) from e
        except TokenError as e:
            raise ParseError(str(e)) from e

        statements = []
        for expression in expressions:
            if expression is None:
                continue
            if isinstance(expression, exp.Command):
                _reject_opaque_ddl(sql, expression)
            statements.append(Statement.from_expression(expression))

        logger.debug("Parsed %d statement(s)", len(statements))
        return statements


def _convert_parse_error(error: SqlglotParseError) -> ParseError:
    details = error.errors[0] if error.errors else {}
    reason = details.get("description") or str(error)
    return ParseError(reason, line=details.get("line"), col=details.get("col"))


def _reject_opaque_ddl(sql: str, command: exp.Command) -> None:
    text = command_text(command)
    if not (_STRUCTURAL_DDL.match(text) or _INSPECTED_ALTER.match(text)):
        return
    raw = command.text("this") + command.text("expression")
    offset = sql.find(raw)
    if offset < 0:
        raise ParseError(f"unsupported syntax: {_preview(text)}")
    line = sql.count("\n", 0, offset) + 1
    col = offset - (sql.rfind("\n", 0, offset) + 1) + 1
    raise ParseError(f"unsupported syntax: {_preview(text)}", line=line, col=col)


def _preview(text: str, width: int = 60) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."
