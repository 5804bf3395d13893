"""Rules for index creation, removal and rebuilding."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlglot import exp

from .. import nodes
from ..nodes import ObjectType
from ..statement import StatementKind
from .base import NativeRule
from .registry import RuleCatalog

if TYPE_CHECKING:
    from ..config import RunConfig
    from ..result import Violation
    from ..statement import Statement

MAX_INDEX_COLUMNS = 3


def _index_parts(statement: Statement) -> tuple[str, str, list[str], bool]:
    create = statement.expression
    index = create.this
    name = nodes.identifier_name(index.this) if isinstance(index, exp.Index) else ""
    return (
        name or "<unnamed>",
        nodes.index_table(index),
        nodes.index_columns(index),
        bool(create.args.get("unique")),
    )


class AddIndexRule(NativeRule):
    """Detects CREATE INDEX without CONCURRENTLY.

    A plain CREATE INDEX holds a SHARE lock on the table for the whole build,
    which blocks INSERT, UPDATE and DELETE. Reads continue.
    """

    @property
    def name(self) -> str:
        return "add-index"

    @property
    def description(self) -> str:
        return "Detects index creation that blocks writes because CONCURRENTLY is missing."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.CREATE_INDEX})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        if statement.is_concurrent:
            return []

        index, table, columns, unique = _index_parts(statement)
        prefix = "UNIQUE " if unique else ""
        cols = ", ".join(columns)
        return [
            self._violation(
                f"CREATE {prefix}INDEX without CONCURRENTLY",
                f"Creating index '{index}' on table '{table}' without CONCURRENTLY acquires a "
                "SHARE lock, blocking writes (INSERT, UPDATE, DELETE) until the index is built. "
                "Duration depends on table size.",
                "Create the index concurrently (cannot run inside a transaction block):\n"
                f"   CREATE {prefix}INDEX CONCURRENTLY {index} ON {table} ({cols});",
                "If the build fails it leaves an INVALID index behind; drop it and retry:\n"
                f"   DROP INDEX CONCURRENTLY IF EXISTS {index};",
            )
        ]


class DropIndexRule(NativeRule):
    """Detects DROP INDEX without CONCURRENTLY."""

    @property
    def name(self) -> str:
        return "drop-index"

    @property
    def description(self) -> str:
        return "Detects index removal that blocks all queries because CONCURRENTLY is missing."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.DROP})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        drop = statement.expression
        if nodes.object_type(drop.args.get("kind")) != ObjectType.INDEX:
            return []
        if statement.is_concurrent:
            return []

        if_exists = " IF EXISTS" if drop.args.get("exists") else ""
        return [
            self._violation(
                "DROP INDEX without CONCURRENTLY",
                f"Dropping index '{name}'{if_exists} without CONCURRENTLY acquires an ACCESS "
                "EXCLUSIVE lock, blocking all queries (SELECT, INSERT, UPDATE, DELETE) on the "
                "table until complete.",
                "Drop the index concurrently (cannot run inside a transaction block):\n"
                f"   DROP INDEX CONCURRENTLY{if_exists} {name};",
            )
            for name in nodes.drop_targets(drop)
        ]


class ReindexRule(NativeRule):
    """Detects REINDEX without CONCURRENTLY (available from PostgreSQL 12)."""

    @property
    def name(self) -> str:
        return "reindex"

    @property
    def description(self) -> str:
        return "Detects REINDEX that blocks all operations because CONCURRENTLY is missing."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.REINDEX})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        if statement.is_concurrent:
            return []

        target_type, target = nodes.reindex_target(statement.sql())
        if target_type not in {"INDEX", "TABLE", "SCHEMA", "DATABASE"}:
            return []
        return [
            self._violation(
                "REINDEX without CONCURRENTLY",
                f"REINDEX {target_type} '{target}' without CONCURRENTLY acquires an ACCESS "
                f"EXCLUSIVE lock, blocking all operations on the {target_type.lower()} until "
                "complete. Duration depends on index size.",
                "Rebuild concurrently (PostgreSQL 12+, cannot run inside a transaction block):\n"
                f"   REINDEX {target_type} CONCURRENTLY {target};",
            )
        ]


class WideIndexRule(NativeRule):
    """Flags indexes over more than three columns."""

    @property
    def name(self) -> str:
        return "wide-index"

    @property
    def description(self) -> str:
        return (
            f"Detects indexes with more than {MAX_INDEX_COLUMNS} columns, which are rarely "
            "used efficiently and slow down writes."
        )

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.CREATE_INDEX})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        index, table, columns, _ = _index_parts(statement)
        if len(columns) <= MAX_INDEX_COLUMNS:
            return []

        return [
            self._violation(
                "CREATE INDEX with too many columns",
                f"Index '{index}' on table '{table}' has {len(columns)} columns "
                f"({', '.join(columns)}). Postgres can only use a multi-column index "
                "efficiently when filtering on its leftmost columns, and every extra column "
                "adds storage and write overhead.",
                "Use a partial index for the specific query pattern:\n"
                f"   CREATE INDEX CONCURRENTLY {index} ON {table} ({columns[0]}) WHERE <condition>;",
                "Or create narrower indexes for the queries that need them:\n"
                f"   CREATE INDEX CONCURRENTLY idx_{table}_{columns[0]} ON {table} ({columns[0]});",
            )
        ]


# Register rules
_catalog = RuleCatalog.get_instance()
_catalog.register(AddIndexRule())
_catalog.register(DropIndexRule())
_catalog.register(ReindexRule())
_catalog.register(WideIndexRule())
