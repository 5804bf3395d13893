"""Rules for primary keys, unique constraints and constraint naming."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .. import nodes
from ..nodes import AlterAction, ConstraintType
from ..statement import StatementKind
from .base import NativeRule
from .registry import RuleCatalog

if TYPE_CHECKING:
    from sqlglot import exp

    from ..config import RunConfig
    from ..nodes import TableConstraint
    from ..result import Violation
    from ..statement import Statement

_ALTER = frozenset({StatementKind.ALTER_TABLE})


def _added_constraints(statement: Statement) -> list[TableConstraint]:
    found: list[TableConstraint] = []
    for action in nodes.alter_actions(statement.expression):
        found.extend(nodes.added_constraints(action))
    return found


def _table(statement: Statement) -> str:
    return nodes.qualified_table_name(statement.expression.this)


class AddPrimaryKeyRule(NativeRule):
    """Detects ALTER TABLE ... ADD PRIMARY KEY on an existing table."""

    @property
    def name(self) -> str:
        return "add-primary-key"

    @property
    def description(self) -> str:
        return "Detects primary keys added in place, which build an index under an exclusive lock."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for constraint in _added_constraints(statement):
            if constraint.ctype != ConstraintType.PRIMARY:
                continue
            cols = ", ".join(constraint.columns)
            index = f"{table}_pkey"
            violations.append(
                self._violation(
                    "ADD PRIMARY KEY",
                    f"Adding a PRIMARY KEY on table '{table}' ({cols}) builds its index while "
                    "holding an ACCESS EXCLUSIVE lock, blocking all reads and writes. "
                    "Duration depends on table size.",
                    "Build the unique index concurrently:\n"
                    f"   CREATE UNIQUE INDEX CONCURRENTLY {index} ON {table} ({cols});",
                    "Promote the index to a primary key (brief lock only):\n"
                    f"   ALTER TABLE {table} ADD CONSTRAINT {index} PRIMARY KEY USING INDEX {index};",
                )
            )
        return violations


class AddUniqueConstraintRule(NativeRule):
    """Detects ALTER TABLE ... ADD UNIQUE built in place."""

    @property
    def name(self) -> str:
        return "add-unique-constraint"

    @property
    def description(self) -> str:
        return "Detects unique constraints that build their index under an exclusive lock."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for constraint in _added_constraints(statement):
            if constraint.ctype != ConstraintType.UNIQUE:
                continue
            cols = ", ".join(constraint.columns)
            name = constraint.name or "<unnamed>"
            index = constraint.name or f"{table}_unique_idx"
            violations.append(
                self._violation(
                    "ADD UNIQUE constraint",
                    f"Adding UNIQUE constraint '{name}' on table '{table}' ({cols}) via ALTER "
                    "TABLE acquires an ACCESS EXCLUSIVE lock, blocking all reads and writes "
                    "during index creation. Duration depends on table size.",
                    "Create the unique index concurrently:\n"
                    f"   CREATE UNIQUE INDEX CONCURRENTLY {index} ON {table} ({cols});",
                    "Add the constraint using the existing index:\n"
                    f"   ALTER TABLE {table} ADD CONSTRAINT {index} UNIQUE USING INDEX {index};",
                )
            )
        return violations


class DropPrimaryKeyRule(NativeRule):
    """Detects dropping a primary key constraint (named ``<table>_pkey`` by convention)."""

    @property
    def name(self) -> str:
        return "drop-primary-key"

    @property
    def description(self) -> str:
        return "Detects primary key removal, which breaks replication and row identity."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for action in nodes.alter_actions(statement.expression):
            if nodes.alter_action_type(action) != AlterAction.DROP_CONSTRAINT:
                continue
            constraint = nodes.dropped_name(action)
            if not constraint.lower().endswith("_pkey"):
                continue
            violations.append(
                self._violation(
                    "DROP PRIMARY KEY",
                    f"Dropping primary key '{constraint}' on table '{table}' takes an ACCESS "
                    "EXCLUSIVE lock and removes row identity: logical replication, ORMs and "
                    "foreign keys that rely on it will break.",
                    "Make sure no replication slot, publication or foreign key depends on the key.",
                    "Add the replacement key before removing the old one.",
                )
            )
        return violations


class ShortIntPrimaryKeyRule(NativeRule):
    """Flags SMALLINT/INTEGER primary keys, which can run out of values."""

    @property
    def name(self) -> str:
        return "short-int-primary-key"

    @property
    def description(self) -> str:
        return "Detects primary keys on SMALLINT or INTEGER columns, which can overflow."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.CREATE_TABLE, StatementKind.ALTER_TABLE})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        if statement.kind == StatementKind.CREATE_TABLE:
            columns = nodes.create_table_columns(statement.expression)
            constraints = nodes.create_table_constraints(statement.expression)
        else:
            columns = [
                action
                for action in nodes.alter_actions(statement.expression)
                if nodes.alter_action_type(action) == AlterAction.ADD_COLUMN
            ]
            constraints = _added_constraints(statement)

        keyed = {c.name for c in columns if nodes.column_has_constraint(c, ConstraintType.PRIMARY)}
        for constraint in constraints:
            if constraint.ctype == ConstraintType.PRIMARY:
                keyed.update(constraint.columns)

        return [
            self._short_key(table, column)
            for column in columns
            if column.name in keyed and nodes.column_has_type(column, *nodes.SHORT_INTEGER_TYPES)
        ]

    def _short_key(self, table: str, column: exp.ColumnDef) -> Violation:
        type_name = nodes.column_type_name(column)
        return self._violation(
            "PRIMARY KEY with short integer type",
            f"Primary key column '{column.name}' on table '{table}' uses {type_name}, which "
            "overflows at about 2.1 billion rows (32 767 for SMALLINT). Changing the type "
            "later rewrites the table under an ACCESS EXCLUSIVE lock.",
            f"Use BIGINT (or BIGSERIAL) for the key:\n   {column.name} BIGINT PRIMARY KEY",
        )


class UnnamedConstraintRule(NativeRule):
    """Flags constraints added without an explicit name."""

    @property
    def name(self) -> str:
        return "unnamed-constraint"

    @property
    def description(self) -> str:
        return "Detects constraints without a name; generated names differ between databases."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        named_types = {ConstraintType.UNIQUE, ConstraintType.FOREIGN, ConstraintType.CHECK}
        violations = []
        for constraint in _added_constraints(statement):
            if constraint.name or constraint.ctype not in named_types:
                continue
            label = constraint.label()
            suffix = "_".join(constraint.columns) or label.lower().replace(" ", "_")
            violations.append(
                self._violation(
                    "CONSTRAINT without name",
                    f"Adding unnamed {label} constraint on table '{table}' gives it a name "
                    "generated by Postgres. The generated name can differ between databases, "
                    "so later migrations cannot reliably modify or drop it.",
                    "Name the constraint explicitly:\n"
                    f"   ALTER TABLE {table} ADD CONSTRAINT {table}_{suffix} {label} ...;",
                )
            )
        return violations


# Register rules
_catalog = RuleCatalog.get_instance()
_catalog.register(AddPrimaryKeyRule())
_catalog.register(AddUniqueConstraintRule())
_catalog.register(DropPrimaryKeyRule())
_catalog.register(ShortIntPrimaryKeyRule())
_catalog.register(UnnamedConstraintRule())
