"""Rules for adding, changing, renaming and dropping columns."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlglot import exp

from .. import nodes
from ..nodes import AlterAction, ConstraintType
from ..statement import StatementKind
from .base import NativeRule
from .registry import RuleCatalog

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlglot.expressions import Expression

    from ..config import RunConfig
    from ..result import Violation
    from ..statement import Statement

_ALTER = frozenset({StatementKind.ALTER_TABLE})
_ALTER_OR_CREATE = frozenset({StatementKind.ALTER_TABLE, StatementKind.CREATE_TABLE})


def _actions(statement: Statement, atype: AlterAction) -> Iterator[Expression]:
    for action in nodes.alter_actions(statement.expression):
        if nodes.alter_action_type(action) == atype:
            yield action


def _added_columns(statement: Statement) -> Iterator[exp.ColumnDef]:
    """Column definitions added by ALTER TABLE ... ADD COLUMN."""
    yield from _actions(statement, AlterAction.ADD_COLUMN)


def _declared_columns(statement: Statement) -> Iterator[exp.ColumnDef]:
    """Columns added by ALTER TABLE or declared by CREATE TABLE."""
    if statement.kind == StatementKind.CREATE_TABLE:
        yield from nodes.create_table_columns(statement.expression)
    else:
        yield from _added_columns(statement)


def _table(statement: Statement) -> str:
    return nodes.qualified_table_name(statement.expression.this)


class AddColumnDefaultRule(NativeRule):
    """Detects ADD COLUMN ... DEFAULT, which rewrites the table before PostgreSQL 11.

    From PostgreSQL 11 a constant default is stored in the catalog and no
    rewrite happens, so the rule is skipped when the target version is known
    to be 11 or later and the default is a literal.
    """

    @property
    def name(self) -> str:
        return "add-column-default"

    @property
    def description(self) -> str:
        return "Detects columns added with a DEFAULT that forces a full table rewrite."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for column in _added_columns(statement):
            if not nodes.column_has_constraint(column, ConstraintType.DEFAULT):
                continue
            if config.version_at_least(11) and nodes.is_constant(nodes.column_default(column)):
                continue
            data_type = nodes.column_type_name(column)
            violations.append(
                self._violation(
                    "ADD COLUMN with DEFAULT",
                    f"Adding column '{column.name}' with DEFAULT on table '{table}' requires a "
                    "full table rewrite on PostgreSQL < 11 (or with a volatile default), which "
                    "acquires an ACCESS EXCLUSIVE lock and blocks all operations. Duration "
                    "depends on table size.",
                    "Add the column without a default:\n"
                    f"   ALTER TABLE {table} ADD COLUMN {column.name} {data_type};",
                    "Backfill data in batches (outside the migration):\n"
                    f"   UPDATE {table} SET {column.name} = <value> WHERE {column.name} IS NULL;",
                    "Add the default for new rows only:\n"
                    f"   ALTER TABLE {table} ALTER COLUMN {column.name} SET DEFAULT <value>;",
                )
            )
        return violations


class AddJsonColumnRule(NativeRule):
    """Detects columns of type JSON where JSONB is almost always wanted."""

    @property
    def name(self) -> str:
        return "add-json-column"

    @property
    def description(self) -> str:
        return "Detects new JSON columns; JSON has no equality operator and is slower than JSONB."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        return [
            self._violation(
                "ADD COLUMN with JSON type",
                f"Column '{column.name}' on table '{table}' uses JSON. JSON has no equality "
                "operator, which breaks SELECT DISTINCT, UNION and GROUP BY on the table, and "
                "it is re-parsed on every access.",
                "Use JSONB instead:\n"
                f"   ALTER TABLE {table} ADD COLUMN {column.name} JSONB;",
            )
            for column in _added_columns(statement)
            if nodes.column_has_type(column, exp.DataType.Type.JSON)
        ]


class AddNotNullRule(NativeRule):
    """Detects ALTER COLUMN ... SET NOT NULL."""

    @property
    def name(self) -> str:
        return "add-not-null"

    @property
    def description(self) -> str:
        return "Detects SET NOT NULL, which scans the whole table under an ACCESS EXCLUSIVE lock."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for action in _actions(statement, AlterAction.SET_NOT_NULL):
            column = nodes.identifier_name(action.this)
            violations.append(
                self._violation(
                    "SET NOT NULL",
                    f"Setting column '{column}' NOT NULL on table '{table}' scans the whole "
                    "table while holding an ACCESS EXCLUSIVE lock, blocking all reads and "
                    "writes. Duration depends on table size.",
                    "Add a CHECK constraint without validating existing rows:\n"
                    f"   ALTER TABLE {table} ADD CONSTRAINT {column}_not_null "
                    f"CHECK ({column} IS NOT NULL) NOT VALID;",
                    "Validate it in a separate migration (takes a weaker lock):\n"
                    f"   ALTER TABLE {table} VALIDATE CONSTRAINT {column}_not_null;",
                    "On PostgreSQL 12+, SET NOT NULL then skips the scan; drop the CHECK after:\n"
                    f"   ALTER TABLE {table} ALTER COLUMN {column} SET NOT NULL;\n"
                    f"   ALTER TABLE {table} DROP CONSTRAINT {column}_not_null;",
                )
            )
        return violations


class AddSerialColumnRule(NativeRule):
    """Detects SERIAL and identity columns added to an existing table."""

    @property
    def name(self) -> str:
        return "add-serial-column"

    @property
    def description(self) -> str:
        return "Detects SERIAL or identity columns that rewrite the table to fill existing rows."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for column in _added_columns(statement):
            is_serial = nodes.column_has_type(column, *nodes.SERIAL_TYPES)
            if not (is_serial or nodes.column_has_constraint(column, ConstraintType.IDENTITY)):
                continue
            name = column.name
            sequence = f"{table}_{name}_seq"
            violations.append(
                self._violation(
                    "ADD COLUMN with SERIAL",
                    f"Adding column '{name}' with {nodes.column_type_name(column)} on table "
                    f"'{table}' requires a full table rewrite to populate sequence values for "
                    "existing rows, which acquires an ACCESS EXCLUSIVE lock and blocks all "
                    "operations.",
                    f"Create a sequence:\n   CREATE SEQUENCE {sequence};",
                    "Add the column without a default:\n"
                    f"   ALTER TABLE {table} ADD COLUMN {name} BIGINT;",
                    "Backfill existing rows in batches (outside the migration):\n"
                    f"   UPDATE {table} SET {name} = nextval('{sequence}') WHERE {name} IS NULL;",
                    "Set the default for future rows:\n"
                    f"   ALTER TABLE {table} ALTER COLUMN {name} SET DEFAULT nextval('{sequence}');",
                )
            )
        return violations


class AlterColumnTypeRule(NativeRule):
    """Detects ALTER COLUMN ... TYPE."""

    @property
    def name(self) -> str:
        return "alter-column-type"

    @property
    def description(self) -> str:
        return "Detects column type changes, which usually rewrite the table."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for action in _actions(statement, AlterAction.ALTER_COLUMN_TYPE):
            column = nodes.identifier_name(action.this)
            new_type = action.args["dtype"].sql(dialect="postgres")
            violations.append(
                self._violation(
                    "ALTER COLUMN TYPE",
                    f"Changing column '{column}' to type '{new_type}' on table '{table}' "
                    "requires an ACCESS EXCLUSIVE lock and usually rewrites the table, "
                    "blocking all operations. Duration depends on table size.",
                    "Add a new column with the desired type:\n"
                    f"   ALTER TABLE {table} ADD COLUMN {column}_new {new_type};",
                    "Backfill it in batches (outside the migration):\n"
                    f"   UPDATE {table} SET {column}_new = {column}::{new_type};",
                    "Deploy application code that uses the new column.",
                    "Drop the old column and rename the new one in a later migration.",
                )
            )
        return violations


class CharTypeRule(NativeRule):
    """Flags CHAR(n) columns; fixed-length, space-padded strings are rarely wanted."""

    @property
    def name(self) -> str:
        return "char-type"

    @property
    def description(self) -> str:
        return "Detects CHAR columns, which pad values with spaces and waste storage."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER_OR_CREATE

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        return [
            self._violation(
                "Column with CHAR type",
                f"Column '{column.name}' on table '{table}' uses "
                f"{nodes.column_type_name(column)}, which is fixed-length and padded with "
                "spaces. This wastes storage and causes subtle comparison bugs. No locking "
                "impact.",
                f"Use TEXT or VARCHAR instead:\n   {column.name} TEXT",
                "If a length limit is needed, add a CHECK constraint:\n"
                f"   {column.name} TEXT CHECK (length({column.name}) <= <n>)",
            )
            for column in _declared_columns(statement)
            if nodes.column_has_type(column, exp.DataType.Type.CHAR)
        ]


class DropColumnRule(NativeRule):
    """Detects ALTER TABLE ... DROP COLUMN."""

    @property
    def name(self) -> str:
        return "drop-column"

    @property
    def description(self) -> str:
        return "Detects column removal while application code may still reference the column."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for action in _actions(statement, AlterAction.DROP_COLUMN):
            column = nodes.dropped_name(action)
            violations.append(
                self._violation(
                    "DROP COLUMN",
                    f"Dropping column '{column}' from table '{table}' acquires an ACCESS "
                    "EXCLUSIVE lock, and running application code that still selects or "
                    "writes the column will fail once it is gone.",
                    "Remove every reference to the column from application code.",
                    "Deploy the application without the column references.",
                    "Drop the column in a later migration:\n"
                    f"   ALTER TABLE {table} DROP COLUMN {column};",
                )
            )
        return violations


class GeneratedColumnRule(NativeRule):
    """Detects GENERATED ALWAYS AS (...) STORED columns added to an existing table."""

    @property
    def name(self) -> str:
        return "generated-column"

    @property
    def description(self) -> str:
        return "Detects stored generated columns, which rewrite the table to compute values."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        return [
            self._violation(
                "ADD COLUMN with GENERATED STORED",
                f"Adding column '{column.name}' with GENERATED ALWAYS AS ... STORED on table "
                f"'{table}' rewrites the table to compute the value for every existing row, "
                "holding an ACCESS EXCLUSIVE lock that blocks all operations.",
                "Add a regular nullable column instead:\n"
                f"   ALTER TABLE {table} ADD COLUMN {column.name} "
                f"{nodes.column_type_name(column)};",
                "Backfill values in batches (outside the migration):\n"
                f"   UPDATE {table} SET {column.name} = <expression> WHERE {column.name} IS NULL;",
                "Keep the column up to date for new rows with a trigger.",
            )
            for column in _added_columns(statement)
            if nodes.column_has_constraint(column, ConstraintType.GENERATED)
        ]


class RenameColumnRule(NativeRule):
    """Detects ALTER TABLE ... RENAME COLUMN."""

    @property
    def name(self) -> str:
        return "rename-column"

    @property
    def description(self) -> str:
        return "Detects column renames, which break running application code."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        violations = []
        for action in _actions(statement, AlterAction.RENAME_COLUMN):
            old = nodes.identifier_name(action.this)
            new = nodes.identifier_name(action.args.get("to"))
            violations.append(
                self._violation(
                    "RENAME COLUMN",
                    f"Renaming column '{old}' to '{new}' on table '{table}' breaks running "
                    "application instances that still use the old name.",
                    "Add the new column:\n"
                    f"   ALTER TABLE {table} ADD COLUMN {new} <type>;",
                    "Write to both columns from the application and backfill the new one.",
                    "Switch reads to the new column, then drop the old one in a later migration.",
                )
            )
        return violations


class TimestampTypeRule(NativeRule):
    """Flags TIMESTAMP columns without time zone."""

    @property
    def name(self) -> str:
        return "timestamp-type"

    @property
    def description(self) -> str:
        return "Detects TIMESTAMP WITHOUT TIME ZONE columns; TIMESTAMPTZ is almost always right."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return _ALTER_OR_CREATE

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = _table(statement)
        return [
            self._violation(
                "Column with TIMESTAMP type",
                f"Column '{column.name}' on table '{table}' uses TIMESTAMP without time zone. "
                "Values are stored without timezone context, which causes errors across "
                "timezones and DST transitions. No locking impact.",
                f"Use TIMESTAMPTZ instead:\n   {column.name} TIMESTAMPTZ",
            )
            for column in _declared_columns(statement)
            if nodes.column_has_type(column, exp.DataType.Type.TIMESTAMP)
        ]


# Register rules
_catalog = RuleCatalog.get_instance()
_catalog.register(AddColumnDefaultRule())
_catalog.register(AddJsonColumnRule())
_catalog.register(AddNotNullRule())
_catalog.register(AddSerialColumnRule())
_catalog.register(AlterColumnTypeRule())
_catalog.register(CharTypeRule())
_catalog.register(DropColumnRule())
_catalog.register(GeneratedColumnRule())
_catalog.register(RenameColumnRule())
_catalog.register(TimestampTypeRule())
