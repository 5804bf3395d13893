"""Rules for statements that destroy or rename whole objects."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .. import nodes
from ..nodes import AlterAction, ObjectType
from ..statement import StatementKind
from .base import NativeRule
from .registry import RuleCatalog

if TYPE_CHECKING:
    from ..config import RunConfig
    from ..result import Violation
    from ..statement import Statement


class CreateExtensionRule(NativeRule):
    """Flags CREATE EXTENSION in application migrations."""

    @property
    def name(self) -> str:
        return "create-extension"

    @property
    def description(self) -> str:
        return "Detects CREATE EXTENSION, which usually needs superuser privileges."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.CREATE_EXTENSION})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        extension = statement.to_view().get("name") or "<extension>"
        return [
            self._violation(
                "CREATE EXTENSION",
                f"Creating extension '{extension}' usually requires superuser privileges, "
                "which the application's migration role should not have, and on managed "
                "Postgres services only allow-listed extensions can be installed.",
                "Install the extension once, outside application migrations, as an "
                f"administrator:\n   CREATE EXTENSION IF NOT EXISTS {extension};",
            )
        ]


class DropDatabaseRule(NativeRule):
    """Detects DROP DATABASE."""

    @property
    def name(self) -> str:
        return "drop-database"

    @property
    def description(self) -> str:
        return "Detects DROP DATABASE, which permanently deletes every object in the database."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.DROP})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        drop = statement.expression
        if nodes.object_type(drop.args.get("kind")) != ObjectType.DATABASE:
            return []
        return [
            self._violation(
                "DROP DATABASE",
                f"Dropping database '{name}' permanently deletes the entire database, "
                "including all tables and data. It needs exclusive access and cannot run "
                "inside a transaction block.",
                "Confirm with the database owner that the database is scheduled for removal.",
                f"Take a complete backup first:\n   pg_dump -Fc {name} > {name}_backup.dump",
                "Drop the database outside of application migrations.",
            )
            for name in nodes.drop_targets(drop)
        ]


class DropTableRule(NativeRule):
    """Detects DROP TABLE."""

    @property
    def name(self) -> str:
        return "drop-table"

    @property
    def description(self) -> str:
        return "Detects DROP TABLE, which deletes data and breaks code still using the table."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.DROP})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        drop = statement.expression
        if nodes.object_type(drop.args.get("kind")) != ObjectType.TABLE:
            return []
        cascade = nodes.drop_behavior(drop) == nodes.DropBehavior.CASCADE
        extra = " CASCADE also drops every dependent view and foreign key." if cascade else ""
        return [
            self._violation(
                "DROP TABLE",
                f"Dropping table '{name}' permanently deletes its data and acquires an ACCESS "
                f"EXCLUSIVE lock. Running application code that still uses it will fail.{extra}",
                "Remove every reference to the table from application code and deploy.",
                "Back up the data if it may be needed again.",
                f"Drop the table in a later migration:\n   DROP TABLE IF EXISTS {name};",
            )
            for name in nodes.drop_targets(drop)
        ]


class RenameTableRule(NativeRule):
    """Detects ALTER TABLE ... RENAME TO."""

    @property
    def name(self) -> str:
        return "rename-table"

    @property
    def description(self) -> str:
        return "Detects table renames, which break running application code."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.ALTER_TABLE})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        table = nodes.qualified_table_name(statement.expression.this)
        violations = []
        for action in nodes.alter_actions(statement.expression):
            if nodes.alter_action_type(action) != AlterAction.RENAME_TABLE:
                continue
            new_name = nodes.table_name(action.this)
            violations.append(
                self._violation(
                    "RENAME TABLE",
                    f"Renaming table '{table}' to '{new_name}' breaks running application "
                    "instances that still use the old name.",
                    "Create the new table and write to both tables from the application.",
                    "Backfill the new table, switch reads to it, then drop the old table "
                    "in a later migration.",
                    "Alternatively, rename the table and create a view with the old name "
                    f"until all code is updated:\n   CREATE VIEW {table} AS SELECT * FROM {new_name};",
                )
            )
        return violations


class TruncateTableRule(NativeRule):
    """Detects TRUNCATE."""

    @property
    def name(self) -> str:
        return "truncate-table"

    @property
    def description(self) -> str:
        return "Detects TRUNCATE, which deletes all rows under an ACCESS EXCLUSIVE lock."

    @property
    def statement_kinds(self) -> frozenset[StatementKind]:
        return frozenset({StatementKind.TRUNCATE})

    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]:
        tables = [nodes.qualified_table_name(t) for t in statement.expression.expressions]
        return [
            self._violation(
                "TRUNCATE TABLE",
                f"Truncating table '{table}' deletes every row and acquires an ACCESS "
                "EXCLUSIVE lock, blocking all reads and writes until the transaction ends.",
                "Delete rows in batches instead:\n"
                f"   DELETE FROM {table} WHERE id IN (SELECT id FROM {table} LIMIT 1000);",
            )
            for table in tables
        ]


# Register rules
_catalog = RuleCatalog.get_instance()
_catalog.register(CreateExtensionRule())
_catalog.register(DropDatabaseRule())
_catalog.register(DropTableRule())
_catalog.register(RenameTableRule())
_catalog.register(TruncateTableRule())
