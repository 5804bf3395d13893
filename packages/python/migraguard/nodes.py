"""Navigation helpers over sqlglot expressions.

These are the only functions that know how sqlglot shapes DDL trees, so the
rules and the scripted-rule view stay independent of its internals.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from sqlglot import exp

if TYPE_CHECKING:
    from sqlglot.expressions import Expression


class ObjectType(IntEnum):
    """Object kinds targeted by DDL statements."""

    TABLE = 1
    INDEX = 2
    COLUMN = 3
    DATABASE = 4
    SCHEMA = 5
    SEQUENCE = 6
    VIEW = 7
    FUNCTION = 8
    EXTENSION = 9
    TRIGGER = 10
    TYPE = 11
    CONSTRAINT = 12
    OTHER = 99


class AlterAction(IntEnum):
    """Sub-commands of ALTER TABLE."""

    ADD_COLUMN = 1
    DROP_COLUMN = 2
    ALTER_COLUMN_TYPE = 3
    COLUMN_DEFAULT = 4
    SET_NOT_NULL = 5
    DROP_NOT_NULL = 6
    ADD_CONSTRAINT = 7
    DROP_CONSTRAINT = 8
    RENAME_COLUMN = 9
    RENAME_TABLE = 10
    OTHER = 99


class ConstraintType(IntEnum):
    """Column and table constraint kinds."""

    NOTNULL = 1
    DEFAULT = 2
    IDENTITY = 3
    GENERATED = 4
    CHECK = 5
    PRIMARY = 6
    UNIQUE = 7
    FOREIGN = 8
    OTHER = 99


class DropBehavior(IntEnum):
    RESTRICT = 1
    CASCADE = 2


_OBJECT_TYPES = {member.name: member for member in ObjectType}

# sqlglot keys for the rename-table action; the class was renamed across releases.
_RENAME_TABLE_KEYS = frozenset({"alterrename", "renametable"})

SHORT_INTEGER_TYPES = frozenset(
    {
        exp.DataType.Type.SMALLINT,
        exp.DataType.Type.INT,
        exp.DataType.Type.SMALLSERIAL,
        exp.DataType.Type.SERIAL,
    }
)
SERIAL_TYPES = frozenset(
    {
        exp.DataType.Type.SMALLSERIAL,
        exp.DataType.Type.SERIAL,
        exp.DataType.Type.BIGSERIAL,
    }
)


def object_type(kind: str | None) -> ObjectType:
    return _OBJECT_TYPES.get((kind or "").upper(), ObjectType.OTHER)


def identifier_name(node: Expression | None) -> str:
    """Best-effort plain name for a column, identifier or ordered expression."""
    while isinstance(node, exp.Ordered):
        node = node.this
    if node is None:
        return ""
    if isinstance(node, (exp.Column, exp.Identifier, exp.Table)):
        return node.name
    return node.sql(dialect="postgres")


def table_name(node: Expression | None) -> str:
    if isinstance(node, exp.Schema):
        node = node.this
    if isinstance(node, exp.Table):
        return node.name
    return identifier_name(node)


def qualified_table_name(node: Expression | None) -> str:
    if isinstance(node, exp.Schema):
        node = node.this
    if isinstance(node, exp.Table):
        return ".".join(part.name for part in node.parts)
    return identifier_name(node)


# ---------------------------------------------------------------------------
# CREATE INDEX
# ---------------------------------------------------------------------------


def index_columns(index: Expression | None) -> list[str]:
    if not isinstance(index, exp.Index):
        return []
    params = index.args.get("params")
    source = params if params is not None else index
    return [identifier_name(col) for col in source.args.get("columns") or []]


def index_table(index: Expression | None) -> str:
    if not isinstance(index, exp.Index):
        return ""
    return table_name(index.args.get("table"))


# ---------------------------------------------------------------------------
# Column definitions and constraints
# ---------------------------------------------------------------------------


def column_type(coldef: exp.ColumnDef) -> exp.DataType | None:
    kind = coldef.args.get("kind")
    return kind if isinstance(kind, exp.DataType) else None


def column_type_name(coldef: exp.ColumnDef) -> str:
    dtype = column_type(coldef)
    return dtype.sql(dialect="postgres") if dtype is not None else ""


def column_has_type(coldef: exp.ColumnDef, *types: exp.DataType.Type) -> bool:
    dtype = column_type(coldef)
    return dtype is not None and dtype.this in types


def constraint_type(kind: Expression | None) -> ConstraintType:
    """Classify a column or table constraint node."""
    if isinstance(kind, exp.NotNullColumnConstraint):
        return ConstraintType.OTHER if kind.args.get("allow_null") else ConstraintType.NOTNULL
    if isinstance(kind, exp.DefaultColumnConstraint):
        return ConstraintType.DEFAULT
    if isinstance(kind, exp.ComputedColumnConstraint):
        return ConstraintType.GENERATED
    if isinstance(kind, exp.GeneratedAsIdentityColumnConstraint):
        if kind.args.get("expression") is not None:
            return ConstraintType.GENERATED
        return ConstraintType.IDENTITY
    if isinstance(kind, exp.CheckColumnConstraint):
        return ConstraintType.CHECK
    if isinstance(kind, (exp.PrimaryKeyColumnConstraint, exp.PrimaryKey)):
        return ConstraintType.PRIMARY
    if isinstance(kind, exp.UniqueColumnConstraint):
        return ConstraintType.UNIQUE
    if isinstance(kind, (exp.ForeignKey, exp.Reference)):
        return ConstraintType.FOREIGN
    return ConstraintType.OTHER


def column_constraints(coldef: exp.ColumnDef) -> list[tuple[ConstraintType, Expression]]:
    found = []
    for constraint in coldef.args.get("constraints") or []:
        kind = constraint.args.get("kind") if isinstance(constraint, exp.ColumnConstraint) else constraint
        found.append((constraint_type(kind), kind))
    return found


def column_has_constraint(coldef: exp.ColumnDef, ctype: ConstraintType) -> bool:
    return any(found == ctype for found, _ in column_constraints(coldef))


def column_default(coldef: exp.ColumnDef) -> Expression | None:
    for ctype, kind in column_constraints(coldef):
        if ctype == ConstraintType.DEFAULT:
            return kind.this
    return None


def is_constant(node: Expression | None) -> bool:
    """True for literal defaults that PostgreSQL 11+ can add without a rewrite."""
    if isinstance(node, exp.Neg):
        node = node.this
    if isinstance(node, exp.Cast):
        node = node.this
    return isinstance(node, (exp.Literal, exp.Boolean, exp.Null))


@dataclass(frozen=True)
class TableConstraint:
    """A constraint declared at table level (CREATE TABLE body or ALTER TABLE ADD).

    Attributes:
        ctype: Constraint kind.
        name: Explicit constraint name, or None when Postgres will generate one.
        columns: Column names the constraint covers, if any.
        node: The underlying sqlglot node.
    """

    ctype: ConstraintType
    name: str | None
    columns: list[str]
    node: Expression

    def label(self) -> str:
        return {
            ConstraintType.PRIMARY: "PRIMARY KEY",
            ConstraintType.FOREIGN: "FOREIGN KEY",
        }.get(self.ctype, self.ctype.name)


def _constraint_columns(kind: Expression) -> list[str]:
    if isinstance(kind, exp.UniqueColumnConstraint):
        schema = kind.this
        if isinstance(schema, exp.Schema):
            return [identifier_name(e) for e in schema.expressions]
        return []
    if isinstance(kind, (exp.PrimaryKey, exp.ForeignKey)):
        return [identifier_name(e) for e in kind.expressions]
    return []


def table_constraints(node: Expression) -> list[TableConstraint]:
    """Flatten named (``CONSTRAINT x ...``) and unnamed table constraints."""
    if isinstance(node, exp.Constraint):
        name = node.name or None
        return [
            TableConstraint(constraint_type(kind), name, _constraint_columns(kind), kind)
            for kind in node.expressions
        ]
    ctype = constraint_type(node)
    if ctype == ConstraintType.OTHER:
        return []
    return [TableConstraint(ctype, None, _constraint_columns(node), node)]


# ---------------------------------------------------------------------------
# CREATE TABLE
# ---------------------------------------------------------------------------


def create_table_columns(create: exp.Create) -> list[exp.ColumnDef]:
    schema = create.this
    if not isinstance(schema, exp.Schema):
        return []
    return [e for e in schema.expressions if isinstance(e, exp.ColumnDef)]


def create_table_constraints(create: exp.Create) -> list[TableConstraint]:
    schema = create.this
    if not isinstance(schema, exp.Schema):
        return []
    found: list[TableConstraint] = []
    for e in schema.expressions:
        if not isinstance(e, exp.ColumnDef):
            found.extend(table_constraints(e))
    return found


def is_unlogged(create: exp.Create) -> bool:
    properties = create.args.get("properties")
    if properties is None:
        return False
    return any(isinstance(p, exp.UnloggedProperty) for p in properties.expressions)


# ---------------------------------------------------------------------------
# ALTER TABLE
# ---------------------------------------------------------------------------


def alter_actions(expression: Expression) -> list[Expression]:
    if not isinstance(expression, exp.Alter):
        return []
    return list(expression.args.get("actions") or [])


def alter_action_type(action: Expression) -> AlterAction:
    if isinstance(action, exp.ColumnDef):
        return AlterAction.ADD_COLUMN
    if isinstance(action, exp.AddConstraint):
        return AlterAction.ADD_CONSTRAINT
    if isinstance(action, exp.Drop):
        kind = (action.args.get("kind") or "").upper()
        if kind in {"COLUMN", "COLUMNS", ""}:
            return AlterAction.DROP_COLUMN
        if kind == "CONSTRAINT":
            return AlterAction.DROP_CONSTRAINT
        return AlterAction.OTHER
    if isinstance(action, exp.AlterColumn):
        if action.args.get("dtype") is not None:
            return AlterAction.ALTER_COLUMN_TYPE
        if action.args.get("default") is not None or action.args.get("drop"):
            return AlterAction.COLUMN_DEFAULT
        allow_null = action.args.get("allow_null")
        if allow_null is False:
            return AlterAction.SET_NOT_NULL
        if allow_null is True:
            return AlterAction.DROP_NOT_NULL
        return AlterAction.OTHER
    if isinstance(action, exp.RenameColumn):
        return AlterAction.RENAME_COLUMN
    if action.key in _RENAME_TABLE_KEYS:
        return AlterAction.RENAME_TABLE
    return AlterAction.OTHER


def added_constraints(action: Expression) -> list[TableConstraint]:
    """Constraints introduced by an ``ALTER TABLE ... ADD`` action."""
    if not isinstance(action, exp.AddConstraint):
        return []
    found: list[TableConstraint] = []
    for part in action.expressions:
        found.extend(table_constraints(part))
    return found


def drop_target_nodes(drop: exp.Drop) -> list[Expression]:
    """Objects named by a DROP; newer sqlglot keeps them under ``tables``."""
    targets = list(drop.args.get("tables") or [])
    if not targets and drop.this is not None:
        targets.append(drop.this)
    targets.extend(drop.expressions)
    return targets


def dropped_name(action: Expression) -> str:
    """Column or constraint named by an ``ALTER TABLE ... DROP`` action."""
    if not isinstance(action, exp.Drop):
        return ""
    targets = drop_target_nodes(action)
    return identifier_name(targets[0]) if targets else ""


def drop_targets(drop: exp.Drop) -> list[str]:
    return [qualified_table_name(t) for t in drop_target_nodes(drop)]


def drop_behavior(drop: exp.Drop) -> DropBehavior:
    return DropBehavior.CASCADE if drop.args.get("cascade") else DropBehavior.RESTRICT


def command_text(command: exp.Command) -> str:
    """Full text of an opaque command, e.g. ``REINDEX INDEX idx``."""
    head = command.text("this").upper()
    rest = command.text("expression").strip()
    return f"{head} {rest}".strip()


# REINDEX [ ( option [, ...] ) ] { INDEX | TABLE | SCHEMA | DATABASE | SYSTEM } [ CONCURRENTLY ] name
_REINDEX = re.compile(
    r"^REINDEX\s*(?:\([^)]*\)\s*)?(\w+)(?:\s+(?:CONCURRENTLY\s+)?(\S+))?",
    re.IGNORECASE,
)
_CONCURRENTLY = re.compile(r"\bCONCURRENTLY\b", re.IGNORECASE)


def reindex_target(text: str) -> tuple[str, str]:
    """Target kind (upper-cased) and name of a REINDEX command."""
    match = _REINDEX.match(text.strip())
    if match is None:
        return "", ""
    return match.group(1).upper(), (match.group(2) or "").rstrip(";")


def reindex_is_concurrent(text: str) -> bool:
    return _CONCURRENTLY.search(text) is not None
