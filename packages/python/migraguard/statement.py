"""Parsed statements and their plain-data view."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlglot import exp

from . import nodes
from .nodes import AlterAction, ConstraintType, DropBehavior, ObjectType

if TYPE_CHECKING:
    from sqlglot.expressions import Expression


class StatementKind(str, Enum):
    """Closed set of statement shapes the rules understand."""

    CREATE_TABLE = "CREATE_TABLE"
    CREATE_INDEX = "CREATE_INDEX"
    CREATE_EXTENSION = "CREATE_EXTENSION"
    CREATE_OTHER = "CREATE_OTHER"
    ALTER_TABLE = "ALTER_TABLE"
    DROP = "DROP"
    TRUNCATE = "TRUNCATE"
    REINDEX = "REINDEX"
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    COMMAND = "COMMAND"
    OTHER = "OTHER"


_DML_KINDS = {
    exp.Select: StatementKind.SELECT,
    exp.Union: StatementKind.SELECT,
    exp.Insert: StatementKind.INSERT,
    exp.Update: StatementKind.UPDATE,
    exp.Delete: StatementKind.DELETE,
}


def classify(expression: Expression) -> StatementKind:
    """Map a sqlglot statement root to a StatementKind."""
    if isinstance(expression, exp.Create):
        kind = (expression.args.get("kind") or "").upper()
        if kind == "TABLE":
            return StatementKind.CREATE_TABLE
        if kind == "INDEX":
            return StatementKind.CREATE_INDEX
        if kind == "EXTENSION":
            return StatementKind.CREATE_EXTENSION
        return StatementKind.CREATE_OTHER
    if isinstance(expression, exp.Alter):
        if (expression.args.get("kind") or "").upper() == "TABLE":
            return StatementKind.ALTER_TABLE
        return StatementKind.OTHER
    if isinstance(expression, exp.Drop):
        return StatementKind.DROP
    if isinstance(expression, exp.TruncateTable):
        return StatementKind.TRUNCATE
    if isinstance(expression, exp.Command):
        text = nodes.command_text(expression).upper()
        if text.startswith("REINDEX"):
            return StatementKind.REINDEX
        if text.split()[:2] == ["CREATE", "EXTENSION"]:
            return StatementKind.CREATE_EXTENSION
        return StatementKind.COMMAND
    for cls, kind in _DML_KINDS.items():
        if isinstance(expression, cls):
            return kind
    return StatementKind.OTHER


@dataclass(frozen=True)
class Statement:
    """One parsed SQL statement.

    Rules receive the statement read-only; ``expression`` is the sqlglot tree
    and must not be mutated.

    Attributes:
        kind: Statement shape.
        expression: Root of the sqlglot syntax tree.
    """

    kind: StatementKind
    expression: Expression

    @classmethod
    def from_expression(cls, expression: Expression) -> Statement:
        return cls(kind=classify(expression), expression=expression)

    def sql(self) -> str:
        """Normalised Postgres rendering of the statement."""
        if isinstance(self.expression, exp.Command):
            return nodes.command_text(self.expression)
        return self.expression.sql(dialect="postgres")

    @property
    def is_concurrent(self) -> bool:
        if self.kind == StatementKind.REINDEX:
            return nodes.reindex_is_concurrent(self.sql())
        return bool(self.expression.args.get("concurrently"))

    # -- plain-data view ---------------------------------------------------

    def to_view(self) -> dict[str, Any]:
        """Serialize the statement into plain data for scripted rules.

        The view only contains dicts, lists, strings, ints, bools and None.
        A fresh copy is built on every call.
        """
        view: dict[str, Any] = {
            "kind": self.kind.value,
            "sql": self.sql(),
            "object_type": int(ObjectType.OTHER),
        }
        builder = _VIEW_BUILDERS.get(self.kind)
        if builder is not None:
            view.update(builder(self))
        return view


def _create_index_view(statement: Statement) -> dict[str, Any]:
    create = statement.expression
    index = create.this
    return {
        "object_type": int(ObjectType.INDEX),
        "name": nodes.identifier_name(index.this) if isinstance(index, exp.Index) else "",
        "table": nodes.index_table(index),
        "columns": nodes.index_columns(index),
        "unique": bool(create.args.get("unique")),
        "concurrent": statement.is_concurrent,
    }


def _constraint_view(constraint: nodes.TableConstraint) -> dict[str, Any]:
    return {
        "type": int(constraint.ctype),
        "name": constraint.name,
        "columns": list(constraint.columns),
    }


def _column_view(coldef: exp.ColumnDef) -> dict[str, Any]:
    return {
        "name": coldef.name,
        "type": nodes.column_type_name(coldef),
        "constraints": [
            {"type": int(ctype), "name": None, "columns": [coldef.name]}
            for ctype, _ in nodes.column_constraints(coldef)
        ],
    }


def _create_table_view(statement: Statement) -> dict[str, Any]:
    create = statement.expression
    return {
        "object_type": int(ObjectType.TABLE),
        "table": nodes.qualified_table_name(create.this),
        "columns": [_column_view(c) for c in nodes.create_table_columns(create)],
        "constraints": [_constraint_view(c) for c in nodes.create_table_constraints(create)],
        "unlogged": nodes.is_unlogged(create),
    }


def _action_view(action: Expression) -> dict[str, Any]:
    atype = nodes.alter_action_type(action)
    view: dict[str, Any] = {"type": int(atype)}
    if atype == AlterAction.ADD_COLUMN:
        view["column"] = _column_view(action)
    elif atype in (AlterAction.DROP_COLUMN, AlterAction.DROP_CONSTRAINT):
        view["name"] = nodes.dropped_name(action)
        view["behavior"] = int(nodes.drop_behavior(action))
    elif atype == AlterAction.ADD_CONSTRAINT:
        view["constraints"] = [_constraint_view(c) for c in nodes.added_constraints(action)]
    elif atype == AlterAction.RENAME_COLUMN:
        view["name"] = nodes.identifier_name(action.this)
        view["new_name"] = nodes.identifier_name(action.args.get("to"))
    elif atype == AlterAction.RENAME_TABLE:
        view["new_name"] = nodes.table_name(action.this)
    elif isinstance(action, exp.AlterColumn):
        view["name"] = nodes.identifier_name(action.this)
        dtype = action.args.get("dtype")
        if dtype is not None:
            view["new_type"] = dtype.sql(dialect="postgres")
    return view


def _alter_table_view(statement: Statement) -> dict[str, Any]:
    alter = statement.expression
    return {
        "object_type": int(ObjectType.TABLE),
        "table": nodes.qualified_table_name(alter.this),
        "actions": [_action_view(a) for a in nodes.alter_actions(alter)],
    }


def _drop_view(statement: Statement) -> dict[str, Any]:
    drop = statement.expression
    return {
        "object_type": int(nodes.object_type(drop.args.get("kind"))),
        "names": nodes.drop_targets(drop),
        "if_exists": bool(drop.args.get("exists")),
        "behavior": int(nodes.drop_behavior(drop)),
        "concurrent": statement.is_concurrent,
    }


def _truncate_view(statement: Statement) -> dict[str, Any]:
    return {
        "object_type": int(ObjectType.TABLE),
        "tables": [nodes.qualified_table_name(t) for t in statement.expression.expressions],
    }


def _reindex_view(statement: Statement) -> dict[str, Any]:
    target_type, target = nodes.reindex_target(statement.sql())
    return {
        "object_type": int(nodes.object_type(target_type)),
        "target_type": target_type,
        "target": target,
        "concurrent": statement.is_concurrent,
    }


def _extension_view(statement: Statement) -> dict[str, Any]:
    words = [w for w in statement.sql().split() if w.upper() not in {"IF", "NOT", "EXISTS"}]
    return {
        "object_type": int(ObjectType.EXTENSION),
        "name": words[2].strip('"').rstrip(";") if len(words) > 2 else "",
    }


_VIEW_BUILDERS = {
    StatementKind.CREATE_INDEX: _create_index_view,
    StatementKind.CREATE_TABLE: _create_table_view,
    StatementKind.CREATE_EXTENSION: _extension_view,
    StatementKind.ALTER_TABLE: _alter_table_view,
    StatementKind.DROP: _drop_view,
    StatementKind.TRUNCATE: _truncate_view,
    StatementKind.REINDEX: _reindex_view,
}


def pg_constants() -> dict[str, int]:
    """Named integer codes used in statement views.

    Exposed to scripts as ``pg.OBJECT_TABLE``, ``pg.AT_ADD_COLUMN``,
    ``pg.CONSTR_PRIMARY``, ``pg.DROP_CASCADE`` and so on.
    """
    constants: dict[str, int] = {}
    for prefix, enum in (
        ("OBJECT_", ObjectType),
        ("AT_", AlterAction),
        ("CONSTR_", ConstraintType),
        ("DROP_", DropBehavior),
    ):
        for member in enum:
            constants[prefix + member.name] = int(member)
    return constants
