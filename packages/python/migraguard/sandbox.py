"""Quota-bounded interpreter for user-authored rule scripts.

Rule scripts are written in a small subset of Python syntax. They are parsed
with :mod:`ast`, checked against a whitelist of node types, and executed by a
tree-walking interpreter; nothing is ever handed to ``exec`` or ``eval``.

Every statement, every expression evaluation and every loop iteration costs
one operation. Strings, lists and dicts are size-checked as they are built.
Exceeding a limit raises :class:`QuotaExceeded`, so a runaway script always
stops after a bounded amount of work.

Example script::

    if node["kind"] == "CREATE_INDEX" and not node["concurrent"]:
        return {
            "operation": "CREATE INDEX",
            "problem": f"Index {node['name']} is built without CONCURRENTLY",
            "solution": "1. Use CREATE INDEX CONCURRENTLY.",
        }
"""

from __future__ import annotations

import ast
import operator
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from .exceptions import ProtocolError, QuotaExceeded, ScriptError, ScriptRuntimeError
from .result import Violation

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

INT_MIN = -(2**63)
INT_MAX = 2**63 - 1

VIOLATION_FIELDS = ("operation", "problem", "solution")


@dataclass(frozen=True)
class SandboxLimits:
    """Per-invocation resource ceilings.

    Attributes:
        max_operations: Statements, expression evaluations and loop
            iterations allowed in one run.
        max_string_size: Longest string a script may build.
        max_list_size: Most elements in one list or tuple.
        max_dict_size: Most entries in one dict.
    """

    max_operations: int = 100_000
    max_string_size: int = 10_000
    max_list_size: int = 1_000
    max_dict_size: int = 1_000


class ConstantNamespace:
    """Read-only named integer constants, accessed as ``pg.NAME`` in scripts."""

    def __init__(self, values: Mapping[str, int]) -> None:
        self._values = MappingProxyType(dict(values))

    def lookup(self, name: str) -> int:
        try:
            return self._values[name]
        except KeyError:
            raise ScriptRuntimeError(f"unknown constant '{name}'") from None

    def names(self) -> list[str]:
        return sorted(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __repr__(self) -> str:
        return f"<constants: {len(self._values)}>"


@dataclass(frozen=True)
class CompiledScript:
    """A validated script, ready to run any number of times.

    Attributes:
        name: Rule name the script was registered under.
        tree: Validated syntax tree.
    """

    name: str
    tree: ast.Module


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

_ALLOWED_NODES = (
    # statements
    ast.Module,
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.If,
    ast.For,
    ast.While,
    ast.Break,
    ast.Continue,
    ast.Return,
    ast.Pass,
    # expressions
    ast.Constant,
    ast.Name,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.Dict,
    ast.List,
    ast.Tuple,
    ast.BinOp,
    ast.UnaryOp,
    ast.BoolOp,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.ListComp,
    ast.comprehension,
    # contexts and operators
    ast.Load,
    ast.Store,
    ast.And,
    ast.Or,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.FloorDiv,
    ast.Mod,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
    ast.Is,
    ast.IsNot,
)

_CONSTANT_TYPES = (str, int, float, bool, type(None))


class _Validator:
    """Rejects every construct the interpreter does not support."""

    def __init__(self, name: str, limits: SandboxLimits) -> None:
        self._name = name
        self._limits = limits

    def fail(self, node: ast.AST, message: str) -> None:
        raise ScriptError(self._name, message, getattr(node, "lineno", None))

    def check(self, tree: ast.Module) -> None:
        for node in ast.walk(tree):
            if not isinstance(node, _ALLOWED_NODES):
                self.fail(node, f"{type(node).__name__} is not allowed in rule scripts")
            self._check_node(node)
        self._check_loop_control(tree.body, in_loop=False)

    def _check_node(self, node: ast.AST) -> None:
        if isinstance(node, ast.Constant):
            if not isinstance(node.value, _CONSTANT_TYPES):
                self.fail(node, f"{type(node.value).__name__} literals are not allowed")
            if isinstance(node.value, str) and len(node.value) > self._limits.max_string_size:
                self.fail(node, "string literal exceeds the maximum string size")
        elif isinstance(node, ast.Name):
            if node.id.startswith("_"):
                self.fail(node, f"name '{node.id}' is not allowed")
        elif isinstance(node, ast.Attribute):
            if node.attr.startswith("_") or not isinstance(node.ctx, ast.Load):
                self.fail(node, f"attribute '{node.attr}' is not allowed")
        elif isinstance(node, ast.Call):
            if node.keywords:
                self.fail(node, "keyword arguments are not supported")
            if not isinstance(node.func, (ast.Name, ast.Attribute)):
                self.fail(node, "only named functions and methods can be called")
        elif isinstance(node, ast.Dict):
            if any(key is None for key in node.keys):
                self.fail(node, "dict unpacking is not supported")
        elif isinstance(node, ast.FormattedValue):
            if node.format_spec is not None:
                self.fail(node, "format specifications are not supported")
        elif isinstance(node, ast.comprehension):
            if node.is_async:
                self.fail(node, "async comprehensions are not supported")
            self._check_target(node.target, allow_subscript=False)
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                self._check_target(target, allow_subscript=True)
        elif isinstance(node, ast.AugAssign):
            if not isinstance(node.target, (ast.Name, ast.Subscript)):
                self.fail(node, "unsupported augmented assignment target")
        elif isinstance(node, ast.For):
            self._check_target(node.target, allow_subscript=False)

    def _check_target(self, target: ast.AST, allow_subscript: bool) -> None:
        if isinstance(target, ast.Name):
            return
        if isinstance(target, ast.Subscript) and allow_subscript:
            if isinstance(target.slice, ast.Slice):
                self.fail(target, "slice assignment is not supported")
            return
        if isinstance(target, (ast.Tuple, ast.List)):
            for element in target.elts:
                if not isinstance(element, ast.Name):
                    self.fail(target, "only names can be unpacked into")
            return
        self.fail(target, "unsupported assignment target")

    def _check_loop_control(self, body: list[ast.stmt], in_loop: bool) -> None:
        for stmt in body:
            if isinstance(stmt, (ast.Break, ast.Continue)) and not in_loop:
                self.fail(stmt, f"'{type(stmt).__name__.lower()}' outside loop")
            if isinstance(stmt, (ast.For, ast.While)):
                self._check_loop_control(stmt.body, in_loop=True)
                self._check_loop_control(stmt.orelse, in_loop=in_loop)
            elif isinstance(stmt, ast.If):
                self._check_loop_control(stmt.body, in_loop=in_loop)
                self._check_loop_control(stmt.orelse, in_loop=in_loop)


def compile_script(name: str, source: str, limits: SandboxLimits | None = None) -> CompiledScript:
    """Parse and validate a rule script.

    Raises:
        ScriptError: The script is not valid Python syntax or uses a
            construct outside the supported subset.
    """
    limits = limits or SandboxLimits()
    try:
        tree = ast.parse(source, filename=f"<rule {name}>", mode="exec")
    except SyntaxError as e:
        raise ScriptError(name, e.msg, e.lineno) from e
    except (ValueError, RecursionError, MemoryError) as e:
        raise ScriptError(name, str(e) or type(e).__name__) from e
    _Validator(name, limits).check(tree)
    return CompiledScript(name=name, tree=tree)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class _Return(Exception):
    def __init__(self, value: Any) -> None:
        super().__init__()
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


@dataclass(frozen=True)
class _Builtin:
    name: str

    def __repr__(self) -> str:
        return f"<builtin {self.name}>"


@dataclass(frozen=True)
class _BoundMethod:
    target: Any
    name: str

    def __repr__(self) -> str:
        return f"<method {type(self.target).__name__}.{self.name}>"


_BUILTINS = {
    name: _Builtin(name)
    for name in ("len", "str", "int", "bool", "min", "max", "any", "all", "sorted", "range", "abs")
}

_METHODS = {
    str: frozenset(
        {
            "lower",
            "upper",
            "strip",
            "lstrip",
            "rstrip",
            "startswith",
            "endswith",
            "split",
            "join",
            "replace",
            "find",
            "count",
            "isdigit",
        }
    ),
    list: frozenset({"append", "extend", "insert", "pop", "index", "count"}),
    dict: frozenset({"get", "keys", "values", "items"}),
}

_ARITHMETIC = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_COMPARISONS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

# Host exceptions a misbehaving script can provoke; all become ScriptRuntimeError.
_SCRIPT_FAULTS = (
    TypeError,
    ValueError,
    KeyError,
    IndexError,
    ZeroDivisionError,
    OverflowError,
    AttributeError,
    RecursionError,
)


class _Interpreter:
    def __init__(self, script: CompiledScript, limits: SandboxLimits, bindings: dict[str, Any]):
        self._script = script
        self._limits = limits
        self._env = bindings
        self._operations = 0
        self._line = 0

    # -- accounting --------------------------------------------------------

    def charge(self, count: int = 1) -> None:
        self._operations += count
        if self._operations > self._limits.max_operations:
            raise QuotaExceeded(
                f"line {self._line}: operation limit of {self._limits.max_operations} exceeded"
            )

    def reserve(self, kind: type, size: int) -> None:
        """Fail before building a ``kind`` value of ``size`` elements if it is too big."""
        if kind is str:
            limit, unit = self._limits.max_string_size, "characters"
        elif kind is dict:
            limit, unit = self._limits.max_dict_size, "entries"
        else:
            limit, unit = self._limits.max_list_size, "elements"
        if size > limit:
            raise QuotaExceeded(
                f"line {self._line}: {kind.__name__} of {size} {unit} exceeds limit of {limit}"
            )

    def check_size(self, value: Any) -> Any:
        if isinstance(value, (str, list, tuple, dict)):
            self.reserve(type(value), len(value))
        elif isinstance(value, int) and not isinstance(value, bool):
            if not INT_MIN <= value <= INT_MAX:
                raise ScriptRuntimeError(f"line {self._line}: integer overflow")
        return value

    def render(self, value: Any, quoted: bool = False) -> str:
        """``str(value)`` (or ``repr`` when ``quoted``), built piece by piece.

        Each element costs one operation and the text is size-checked as it
        grows, so nested containers cannot expand past the string limit.
        """
        parts: list[str] = []
        length = 0
        active: set[int] = set()

        def emit(text: str) -> None:
            nonlocal length
            length += len(text)
            self.reserve(str, length)
            parts.append(text)

        def walk(item: Any, quoted: bool) -> None:
            self.charge()
            if isinstance(item, (list, tuple, dict)):
                if id(item) in active:
                    emit("{...}" if isinstance(item, dict) else "[...]")
                    return
                active.add(id(item))
                if isinstance(item, dict):
                    emit("{")
                    for index, (key, element) in enumerate(item.items()):
                        if index:
                            emit(", ")
                        walk(key, True)
                        emit(": ")
                        walk(element, True)
                    emit("}")
                else:
                    emit("[" if isinstance(item, list) else "(")
                    for index, element in enumerate(item):
                        if index:
                            emit(", ")
                        walk(element, True)
                    if isinstance(item, tuple):
                        emit(",)" if len(item) == 1 else ")")
                    else:
                        emit("]")
                active.discard(id(item))
            else:
                emit(repr(item) if quoted else str(item))

        walk(value, quoted)
        return "".join(parts)

    def iterate(self, value: Any) -> Iterator[Any]:
        if isinstance(value, dict):
            value = list(value)
        elif not isinstance(value, (list, tuple, str)):
            raise ScriptRuntimeError(
                f"line {self._line}: '{type(value).__name__}' object is not iterable"
            )
        for item in value:
            self.charge()
            yield item

    # -- entry point -------------------------------------------------------

    def run(self) -> Any:
        try:
            self.exec_block(self._script.tree.body)
        except _Return as r:
            return r.value
        except ScriptRuntimeError:
            raise
        except MemoryError as e:
            raise QuotaExceeded(f"line {self._line}: out of memory") from e
        except _SCRIPT_FAULTS as e:
            raise ScriptRuntimeError(f"line {self._line}: {type(e).__name__}: {e}") from e
        return None

    # -- statements --------------------------------------------------------

    def exec_block(self, body: list[ast.stmt]) -> None:
        for stmt in body:
            self.exec_stmt(stmt)

    def exec_stmt(self, stmt: ast.stmt) -> None:
        self._line = stmt.lineno
        self.charge()
        env = self._env

        if isinstance(stmt, ast.Expr):
            self.eval(stmt.value, env)
        elif isinstance(stmt, ast.Assign):
            value = self.eval(stmt.value, env)
            for target in stmt.targets:
                self.assign(target, value, env)
        elif isinstance(stmt, ast.AugAssign):
            self.aug_assign(stmt, env)
        elif isinstance(stmt, ast.If):
            if self.eval(stmt.test, env):
                self.exec_block(stmt.body)
            else:
                self.exec_block(stmt.orelse)
        elif isinstance(stmt, ast.For):
            for item in self.iterate(self.eval(stmt.iter, env)):
                self.assign(stmt.target, item, env)
                try:
                    self.exec_block(stmt.body)
                except _Break:
                    break
                except _Continue:
                    continue
            else:
                self.exec_block(stmt.orelse)
        elif isinstance(stmt, ast.While):
            while self.eval(stmt.test, env):
                self.charge()
                try:
                    self.exec_block(stmt.body)
                except _Break:
                    break
                except _Continue:
                    continue
            else:
                self.exec_block(stmt.orelse)
        elif isinstance(stmt, ast.Break):
            raise _Break()
        elif isinstance(stmt, ast.Continue):
            raise _Continue()
        elif isinstance(stmt, ast.Return):
            raise _Return(self.eval(stmt.value, env) if stmt.value is not None else None)
        elif isinstance(stmt, ast.Pass):
            pass
        else:
            raise ScriptRuntimeError(f"line {self._line}: unsupported statement")

    def assign(self, target: ast.AST, value: Any, env: dict[str, Any]) -> None:
        if isinstance(target, ast.Name):
            env[target.id] = value
        elif isinstance(target, (ast.Tuple, ast.List)):
            if not isinstance(value, (list, tuple)) or len(value) != len(target.elts):
                raise ScriptRuntimeError(f"line {self._line}: cannot unpack value")
            for element, item in zip(target.elts, value):
                self.assign(element, item, env)
        elif isinstance(target, ast.Subscript):
            container = self.eval(target.value, env)
            key = self.eval(target.slice, env)
            self.store_item(container, key, value)
        else:
            raise ScriptRuntimeError(f"line {self._line}: unsupported assignment target")

    def aug_assign(self, stmt: ast.AugAssign, env: dict[str, Any]) -> None:
        operand = self.eval(stmt.value, env)
        target = stmt.target
        if isinstance(target, ast.Name):
            current = self.lookup(target.id, env)
            env[target.id] = self.binop(stmt.op, current, operand)
            return
        container = self.eval(target.value, env)
        key = self.eval(target.slice, env)
        self.store_item(container, key, self.binop(stmt.op, container[key], operand))

    def store_item(self, container: Any, key: Any, value: Any) -> None:
        if isinstance(container, list):
            container[key] = value
        elif isinstance(container, dict):
            container[key] = value
            self.check_size(container)
        elif isinstance(container, ConstantNamespace):
            raise ScriptRuntimeError(f"line {self._line}: constants are read-only")
        else:
            raise ScriptRuntimeError(
                f"line {self._line}: '{type(container).__name__}' object does not support "
                "item assignment"
            )

    # -- expressions -------------------------------------------------------

    def lookup(self, name: str, env: dict[str, Any]) -> Any:
        if name in env:
            return env[name]
        if name in _BUILTINS:
            return _BUILTINS[name]
        raise ScriptRuntimeError(f"line {self._line}: name '{name}' is not defined")

    def eval(self, node: ast.AST, env: dict[str, Any]) -> Any:
        self.charge()

        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            return self.lookup(node.id, env)

        if isinstance(node, ast.Attribute):
            value = self.eval(node.value, env)
            if isinstance(value, ConstantNamespace):
                return value.lookup(node.attr)
            if node.attr in _METHODS.get(type(value), ()):
                return _BoundMethod(value, node.attr)
            raise ScriptRuntimeError(
                f"line {self._line}: '{type(value).__name__}' object has no attribute "
                f"'{node.attr}'"
            )

        if isinstance(node, ast.Call):
            func = self.eval(node.func, env)
            args = [self.eval(arg, env) for arg in node.args]
            if isinstance(func, _BoundMethod):
                return self.check_size(self.call_method(func.target, func.name, args))
            if isinstance(func, _Builtin):
                return self.check_size(self.call_builtin(func.name, args))
            raise ScriptRuntimeError(
                f"line {self._line}: '{type(func).__name__}' object is not callable"
            )

        if isinstance(node, ast.Subscript):
            value = self.eval(node.value, env)
            if not isinstance(value, (str, list, tuple, dict)):
                raise ScriptRuntimeError(
                    f"line {self._line}: '{type(value).__name__}' object is not subscriptable"
                )
            return value[self.eval(node.slice, env)]

        if isinstance(node, ast.Slice):
            return slice(
                self.eval(node.lower, env) if node.lower is not None else None,
                self.eval(node.upper, env) if node.upper is not None else None,
                self.eval(node.step, env) if node.step is not None else None,
            )

        if isinstance(node, ast.List):
            return self.check_size([self.eval(e, env) for e in node.elts])

        if isinstance(node, ast.Tuple):
            return self.check_size(tuple(self.eval(e, env) for e in node.elts))

        if isinstance(node, ast.Dict):
            result = {}
            for key, value in zip(node.keys, node.values):
                result[self.eval(key, env)] = self.eval(value, env)
            return self.check_size(result)

        if isinstance(node, ast.BinOp):
            return self.binop(node.op, self.eval(node.left, env), self.eval(node.right, env))

        if isinstance(node, ast.UnaryOp):
            operand = self.eval(node.operand, env)
            if isinstance(node.op, ast.Not):
                return not operand
            if not isinstance(operand, (int, float)):
                raise ScriptRuntimeError(f"line {self._line}: bad operand for unary operator")
            return self.check_size(-operand if isinstance(node.op, ast.USub) else +operand)

        if isinstance(node, ast.BoolOp):
            result = None
            for value_node in node.values:
                result = self.eval(value_node, env)
                if isinstance(node.op, ast.And) and not result:
                    return result
                if isinstance(node.op, ast.Or) and result:
                    return result
            return result

        if isinstance(node, ast.Compare):
            left = self.eval(node.left, env)
            for op, comparator in zip(node.ops, node.comparators):
                right = self.eval(comparator, env)
                if not _COMPARISONS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            branch = node.body if self.eval(node.test, env) else node.orelse
            return self.eval(branch, env)

        if isinstance(node, ast.JoinedStr):
            parts = []
            length = 0
            for value in node.values:
                if isinstance(value, ast.FormattedValue):
                    formatted = self.eval(value.value, env)
                    parts.append(self.render(formatted, quoted=value.conversion == ord("r")))
                else:
                    parts.append(self.eval(value, env))
                length += len(parts[-1])
                self.reserve(str, length)
            return "".join(parts)

        if isinstance(node, ast.ListComp):
            result: list[Any] = []
            self.comprehend(node, 0, dict(env), result)
            return result

        raise ScriptRuntimeError(f"line {self._line}: unsupported expression")

    def comprehend(
        self, node: ast.ListComp, index: int, scope: dict[str, Any], result: list[Any]
    ) -> None:
        if index == len(node.generators):
            result.append(self.eval(node.elt, scope))
            self.check_size(result)
            return
        generator = node.generators[index]
        for item in self.iterate(self.eval(generator.iter, scope)):
            self.assign(generator.target, item, scope)
            if all(self.eval(condition, scope) for condition in generator.ifs):
                self.comprehend(node, index + 1, scope, result)

    def binop(self, op: ast.operator, left: Any, right: Any) -> Any:
        sequences = (str, list, tuple)
        if isinstance(op, ast.Add) and isinstance(left, sequences) and type(left) is type(right):
            self.reserve(type(left), len(left) + len(right))
        elif isinstance(op, ast.Mult):
            if isinstance(left, sequences) and isinstance(right, int):
                self.reserve(type(left), len(left) * max(right, 0))
            elif isinstance(right, sequences) and isinstance(left, int):
                self.reserve(type(right), len(right) * max(left, 0))
        elif isinstance(op, ast.Mod) and isinstance(left, str):
            raise ScriptRuntimeError(f"line {self._line}: %-formatting is not supported")
        return self.check_size(_ARITHMETIC[type(op)](left, right))

    # -- calls -------------------------------------------------------------

    def call_builtin(self, name: str, args: list[Any]) -> Any:
        if name in _AGGREGATES and len(args) == 1:
            return _AGGREGATES[name](list(self.iterate(args[0])))
        if name == "str" and len(args) == 1:
            return self.render(args[0])
        if name == "range":
            span = range(*args)
            self.reserve(list, len(span))
            self.charge(len(span))
            return list(span)
        return _PLAIN_BUILTINS[name](*args)

    def call_method(self, target: Any, name: str, args: list[Any]) -> Any:
        if isinstance(target, str):
            if name == "join" and len(args) == 1:
                items = list(self.iterate(args[0]))
                total = sum(len(i) for i in items if isinstance(i, str))
                self.reserve(str, total + len(target) * max(len(items) - 1, 0))
                return target.join(items)
            if name == "replace" and len(args) >= 2 and all(isinstance(a, str) for a in args[:2]):
                old, new = args[0], args[1]
                occurrences = len(target) + 1 if old == "" else target.count(old)
                self.reserve(str, len(target) + occurrences * (len(new) - len(old)))
            result = getattr(target, name)(*args)
            if isinstance(result, list):
                self.charge(len(result))
            return result

        if isinstance(target, list):
            if name == "extend":
                if len(args) != 1:
                    raise ScriptRuntimeError(f"line {self._line}: extend() takes one argument")
                for item in self.iterate(args[0]):
                    self.reserve(list, len(target) + 1)
                    target.append(item)
                return None
            if name in ("append", "insert"):
                self.reserve(list, len(target) + 1)
            return getattr(target, name)(*args)

        if name in ("keys", "values", "items"):
            self.charge(len(target))
            return list(getattr(target, name)())
        return target.get(*args)


_AGGREGATES = {"min": min, "max": max, "any": any, "all": all, "sorted": sorted}

_PLAIN_BUILTINS = {
    "len": len,
    "str": str,
    "int": int,
    "bool": bool,
    "abs": abs,
    **_AGGREGATES,
}


class Sandbox:
    """Compiles and runs rule scripts under fixed quotas.

    A Sandbox holds no per-run state; each call to :meth:`run` starts from a
    fresh operation count and fresh bindings.

    Example:
        sandbox = Sandbox()
        script = sandbox.compile("no-truncate", source)
        value = sandbox.run(script, {"node": statement.to_view()})
    """

    def __init__(self, limits: SandboxLimits | None = None) -> None:
        self.limits = limits or SandboxLimits()

    def compile(self, name: str, source: str) -> CompiledScript:
        return compile_script(name, source, self.limits)

    def run(self, script: CompiledScript, bindings: Mapping[str, Any]) -> Any:
        """Run ``script`` and return its ``return`` value (``None`` if it has none).

        Raises:
            QuotaExceeded: A quota was exhausted.
            ScriptRuntimeError: The script failed in any other way.
        """
        return _Interpreter(script, self.limits, dict(bindings)).run()


def to_violations(value: Any) -> list[Violation]:
    """Interpret a script's return value as violations.

    ``None`` means no violations. A dict with string ``operation``,
    ``problem`` and ``solution`` entries is one violation; a list or tuple of
    such dicts is one violation each. Extra keys are ignored.

    Raises:
        ProtocolError: Any other value, including a sequence with a single
            malformed element.
    """
    if value is None:
        return []
    if isinstance(value, dict):
        return [_to_violation(value)]
    if isinstance(value, (list, tuple)):
        return [_to_violation(item) for item in value]
    raise ProtocolError(
        f"expected None, a violation dict or a list of them, got {type(value).__name__}"
    )


def _to_violation(record: Any) -> Violation:
    if not isinstance(record, dict):
        raise ProtocolError(f"violation must be a dict, got {type(record).__name__}")
    missing = [f for f in VIOLATION_FIELDS if not isinstance(record.get(f), str)]
    if missing:
        raise ProtocolError(f"violation is missing string field(s): {', '.join(missing)}")
    return Violation(
        operation=record["operation"],
        problem=record["problem"],
        solution=record["solution"],
    )
