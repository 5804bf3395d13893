"""Tests for the rule script sandbox."""

from typing import Any

import pytest

from migraguard.exceptions import ProtocolError, QuotaExceeded, ScriptError, ScriptRuntimeError
from migraguard.result import Violation
from migraguard.rules.scripted import PG_CONSTANTS
from migraguard.sandbox import Sandbox, SandboxLimits, to_violations

VIOLATION = '{"operation": "OP", "problem": "P", "solution": "S"}'


@pytest.fixture
def sandbox() -> Sandbox:
    return Sandbox()


def _run(sandbox: Sandbox, source: str, **bindings: Any) -> Any:
    return sandbox.run(sandbox.compile("test-rule", source), bindings)


class TestCompile:
    """Scripts outside the supported subset are rejected up front."""

    @pytest.mark.parametrize(
        "source",
        [
            "import os",
            "from os import path",
            "def f():\n    return 1",
            "f = lambda: 1",
            "class A:\n    pass",
            "x = ().__class__",
            "x = __builtins__",
            "with open('x') as f:\n    pass",
            "try:\n    x = 1\nexcept Exception:\n    pass",
            "del x",
            "x = {k: 1 for k in 'ab'}",
            "x = (i for i in [1])",
            "x = sorted([2, 1], reverse=True)",
            "pg.OBJECT_TABLE = 5",
            "break",
            "x = [1, 2",
        ],
    )
    def test_rejected(self, sandbox: Sandbox, source: str) -> None:
        with pytest.raises(ScriptError) as exc_info:
            sandbox.compile("bad-rule", source)
        assert exc_info.value.name == "bad-rule"

    def test_error_carries_line(self, sandbox: Sandbox) -> None:
        with pytest.raises(ScriptError) as exc_info:
            sandbox.compile("bad-rule", "x = 1\ny = 2\nimport os\n")
        assert exc_info.value.line == 3

    def test_oversized_string_literal(self) -> None:
        sandbox = Sandbox(SandboxLimits(max_string_size=10))
        with pytest.raises(ScriptError):
            sandbox.compile("bad-rule", "x = 'this literal is too long'")


class TestExecution:
    """Test the supported subset."""

    def test_no_return_is_none(self, sandbox: Sandbox) -> None:
        assert _run(sandbox, "x = 1") is None

    def test_return_value(self, sandbox: Sandbox) -> None:
        assert _run(sandbox, "return 1 + 2 * 3") == 7

    def test_control_flow(self, sandbox: Sandbox) -> None:
        source = (
            "total = 0\n"
            "for i in range(10):\n"
            "    if i % 2 == 0:\n"
            "        continue\n"
            "    if i > 7:\n"
            "        break\n"
            "    total += i\n"
            "return total\n"
        )
        assert _run(sandbox, source) == 1 + 3 + 5 + 7

    def test_while_loop(self, sandbox: Sandbox) -> None:
        assert _run(sandbox, "n = 0\nwhile n < 5:\n    n += 1\nreturn n") == 5

    def test_comprehension_and_fstring(self, sandbox: Sandbox) -> None:
        source = "names = [c.upper() for c in node['columns'] if c != 'id']\nreturn f\"{len(names)}: {names[0]}\""
        assert _run(sandbox, source, node={"columns": ["id", "email"]}) == "1: EMAIL"

    @pytest.mark.parametrize(
        "source,expected",
        [
            ("return str([1, 'a', {'k': None}, (True,)])", "[1, 'a', {'k': None}, (True,)]"),
            ("return str((1, 2))", "(1, 2)"),
            ("return str('plain')", "plain"),
            ("return f'{node[\"name\"]!r} has {len(node)} key'", "'idx' has 1 key"),
            ("items = [1]\nitems.append(items)\nreturn str(items)", "[1, [...]]"),
        ],
    )
    def test_rendering_matches_python(self, sandbox: Sandbox, source: str, expected: str) -> None:
        assert _run(sandbox, source, node={"name": "idx"}) == expected

    def test_whitelisted_methods(self, sandbox: Sandbox) -> None:
        source = (
            "parts = 'a,b,c'.split(',')\n"
            "parts.append('d')\n"
            "return ', '.join(parts), node.get('missing', 'default'), sorted(node.keys())"
        )
        assert _run(sandbox, source, node={"b": 1, "a": 2}) == ("a, b, c, d", "default", ["a", "b"])

    def test_tuple_unpacking(self, sandbox: Sandbox) -> None:
        source = "out = []\nfor k, v in node.items():\n    out.append(k + str(v))\nreturn out"
        assert _run(sandbox, source, node={"x": 1}) == ["x1"]

    def test_constants(self, sandbox: Sandbox) -> None:
        assert _run(sandbox, "return pg.OBJECT_TABLE", pg=PG_CONSTANTS) == 1
        assert _run(sandbox, "return pg.AT_ADD_COLUMN", pg=PG_CONSTANTS) == 1
        assert _run(sandbox, "return pg.CONSTR_PRIMARY", pg=PG_CONSTANTS) == 6

    def test_unknown_constant(self, sandbox: Sandbox) -> None:
        with pytest.raises(ScriptRuntimeError):
            _run(sandbox, "return pg.NOT_A_CONSTANT", pg=PG_CONSTANTS)

    def test_constants_are_read_only(self, sandbox: Sandbox) -> None:
        with pytest.raises(ScriptRuntimeError):
            _run(sandbox, "pg['OBJECT_TABLE'] = 5", pg=PG_CONSTANTS)

    @pytest.mark.parametrize(
        "source",
        [
            "return node['missing']",
            "return 1 / 0",
            "return undefined_name",
            "return 'a' + 1",
            "return [1][5]",
            "return node.missing_attribute",
            "return 'abc'.format()",
            "return len(5)",
        ],
    )
    def test_runtime_errors(self, sandbox: Sandbox, source: str) -> None:
        with pytest.raises(ScriptRuntimeError):
            _run(sandbox, source, node={})

    def test_runtime_error_reports_line(self, sandbox: Sandbox) -> None:
        with pytest.raises(ScriptRuntimeError) as exc_info:
            _run(sandbox, "x = 1\nreturn x / 0")
        assert "line 2" in str(exc_info.value)

    def test_integer_overflow(self, sandbox: Sandbox) -> None:
        with pytest.raises(ScriptRuntimeError) as exc_info:
            _run(sandbox, "x = 2\nwhile True:\n    x = x * x")
        assert "overflow" in str(exc_info.value)


class TestQuotas:
    """Quotas terminate runaway scripts deterministically."""

    def test_infinite_loop(self, sandbox: Sandbox) -> None:
        with pytest.raises(QuotaExceeded):
            _run(sandbox, "while True:\n    pass")

    def test_string_growth(self, sandbox: Sandbox) -> None:
        with pytest.raises(QuotaExceeded):
            _run(sandbox, "s = 'ab'\nwhile True:\n    s = s + s")

    def test_string_repetition(self, sandbox: Sandbox) -> None:
        with pytest.raises(QuotaExceeded):
            _run(sandbox, "return 'x' * 1000000")

    def test_list_growth(self, sandbox: Sandbox) -> None:
        with pytest.raises(QuotaExceeded):
            _run(sandbox, "items = []\nwhile True:\n    items.append(1)")

    def test_large_range(self, sandbox: Sandbox) -> None:
        with pytest.raises(QuotaExceeded):
            _run(sandbox, "return range(10000000)")

    NESTED = "s = 'a' * 10000\nrow = [s] * 1000\ngrid = [row] * 1000\n"

    @pytest.mark.parametrize(
        "expression",
        ["str(grid)", "f'{grid}'", "f'{grid!r}'", "f'{s}{s}'", "str({'k': row})"],
    )
    def test_nested_rendering(self, sandbox: Sandbox, expression: str) -> None:
        with pytest.raises(QuotaExceeded):
            _run(sandbox, self.NESTED + f"return {expression}")

    def test_rendering_is_charged_per_element(self) -> None:
        sandbox = Sandbox(SandboxLimits(max_operations=500))
        with pytest.raises(QuotaExceeded):
            _run(sandbox, "row = [1] * 1000\nreturn str(row)")

    def test_dict_growth(self) -> None:
        sandbox = Sandbox(SandboxLimits(max_dict_size=10))
        with pytest.raises(QuotaExceeded):
            _run(sandbox, "d = {}\nfor i in range(20):\n    d[i] = i")

    def test_operation_limit_is_configurable(self) -> None:
        sandbox = Sandbox(SandboxLimits(max_operations=50))
        with pytest.raises(QuotaExceeded):
            _run(sandbox, "for i in range(100):\n    pass")

    def test_operations_are_counted_per_run(self) -> None:
        """Each invocation starts from zero; nothing is amortized across runs."""
        sandbox = Sandbox(SandboxLimits(max_operations=200))
        script = sandbox.compile("test-rule", "n = 0\nfor i in range(20):\n    n += i\nreturn n")
        for _ in range(10):
            assert sandbox.run(script, {}) == 190


class TestViolationProtocol:
    """Test interpretation of a script's return value."""

    def test_none(self) -> None:
        assert to_violations(None) == []

    def test_single_record(self) -> None:
        record = {"operation": "OP", "problem": "P", "solution": "S", "extra": 1}
        assert to_violations(record) == [Violation("OP", "P", "S")]

    def test_sequence_of_records(self, sandbox: Sandbox) -> None:
        value = _run(sandbox, f"return [{VIOLATION}, {VIOLATION}]")
        assert len(to_violations(value)) == 2

    def test_empty_sequence(self) -> None:
        assert to_violations([]) == []

    @pytest.mark.parametrize(
        "value",
        [
            42,
            "violation",
            True,
            {"operation": "OP", "problem": "P"},
            {"operation": "OP", "problem": "P", "solution": 3},
            [{"operation": "OP", "problem": "P", "solution": "S"}, "oops"],
        ],
    )
    def test_malformed(self, value: Any) -> None:
        with pytest.raises(ProtocolError):
            to_violations(value)
