"""Analysis result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .diagnostics import Diagnostic


@dataclass(frozen=True)
class Violation:
    """A reported unsafe operation.

    Attributes:
        operation: Short label for the unsafe operation (e.g. "CREATE INDEX").
        problem: What goes wrong when the statement runs against a live table.
        solution: Numbered remediation steps.
    """

    operation: str
    problem: str
    solution: str


@dataclass(frozen=True)
class Finding:
    """A violation attributed to a source line.

    Attributes:
        line: 1-based line of the offending statement.
        violation: The violation itself.
        rule: Name of the rule that reported it.
    """

    line: int
    violation: Violation
    rule: str

    def __str__(self) -> str:
        return f"line {self.line}: [{self.rule}] {self.violation.operation}"


@dataclass(frozen=True)
class AnalysisResult:
    """Immutable result of analysing one migration unit.

    Attributes:
        findings: Violations in statement order, then rule order.
        diagnostics: Non-fatal warnings raised while analysing the unit.
    """

    findings: list[Finding] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def violations(self) -> list[Violation]:
        return [f.violation for f in self.findings]

    @property
    def is_safe(self) -> bool:
        return not self.findings

    def __bool__(self) -> bool:
        """Allow using result directly in boolean context."""
        return self.is_safe
