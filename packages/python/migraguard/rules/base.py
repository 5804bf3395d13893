"""Base classes for migration safety rules."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..directives import END_TOKEN, START_TOKEN
from ..result import Violation

if TYPE_CHECKING:
    from ..config import RunConfig
    from ..diagnostics import Diagnostics
    from ..statement import Statement, StatementKind


class RuleKind(str, Enum):
    """How a rule is implemented.

    NATIVE: Python code shipped with MigraGuard
    SCRIPTED: A user-authored script run in the sandbox
    """

    NATIVE = "native"
    SCRIPTED = "scripted"


@dataclass(frozen=True)
class RuleDescriptor:
    """Identity of a rule in the registry.

    Attributes:
        name: Unique rule name, used for disabling and in reports.
        kind: Native or scripted.
    """

    name: str
    kind: RuleKind


class Rule(ABC):
    """Abstract base class for all rules.

    A rule looks at one statement at a time and returns the violations it
    finds. Rules must be total: a rule never aborts an analysis run.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique rule name (e.g., 'add-index')."""
        ...

    @property
    @abstractmethod
    def kind(self) -> RuleKind: ...

    @property
    def descriptor(self) -> RuleDescriptor:
        return RuleDescriptor(name=self.name, kind=self.kind)

    @abstractmethod
    def check(
        self,
        statement: Statement,
        config: RunConfig,
        diagnostics: Diagnostics | None = None,
    ) -> list[Violation]:
        """Check one statement.

        Args:
            statement: The parsed statement. Must not be modified.
            config: Configuration for the current run.
            diagnostics: Sink for non-fatal problems with the rule itself.

        Returns:
            Violations found, possibly empty.
        """
        ...


class NativeRule(Rule):
    """A rule implemented in Python.

    Subclasses must implement:
    - name: Unique identifier for the rule
    - description: What the rule checks for
    - statement_kinds: Statement kinds the rule looks at
    - inspect(): The actual check, called only for matching statements
    """

    @property
    def kind(self) -> RuleKind:
        return RuleKind.NATIVE

    @property
    @abstractmethod
    def description(self) -> str:
        """Detailed description of what this rule checks for."""
        ...

    @property
    @abstractmethod
    def statement_kinds(self) -> frozenset[StatementKind]: ...

    @abstractmethod
    def inspect(self, statement: Statement, config: RunConfig) -> list[Violation]: ...

    def check(
        self,
        statement: Statement,
        config: RunConfig,
        diagnostics: Diagnostics | None = None,
    ) -> list[Violation]:
        if statement.kind not in self.statement_kinds:
            return []
        return self.inspect(statement, config)

    def _violation(self, operation: str, problem: str, *steps: str) -> Violation:
        """Build a violation whose solution lists ``steps`` as numbered steps.

        The escape-hatch step (wrapping the statement in a safety-assured
        block) is always appended last.
        """
        return Violation(operation=operation, problem=problem, solution=numbered_steps(*steps))


def numbered_steps(*steps: str) -> str:
    steps = (
        *steps,
        "If this operation is known to be safe here (e.g. the table is new or empty), "
        f"wrap it in a safety-assured block:\n   -- {START_TOKEN}\n   ...\n   -- {END_TOKEN}",
    )
    return "\n\n".join(f"{i}. {step}" for i, step in enumerate(steps, start=1))
