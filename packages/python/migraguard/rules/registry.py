"""Rule catalogue and the per-configuration registry of enabled rules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..config import RunConfig
from ..diagnostics import DiagnosticKind
from ..exceptions import ScriptError
from ..result import Finding
from ..sandbox import Sandbox
from .scripted import ScriptedRule

if TYPE_CHECKING:
    from ..analyzer import ParsedUnit
    from ..diagnostics import Diagnostics
    from ..sandbox import SandboxLimits
    from .base import NativeRule, Rule, RuleDescriptor

logger = logging.getLogger(__name__)


class RuleCatalog:
    """Central catalogue of the native rules shipped with MigraGuard.

    Rules are registered automatically when their modules are imported.

    Example:
        catalog = RuleCatalog.get_instance()
        catalog.register(AddIndexRule())

        # All native rules, ordered by name
        rules = catalog.all()
    """

    _instance: RuleCatalog | None = None

    def __init__(self) -> None:
        self._rules: dict[str, NativeRule] = {}

    @classmethod
    def get_instance(cls) -> RuleCatalog:
        """Get the singleton catalogue instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def register(self, rule: NativeRule) -> None:
        """Register a rule with the catalogue.

        Args:
            rule: The rule instance to register

        Raises:
            ValueError: If a rule with the same name is already registered
        """
        if rule.name in self._rules:
            raise ValueError(f"Rule '{rule.name}' is already registered")
        self._rules[rule.name] = rule

    def get(self, name: str) -> NativeRule | None:
        """Get a rule by its name."""
        return self._rules.get(name)

    def all(self) -> list[NativeRule]:
        """Get all registered rules, ordered by name."""
        return [self._rules[name] for name in sorted(self._rules)]

    def names(self) -> list[str]:
        return sorted(self._rules)


def _ensure_rules_loaded() -> None:
    """Ensure all rule modules are imported and rules are registered."""
    # Import all rule modules to trigger registration
    from . import (  # noqa: F401
        columns,
        constraints,
        destructive,
        indexes,
    )


def get_builtin_rules() -> list[NativeRule]:
    """Get all native rules, ordered by name."""
    _ensure_rules_loaded()
    return RuleCatalog.get_instance().all()


def builtin_rule_names() -> list[str]:
    _ensure_rules_loaded()
    return RuleCatalog.get_instance().names()


class RuleRegistry:
    """The enabled rule set for one run configuration.

    Built once per configuration and reused for any number of migration
    units. The enabled set never changes after construction, so a registry
    can be shared across threads.

    Enabled rules are every native rule (by name) followed by every custom
    script (in configuration order), minus any name in
    ``config.disabled_names``. Building the registry never fails:

    - a custom script that does not compile is skipped with a warning
    - a disabled name that matches no rule produces a warning

    Example:
        registry = RuleRegistry(RunConfig(disabled_names={"add-index"}))
        findings = registry.evaluate(unit, diagnostics)
    """

    def __init__(
        self,
        config: RunConfig | None = None,
        diagnostics: Diagnostics | None = None,
        limits: SandboxLimits | None = None,
    ) -> None:
        """Build the enabled rule set.

        Args:
            config: Run configuration. If None, uses defaults.
            diagnostics: Sink for registration warnings.
            limits: Quotas for custom rule scripts.
        """
        self.config = config or RunConfig()
        self._sandbox = Sandbox(limits)

        rules: list[Rule] = []
        known = set(builtin_rule_names())

        for rule in get_builtin_rules():
            if self.config.is_rule_enabled(rule.name):
                rules.append(rule)

        for source in self.config.custom_rule_sources:
            known.add(source.name)
            if not self.config.is_rule_enabled(source.name):
                continue
            try:
                script = self._sandbox.compile(source.name, source.source)
            except ScriptError as e:
                _warn(diagnostics, DiagnosticKind.SCRIPT_COMPILE_ERROR, str(e), source.name)
                continue
            rules.append(ScriptedRule(script, self._sandbox))

        for name in sorted(self.config.disabled_names - known):
            _warn(
                diagnostics,
                DiagnosticKind.UNKNOWN_DISABLED_NAME,
                f"Disabled rule name '{name}' does not match any rule",
                name,
            )

        self._rules: tuple[Rule, ...] = tuple(rules)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def descriptors(self) -> list[RuleDescriptor]:
        return [r.descriptor for r in self._rules]

    def names(self) -> list[str]:
        return [r.name for r in self._rules]

    def evaluate(self, unit: ParsedUnit, diagnostics: Diagnostics | None = None) -> list[Finding]:
        """Run every enabled rule against every non-exempt statement.

        Findings are ordered by statement, then by rule order. Statements
        whose line falls inside a safety-assured block are skipped entirely.
        """
        findings: list[Finding] = []
        for index, statement in enumerate(unit.statements):
            line = unit.line_of(index)
            if unit.is_exempt(line):
                logger.debug("Skipping statement %d at exempt line %d", index, line)
                continue
            for rule in self._rules:
                for violation in rule.check(statement, self.config, diagnostics):
                    findings.append(Finding(line=line, violation=violation, rule=rule.name))
        return findings


def _warn(diagnostics: Diagnostics | None, kind: DiagnosticKind, message: str, rule: str) -> None:
    if diagnostics is not None:
        diagnostics.emit(kind, message, rule=rule)
    else:
        logger.warning("[%s] %s", rule, message)
