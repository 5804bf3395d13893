"""Migration safety rules for MigraGuard.

This module provides the rule abstraction and the registry that decides
which rules run for a given configuration.

Architecture:
    - Rule: Abstract interface shared by every rule
    - NativeRule: Rules written in Python and shipped with MigraGuard
    - ScriptedRule: User-authored rules run in the sandbox
    - RuleCatalog: Where native rules register themselves on import
    - RuleRegistry: The enabled rule set for one configuration

Usage:
    from migraguard.rules import RuleRegistry
    from migraguard.config import RunConfig

    registry = RuleRegistry(RunConfig(disabled_names={"wide-index"}))
    for finding in registry.evaluate(unit):
        print(f"line {finding.line}: {finding.violation.operation}")
"""

from .base import NativeRule, Rule, RuleDescriptor, RuleKind
from .registry import RuleCatalog, RuleRegistry, builtin_rule_names, get_builtin_rules
from .scripted import ScriptedRule

__all__ = [
    "Rule",
    "NativeRule",
    "ScriptedRule",
    "RuleKind",
    "RuleDescriptor",
    "RuleCatalog",
    "RuleRegistry",
    "get_builtin_rules",
    "builtin_rule_names",
]
