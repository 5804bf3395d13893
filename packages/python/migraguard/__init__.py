"""MigraGuard - safety checks for PostgreSQL migrations.

MigraGuard reads the SQL of a migration and reports statements that take
dangerous locks, rewrite tables or break running application code, together
with the safe way to do the same thing.

Quick Start:
    >>> import migraguard

    # Check a migration
    >>> findings = migraguard.check_sql("CREATE INDEX idx_users_email ON users (email);")
    >>> findings[0].rule
    'add-index'
    >>> migraguard.check_sql("CREATE INDEX CONCURRENTLY idx_users_email ON users (email);")
    []

    # With custom configuration
    >>> from migraguard import Analyzer, RunConfig
    >>> analyzer = Analyzer(RunConfig(postgres_version=15, disabled_names={"wide-index"}))
    >>> result = analyzer.analyze("ALTER TABLE users ADD COLUMN active BOOLEAN DEFAULT true;")
    >>> result.is_safe
    True

Exemptions:
    Statements known to be safe can be wrapped in a safety-assured block;
    no rule runs for anything between the two directives:

        -- safety-assured:start
        CREATE INDEX idx_new_table ON new_table (id);
        -- safety-assured:end

Custom Rules:
    User-authored rules are small scripts run in a quota-bounded sandbox.
    They see the statement as ``node``, the configuration as ``config`` and
    named integer codes as ``pg``:

    >>> source = '''
    ... if node["kind"] == "TRUNCATE":
    ...     return {"operation": "TRUNCATE", "problem": "...", "solution": "..."}
    ... '''
    >>> config = RunConfig(custom_rule_sources=[("no-truncate", source)])
"""

from __future__ import annotations

from .analyzer import Analyzer, ParsedUnit, parse_unit
from .config import CustomRuleSource, RunConfig
from .diagnostics import Diagnostic, DiagnosticKind, Diagnostics
from .exceptions import (
    ConfigurationError,
    DirectiveError,
    MigraGuardError,
    NestedBlockError,
    ParseError,
    ScriptError,
    UnclosedBlockError,
    UnmatchedEndError,
)
from .result import AnalysisResult, Finding, Violation
from .sandbox import SandboxLimits

__version__ = "0.1.0"
__all__ = [
    # Main API
    "check_sql",
    "Analyzer",
    "parse_unit",
    # Types
    "RunConfig",
    "CustomRuleSource",
    "SandboxLimits",
    "ParsedUnit",
    "AnalysisResult",
    "Finding",
    "Violation",
    "Diagnostic",
    "DiagnosticKind",
    "Diagnostics",
    # Exceptions
    "MigraGuardError",
    "ParseError",
    "DirectiveError",
    "UnmatchedEndError",
    "NestedBlockError",
    "UnclosedBlockError",
    "ConfigurationError",
    "ScriptError",
]

# Default analyzer instance for simple API
_default_analyzer: Analyzer | None = None


def check_sql(sql: str, config: RunConfig | None = None) -> list[Finding]:
    """Check the SQL of one migration and return its findings.

    This is the simplest way to use MigraGuard. When checking many
    migrations with the same configuration, create an Analyzer once and
    reuse it, so the rule set (and any custom scripts) are only built once.

    Args:
        sql: The complete SQL text of one migration.
        config: Run configuration. If None, every native rule is enabled.

    Returns:
        Findings in statement order, then rule order. Empty when the
        migration is safe.

    Raises:
        ParseError: The SQL could not be parsed and is not a known safe idiom.
        DirectiveError: The safety-assured blocks are malformed.

    Examples:
        >>> import migraguard
        >>> [f.rule for f in migraguard.check_sql("TRUNCATE TABLE events;")]
        ['truncate-table']

        # Target version aware
        >>> sql = "ALTER TABLE users ADD COLUMN active BOOLEAN DEFAULT true;"
        >>> migraguard.check_sql(sql, migraguard.RunConfig(postgres_version=11))
        []
    """
    global _default_analyzer

    if config is not None:
        return Analyzer(config).analyze(sql).findings
    if _default_analyzer is None:
        _default_analyzer = Analyzer()
    return _default_analyzer.analyze(sql).findings
