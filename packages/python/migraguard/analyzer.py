"""Analyzer - the primary entry point for MigraGuard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from .config import RunConfig
from .correlate import DEFAULT_LINE, correlate_lines
from .diagnostics import Diagnostics
from .directives import IgnoreRange, build_ignore_ranges, is_exempt
from .exceptions import ParseError
from .fallback import FallbackDetector
from .parser import Parser
from .result import AnalysisResult
from .rules.registry import RuleRegistry, builtin_rule_names

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .diagnostics import Diagnostic
    from .sandbox import SandboxLimits
    from .statement import Statement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedUnit:
    """One migration unit, parsed and annotated. Immutable once built.

    Attributes:
        statements: Statements in source order.
        statement_lines: Statement index -> 1-based source line (read-only).
        ignore_ranges: Exempt line ranges, in source order.
    """

    statements: tuple[Statement, ...] = ()
    statement_lines: Mapping[int, int] = field(default_factory=dict)
    ignore_ranges: tuple[IgnoreRange, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "statement_lines", MappingProxyType(dict(self.statement_lines)))

    def line_of(self, index: int) -> int:
        return self.statement_lines.get(index, DEFAULT_LINE)

    def is_exempt(self, line: int) -> bool:
        return is_exempt(line, list(self.ignore_ranges))


_default_parser = Parser()
_default_detector = FallbackDetector()


def parse_unit(
    sql: str,
    diagnostics: Diagnostics | None = None,
    *,
    parser: Parser | None = None,
    detector: FallbackDetector | None = None,
) -> ParsedUnit:
    """Parse ``sql`` and work out exempt ranges and statement lines.

    Directives are validated before parsing, so a malformed block is
    reported even when the SQL itself would not parse.

    Raises:
        DirectiveError: The safety-assured blocks are malformed.
        ParseError: The grammar rejected the text and no safe signature matched.
    """
    ranges = build_ignore_ranges(sql)

    parser = parser or _default_parser
    detector = detector or _default_detector
    try:
        statements = parser.parse(sql)
    except ParseError as e:
        statements = detector.resolve(sql, e, diagnostics)

    lines = correlate_lines(sql, statements, diagnostics)
    return ParsedUnit(
        statements=tuple(statements),
        statement_lines=lines,
        ignore_ranges=tuple(ranges),
    )


class Analyzer:
    """Checks migration SQL against the enabled rule set.

    The rule set is built once, when the analyzer is created, and reused for
    every call to ``analyze``. An analyzer holds no per-run state, so one
    instance can serve many units, also from several threads.

    The analysis of one unit runs in four stages:
    1. Directives: safety-assured blocks become exempt line ranges
    2. Parsing: statements, with the fallback detector on a parse failure
    3. Line correlation: each statement gets a source line
    4. Rules: every enabled rule runs on every non-exempt statement

    Example:
        >>> analyzer = Analyzer()
        >>> result = analyzer.analyze("CREATE INDEX idx ON users (email);")
        >>> result.is_safe
        False
        >>> result.findings[0].rule
        'add-index'

        # Disable a rule and target PostgreSQL 15
        >>> analyzer = Analyzer(RunConfig(disabled_names={"add-index"}, postgres_version=15))
        >>> analyzer.analyze("CREATE INDEX idx ON users (email);").is_safe
        True
    """

    def __init__(
        self,
        config: RunConfig | None = None,
        *,
        sandbox_limits: SandboxLimits | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            config: Run configuration. If None, every native rule is enabled
                and no version is assumed.
            sandbox_limits: Quotas for custom rule scripts. If None, the
                sandbox defaults apply.
        """
        self.config = config or RunConfig()
        setup = Diagnostics()
        self._registry = RuleRegistry(self.config, setup, sandbox_limits)
        self._setup_diagnostics = setup.entries
        self._parser = Parser()
        self._detector = FallbackDetector()

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    @property
    def setup_diagnostics(self) -> tuple[Diagnostic, ...]:
        """Warnings from building the rule set (bad scripts, unknown names)."""
        return self._setup_diagnostics

    def active_rule_names(self) -> list[str]:
        """Names of the enabled rules, in evaluation order."""
        return self._registry.names()

    @staticmethod
    def builtin_rule_names() -> list[str]:
        return builtin_rule_names()

    def parse(self, sql: str, diagnostics: Diagnostics | None = None) -> ParsedUnit:
        return parse_unit(sql, diagnostics, parser=self._parser, detector=self._detector)

    def analyze(self, sql: str) -> AnalysisResult:
        """Analyze one migration unit.

        Args:
            sql: The complete SQL text of the unit.

        Returns:
            AnalysisResult with the findings in statement order (then rule
            order) and the non-fatal diagnostics raised along the way.

        Raises:
            DirectiveError: The safety-assured blocks are malformed.
            ParseError: The SQL could not be parsed and is not a known
                safe idiom.
        """
        diagnostics = Diagnostics()
        unit = self.parse(sql, diagnostics)
        findings = self._registry.evaluate(unit, diagnostics)
        logger.debug(
            "Analyzed %d statement(s): %d finding(s)", len(unit.statements), len(findings)
        )
        return AnalysisResult(findings=findings, diagnostics=list(diagnostics.entries))
