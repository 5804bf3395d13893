"""Diagnostic sink for non-fatal findings about the analysis itself."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class DiagnosticKind(str, Enum):
    """Categories of non-fatal problems encountered during a run."""

    FALLBACK_MATCH = "fallback-match"
    LINE_CORRELATION_MISS = "line-correlation-miss"
    RULE_RUNTIME_ERROR = "rule-runtime-error"
    QUOTA_EXCEEDED = "quota-exceeded"
    PROTOCOL_VIOLATION = "protocol-violation"
    SCRIPT_COMPILE_ERROR = "script-compile-error"
    UNKNOWN_DISABLED_NAME = "unknown-disabled-name"


# Informational kinds are logged at INFO; everything else is a warning.
_INFO_KINDS = frozenset({DiagnosticKind.FALLBACK_MATCH})


@dataclass(frozen=True)
class Diagnostic:
    """A single diagnostic message.

    Attributes:
        kind: What went wrong.
        message: Human-readable description.
        rule: Name of the rule involved, if any.
        line: 1-based source line involved, if any.
    """

    kind: DiagnosticKind
    message: str
    rule: str | None = None
    line: int | None = None

    def __str__(self) -> str:
        prefix = f"[{self.rule}] " if self.rule else ""
        return f"{prefix}{self.message}"


class Diagnostics:
    """Collects diagnostics for one analysis run.

    Every entry is also forwarded to the module logger, so callers that only
    configure logging still see warnings.

    Example:
        diagnostics = Diagnostics()
        unit = parse_unit(sql, diagnostics)
        for entry in diagnostics:
            print(entry)
    """

    def __init__(self) -> None:
        self._entries: list[Diagnostic] = []

    def emit(
        self,
        kind: DiagnosticKind,
        message: str,
        *,
        rule: str | None = None,
        line: int | None = None,
    ) -> Diagnostic:
        entry = Diagnostic(kind=kind, message=message, rule=rule, line=line)
        self._entries.append(entry)
        level = logging.INFO if kind in _INFO_KINDS else logging.WARNING
        logger.log(level, "%s", entry)
        return entry

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        return [d for d in self._entries if d.kind == kind]

    @property
    def entries(self) -> tuple[Diagnostic, ...]:
        return tuple(self._entries)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
