"""Exception types raised by MigraGuard.

Only two kinds of error are fatal to a migration unit: an unresolved
``ParseError`` and a ``DirectiveError``. Everything else is reported on the
diagnostic channel and never aborts a run.
"""

from __future__ import annotations


class MigraGuardError(Exception):
    """Base class for all MigraGuard errors."""


class ParseError(MigraGuardError):
    """The SQL text could not be parsed and no safe signature matched.

    Attributes:
        reason: Parser message describing the failure.
        line: 1-based line of the failure, if known.
        col: 1-based column of the failure, if known.
    """

    def __init__(self, reason: str, line: int | None = None, col: int | None = None) -> None:
        self.reason = reason
        self.line = line
        self.col = col
        super().__init__(self._format())

    def _format(self) -> str:
        if self.line is None:
            return f"Failed to parse SQL: {self.reason}"
        if self.col is None:
            return f"Failed to parse SQL at line {self.line}: {self.reason}"
        return f"Failed to parse SQL at line {self.line}, column {self.col}: {self.reason}"


class DirectiveError(MigraGuardError):
    """The safety-assured directives in a unit are not well formed.

    Attributes:
        line: 1-based line of the offending directive (or the last line of
              the input for an unclosed block).
    """

    message = "Invalid safety-assured block"

    def __init__(self, line: int) -> None:
        self.line = line
        super().__init__(f"{self.message} (line {line})")


class UnmatchedEndError(DirectiveError):
    message = "safety-assured:end without a matching safety-assured:start"


class NestedBlockError(DirectiveError):
    message = "safety-assured:start inside an open block (nesting is not supported)"


class UnclosedBlockError(DirectiveError):
    message = "safety-assured:start is never closed by safety-assured:end"


class ConfigurationError(MigraGuardError):
    """A run configuration value is invalid."""


class ScriptError(MigraGuardError):
    """A custom rule script could not be compiled.

    Attributes:
        name: Name of the custom rule.
        line: 1-based line in the script, if known.
    """

    def __init__(self, name: str, message: str, line: int | None = None) -> None:
        self.name = name
        self.line = line
        location = f" (line {line})" if line is not None else ""
        super().__init__(f"{name}: {message}{location}")


class ScriptRuntimeError(MigraGuardError):
    """A custom rule script failed while running against a statement."""


class QuotaExceeded(ScriptRuntimeError):
    """A custom rule script exceeded one of its per-invocation quotas."""


class ProtocolError(MigraGuardError):
    """A custom rule script returned a value that is not a violation record."""
