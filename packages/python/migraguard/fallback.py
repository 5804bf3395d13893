"""Recognition of safe Postgres idioms the grammar cannot parse."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .diagnostics import DiagnosticKind

if TYPE_CHECKING:
    from .diagnostics import Diagnostics
    from .exceptions import ParseError
    from .statement import Statement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SafeSignature:
    """A known-safe statement shape.

    Attributes:
        name: Short identifier used in diagnostics.
        pattern: Compiled, case-insensitive pattern searched in the whole text.
        description: What the idiom does and why it does not need checking.
    """

    name: str
    pattern: re.Pattern[str]
    description: str

    def matches(self, sql: str) -> bool:
        return self.pattern.search(sql) is not None


SAFE_SIGNATURES: tuple[SafeSignature, ...] = (
    SafeSignature(
        name="constraint-using-index",
        pattern=re.compile(
            r"ADD\s+CONSTRAINT\s+\S+\s+(UNIQUE|PRIMARY\s+KEY)\s+USING\s+INDEX\s+\S+",
            re.IGNORECASE,
        ),
        description="Promotes an existing index to a UNIQUE or PRIMARY KEY constraint",
    ),
    SafeSignature(
        name="drop-index-concurrently",
        pattern=re.compile(r"DROP\s+INDEX\s+CONCURRENTLY\s+", re.IGNORECASE),
        description="Drops an index without blocking writes",
    ),
)


class FallbackDetector:
    """Suppresses parse failures for text matching a safe signature.

    The whole unit is tested, so a match suppresses checking of every
    statement in it, not only the one that failed to parse. Keep
    exemption-worthy statements in their own unit.

    Example:
        try:
            statements = parser.parse(sql)
        except ParseError as e:
            statements = FallbackDetector().resolve(sql, e, diagnostics)
    """

    def __init__(self, signatures: tuple[SafeSignature, ...] = SAFE_SIGNATURES) -> None:
        self._signatures = signatures

    @property
    def signatures(self) -> tuple[SafeSignature, ...]:
        return self._signatures

    def match(self, sql: str) -> SafeSignature | None:
        """First signature that matches ``sql``, in declaration order."""
        for signature in self._signatures:
            if signature.matches(sql):
                return signature
        return None

    def resolve(
        self,
        sql: str,
        error: ParseError,
        diagnostics: Diagnostics | None = None,
    ) -> list[Statement]:
        """Return an empty statement list if ``sql`` is a safe idiom.

        Raises:
            ParseError: ``error`` itself, unchanged, when nothing matches.
        """
        signature = self.match(sql)
        if signature is None:
            raise error

        message = f"Parse failure suppressed by safe signature '{signature.name}': {error.reason}"
        if diagnostics is not None:
            diagnostics.emit(DiagnosticKind.FALLBACK_MATCH, message, line=error.line)
        else:
            logger.info("%s", message)
        return []
