"""Rules backed by user-authored scripts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..diagnostics import DiagnosticKind
from ..exceptions import ProtocolError, QuotaExceeded, ScriptRuntimeError
from ..sandbox import ConstantNamespace, to_violations
from ..statement import pg_constants
from .base import Rule, RuleKind

if TYPE_CHECKING:
    from ..config import RunConfig
    from ..diagnostics import Diagnostics
    from ..result import Violation
    from ..sandbox import CompiledScript, Sandbox
    from ..statement import Statement

logger = logging.getLogger(__name__)

PG_CONSTANTS = ConstantNamespace(pg_constants())


def config_view(config: RunConfig) -> dict[str, Any]:
    """Plain-data view of the run configuration handed to scripts."""
    return {
        "postgres_version": config.postgres_version,
        "disabled_names": sorted(config.disabled_names),
    }


class ScriptedRule(Rule):
    """A rule that runs a compiled script in the sandbox.

    Scripts see three names: ``node`` (the statement view), ``config`` and
    ``pg`` (read-only integer constants). Any failure of the script is
    reported as a diagnostic and counts as zero violations.
    """

    def __init__(self, script: CompiledScript, sandbox: Sandbox) -> None:
        self._script = script
        self._sandbox = sandbox

    @property
    def name(self) -> str:
        return self._script.name

    @property
    def kind(self) -> RuleKind:
        return RuleKind.SCRIPTED

    @property
    def script(self) -> CompiledScript:
        return self._script

    def check(
        self,
        statement: Statement,
        config: RunConfig,
        diagnostics: Diagnostics | None = None,
    ) -> list[Violation]:
        bindings = {
            "node": statement.to_view(),
            "config": config_view(config),
            "pg": PG_CONSTANTS,
        }
        try:
            value = self._sandbox.run(self._script, bindings)
            return to_violations(value)
        except QuotaExceeded as e:
            self._report(diagnostics, DiagnosticKind.QUOTA_EXCEEDED, f"Script stopped: {e}")
        except ScriptRuntimeError as e:
            self._report(diagnostics, DiagnosticKind.RULE_RUNTIME_ERROR, f"Script failed: {e}")
        except ProtocolError as e:
            self._report(diagnostics, DiagnosticKind.PROTOCOL_VIOLATION, f"Invalid result: {e}")
        return []

    def _report(self, diagnostics: Diagnostics | None, kind: DiagnosticKind, message: str) -> None:
        if diagnostics is not None:
            diagnostics.emit(kind, message, rule=self.name)
        else:
            logger.warning("[%s] %s", self.name, message)
