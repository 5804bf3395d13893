"""Run configuration for a MigraGuard analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class CustomRuleSource:
    """A user-authored rule script.

    Attributes:
        name: Rule name, used for disabling and in diagnostics.
        source: Script text.
    """

    name: str
    source: str


@dataclass(frozen=True)
class RunConfig:
    """Configuration for one analysis run. Read-only once built.

    Attributes:
        disabled_names: Rule names to skip (native or custom).
        postgres_version: Target PostgreSQL major version. Rules that are
            safe from a given version onward are skipped when this is set.
        custom_rule_sources: User-authored rule scripts, in evaluation order.
    """

    disabled_names: frozenset[str] = field(default_factory=frozenset)
    postgres_version: int | None = None
    custom_rule_sources: tuple[CustomRuleSource, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable for convenience, store immutable copies.
        object.__setattr__(self, "disabled_names", frozenset(self.disabled_names))
        object.__setattr__(
            self,
            "custom_rule_sources",
            tuple(_coerce_source(s) for s in self.custom_rule_sources),
        )

        version = self.postgres_version
        if version is not None and (
            isinstance(version, bool) or not isinstance(version, int) or version <= 0
        ):
            raise ConfigurationError(
                f"postgres_version must be a positive integer, got {version!r}"
            )

        names = [s.name for s in self.custom_rule_sources]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate custom rule names: {', '.join(duplicates)}")

    def is_rule_enabled(self, name: str) -> bool:
        return name not in self.disabled_names

    def version_at_least(self, major: int) -> bool:
        """True only when a target version is set and is >= ``major``."""
        return self.postgres_version is not None and self.postgres_version >= major

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RunConfig:
        """Build a config from plain data (e.g. an already-loaded config file).

        Recognised keys: ``disabled_names`` (or ``disable_checks``),
        ``postgres_version`` and ``custom_rules``, a list of
        ``{"name": ..., "source": ...}`` mappings or ``(name, source)`` pairs.
        """
        unknown = set(data) - {"disabled_names", "disable_checks", "postgres_version", "custom_rules"}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        disabled = data.get("disabled_names", data.get("disable_checks", ()))
        if not isinstance(disabled, (list, tuple, set, frozenset)):
            raise ConfigurationError("disabled_names must be a list of rule names")

        return cls(
            disabled_names=frozenset(str(n) for n in disabled),
            postgres_version=data.get("postgres_version"),
            custom_rule_sources=tuple(data.get("custom_rules", ())),
        )


def _coerce_source(entry: Any) -> CustomRuleSource:
    if isinstance(entry, CustomRuleSource):
        return entry
    if isinstance(entry, dict):
        try:
            entry = (entry["name"], entry["source"])
        except KeyError as e:
            raise ConfigurationError(f"Custom rule entry is missing {e}") from e
    if isinstance(entry, (tuple, list)) and len(entry) == 2:
        name, source = entry
        if isinstance(name, str) and name and isinstance(source, str):
            return CustomRuleSource(name=name, source=source)
    raise ConfigurationError(f"Invalid custom rule entry: {entry!r}")

