# =============================================================================
# Ruleset Loading and Registry
# =============================================================================
# Loads versioned rulesets from JSON files and keeps every version a run may
# still refer to, so a run is always evaluated against the ruleset version it
# recorded at creation.
# =============================================================================

import json
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from libs.models import Ruleset

__all__ = ["load_ruleset", "RulesetRegistry", "UnknownRulesetVersion"]


class UnknownRulesetVersion(KeyError):
    """Raised when a run refers to a ruleset version that is not registered."""


def load_ruleset(path: Union[str, Path]) -> Ruleset:
    """
    Load a ruleset from a JSON file.

    Expected format:
        {"version": "2024-06-01", "rules": [{"name": ..., "kind": ..., ...}]}

    The "version" key is optional; without it the version is derived from a
    hash of the rules.

    Raises:
        FileNotFoundError: If the file does not exist
        RuntimeError: If the file is not valid JSON or not a valid ruleset
    """
    ruleset_path = Path(path)
    if not ruleset_path.exists():
        raise FileNotFoundError(f"Ruleset file not found: {ruleset_path}")

    try:
        data = json.loads(ruleset_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Ruleset '{ruleset_path}' contains invalid JSON: {exc}") from exc

    try:
        return Ruleset.model_validate(data)
    except ValidationError as exc:
        raise RuntimeError(f"Ruleset '{ruleset_path}' is invalid: {exc.errors()}") from exc


class RulesetRegistry:
    """
    In-process registry of ruleset versions.

    The active version is assigned to newly created runs; older versions stay
    resolvable for in-flight runs created before a ruleset change.
    """

    def __init__(self, active: Ruleset) -> None:
        self._rulesets: dict[str, Ruleset] = {}
        self._active_version = active.version
        self.register(active)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "RulesetRegistry":
        return cls(load_ruleset(path))

    @property
    def active(self) -> Ruleset:
        return self._rulesets[self._active_version]

    def register(self, ruleset: Ruleset) -> None:
        existing = self._rulesets.get(ruleset.version)
        if existing is not None and existing != ruleset:
            raise ValueError(
                f"Ruleset version '{ruleset.version}' is already registered "
                f"with different rules; rulesets are immutable per version"
            )
        self._rulesets[ruleset.version] = ruleset

    def activate(self, ruleset: Ruleset) -> None:
        self.register(ruleset)
        self._active_version = ruleset.version

    def get(self, version: str) -> Ruleset:
        try:
            return self._rulesets[version]
        except KeyError:
            raise UnknownRulesetVersion(version) from None

    def versions(self) -> list[str]:
        return sorted(self._rulesets)
