# =============================================================================
# Quality Rule Models
# =============================================================================
# Rule specifications, versioned rulesets, quality evaluation reports and
# per-rule results consumed and produced by the quality gate.
# =============================================================================

import hashlib
import json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

__all__ = [
    "RuleKind",
    "RuleSpec",
    "Ruleset",
    "ColumnMetrics",
    "QualityReport",
    "RuleResult",
]


class RuleKind(str, Enum):
    """Supported quality rule kinds."""

    RANGE = "range"
    COMPLETENESS = "completeness"
    UNIQUENESS = "uniqueness"
    ROW_COUNT = "row_count"


# Parameters each rule kind must carry
_REQUIRED_PARAMETERS: dict[RuleKind, tuple[str, ...]] = {
    RuleKind.RANGE: ("min", "max"),
    RuleKind.COMPLETENESS: ("threshold",),
    RuleKind.UNIQUENESS: ("threshold",),
    RuleKind.ROW_COUNT: (),
}


class RuleSpec(BaseModel):
    """
    One quality rule.

    Attributes:
        name: Unique rule name within a ruleset
        target_field: Column the rule applies to (None for row-level rules)
        kind: range | completeness | uniqueness | row_count (or row-count)
        parameters: Numeric bounds (min/max) or threshold
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    target_field: Optional[str] = None
    kind: RuleKind
    parameters: dict[str, float] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        """Accept hyphenated spellings such as "row-count"."""
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_")
        return v

    @model_validator(mode="after")
    def check_parameters(self) -> "RuleSpec":
        missing = [p for p in _REQUIRED_PARAMETERS[self.kind] if p not in self.parameters]
        if missing:
            raise ValueError(
                f"Rule '{self.name}' of kind {self.kind.value} is missing "
                f"parameters: {missing}"
            )
        if self.kind != RuleKind.ROW_COUNT and not self.target_field:
            raise ValueError(f"Rule '{self.name}' requires a target_field")
        if self.kind == RuleKind.RANGE and self.parameters["min"] > self.parameters["max"]:
            raise ValueError(f"Rule '{self.name}' has min > max")
        return self


class Ruleset(BaseModel):
    """
    A versioned set of rules.

    The ruleset is versioned as a unit. When no version is given, the version
    is derived from a sha256 hash of the canonical JSON of its rules, so the
    same rules always produce the same version.
    """

    model_config = ConfigDict(frozen=True)

    version: str = Field(..., min_length=1)
    rules: tuple[RuleSpec, ...] = Field(default_factory=tuple)

    @model_validator(mode="before")
    @classmethod
    def derive_version(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("version"):
            rules = [
                RuleSpec.model_validate(r).model_dump(mode="json")
                for r in data.get("rules", [])
            ]
            canonical = json.dumps(rules, sort_keys=True, separators=(",", ":"))
            digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
            data = {**data, "version": f"sha256:{digest[:16]}"}
        return data

    @model_validator(mode="after")
    def check_unique_names(self) -> "Ruleset":
        names = [rule.name for rule in self.rules]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate rule names in ruleset: {duplicates}")
        return self


class ColumnMetrics(BaseModel):
    """Observed metrics for one column."""

    min: Optional[float] = None
    max: Optional[float] = None
    completeness: Optional[float] = Field(None, ge=0.0, le=1.0)
    uniqueness: Optional[float] = Field(None, ge=0.0, le=1.0)


class QualityReport(BaseModel):
    """
    Payload of a successful quality evaluation job.

    Engines report raw metrics (row_count, columns) and may additionally
    report rule-level outcomes by rule name (rule_outcomes).
    """

    row_count: Optional[int] = None
    columns: dict[str, ColumnMetrics] = Field(default_factory=dict)
    rule_outcomes: dict[str, bool] = Field(default_factory=dict)


class RuleResult(BaseModel):
    """Outcome of one rule against one report."""

    model_config = ConfigDict(frozen=True)

    rule: str
    passed: bool
    observed: Optional[float] = None
    detail: str = ""
