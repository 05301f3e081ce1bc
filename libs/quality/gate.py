# =============================================================================
# Quality Gate
# =============================================================================
# Interprets a completed quality evaluation report against a ruleset and
# produces a PASS/FAIL verdict plus per-rule results. Pure: no I/O.
# =============================================================================

from dataclasses import dataclass
from typing import Optional

from libs.models import (
    ColumnMetrics,
    QualityReport,
    RuleKind,
    RuleResult,
    RuleSpec,
    Ruleset,
    Verdict,
)

__all__ = ["GateResult", "evaluate", "evaluate_rule"]


@dataclass(frozen=True)
class GateResult:
    """Verdict and rule-level results of one gate evaluation."""

    verdict: Verdict
    rule_results: tuple[RuleResult, ...]

    @property
    def failed_rules(self) -> list[str]:
        return [r.rule for r in self.rule_results if not r.passed]

    def summary(self) -> str:
        failed = self.failed_rules
        if not failed:
            return f"{len(self.rule_results)} rule(s) passed"
        return f"{len(failed)} of {len(self.rule_results)} rule(s) failed: {', '.join(failed)}"


def evaluate(report: QualityReport, ruleset: Ruleset) -> GateResult:
    """
    Evaluate every rule of a ruleset against a quality report.

    The overall verdict is conjunctive: FAIL if any rule fails, else PASS.

    Args:
        report: Payload of a successful quality evaluation job
        ruleset: Versioned ruleset to apply

    Returns:
        GateResult with the verdict and one RuleResult per rule, in rule order
    """
    results = tuple(evaluate_rule(rule, report) for rule in ruleset.rules)
    verdict = Verdict.PASS if all(r.passed for r in results) else Verdict.FAIL
    return GateResult(verdict=verdict, rule_results=results)


def evaluate_rule(rule: RuleSpec, report: QualityReport) -> RuleResult:
    """
    Evaluate a single rule.

    Raw metrics take precedence; when the metric a rule needs is absent, the
    engine-reported outcome for the rule name is used. A rule with neither
    fails.
    """
    if rule.kind == RuleKind.ROW_COUNT:
        result = _check_row_count(rule, report.row_count)
    else:
        metrics = report.columns.get(rule.target_field or "")
        result = _CHECKS[rule.kind](rule, metrics)

    if result is not None:
        return result

    outcome = report.rule_outcomes.get(rule.name)
    if outcome is not None:
        return RuleResult(
            rule=rule.name,
            passed=outcome,
            detail="engine-reported outcome",
        )
    return RuleResult(rule=rule.name, passed=False, detail="metric missing from report")


def _check_row_count(rule: RuleSpec, row_count: Optional[int]) -> Optional[RuleResult]:
    if row_count is None:
        return None
    return RuleResult(
        rule=rule.name,
        passed=row_count > 0,
        observed=float(row_count),
        detail=f"row_count={row_count}",
    )


def _check_range(rule: RuleSpec, metrics: Optional[ColumnMetrics]) -> Optional[RuleResult]:
    if metrics is None or metrics.min is None or metrics.max is None:
        return None
    low, high = rule.parameters["min"], rule.parameters["max"]
    # Both observed extremes must lie in [low, high]
    passed = low <= metrics.min and metrics.max <= high
    observed = metrics.min if metrics.min < low else metrics.max
    return RuleResult(
        rule=rule.name,
        passed=passed,
        observed=observed,
        detail=f"observed [{metrics.min}, {metrics.max}] vs [{low}, {high}]",
    )


def _check_fraction(
    rule: RuleSpec, observed: Optional[float], label: str
) -> Optional[RuleResult]:
    if observed is None:
        return None
    threshold = rule.parameters["threshold"]
    return RuleResult(
        rule=rule.name,
        passed=observed >= threshold,
        observed=observed,
        detail=f"{label}={observed} threshold={threshold}",
    )


def _check_completeness(rule: RuleSpec, metrics: Optional[ColumnMetrics]) -> Optional[RuleResult]:
    return _check_fraction(rule, metrics.completeness if metrics else None, "completeness")


def _check_uniqueness(rule: RuleSpec, metrics: Optional[ColumnMetrics]) -> Optional[RuleResult]:
    return _check_fraction(rule, metrics.uniqueness if metrics else None, "uniqueness")


_CHECKS = {
    RuleKind.RANGE: _check_range,
    RuleKind.COMPLETENESS: _check_completeness,
    RuleKind.UNIQUENESS: _check_uniqueness,
}
