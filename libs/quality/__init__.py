"""Quality gate and ruleset loading."""

from .gate import GateResult, evaluate, evaluate_rule
from .rulesets import RulesetRegistry, UnknownRulesetVersion, load_ruleset

__all__ = [
    "GateResult",
    "evaluate",
    "evaluate_rule",
    "RulesetRegistry",
    "UnknownRulesetVersion",
    "load_ruleset",
]
