# =============================================================================
# Data Models Library
# =============================================================================
# Pydantic models and settings for the quality-gated pipeline orchestrator.
# =============================================================================

"""
Data models for the orchestrator.

This library provides:
- Run: execution store record and its state/verdict/error enums
- Job models: handles and poll results for external jobs
- Rule models: rule specs, versioned rulesets, quality reports
- Configuration models
"""

__version__ = "0.1.0"

# Job models
from .job import (
    JobHandle,
    JobKind,
    JobResult,
    JobStatus,
)

# Rule models
from .rules import (
    ColumnMetrics,
    QualityReport,
    RuleKind,
    RuleResult,
    RuleSpec,
    Ruleset,
)

# Run models
from .run import (
    STATE_STAGE,
    TERMINAL_STATES,
    ErrorKind,
    Run,
    RunError,
    RunState,
    Stage,
    Verdict,
)

# Configuration models
from .config import (
    MongoSettings,
    OrchestratorSettings,
)

__all__ = [
    # Job models
    "JobHandle",
    "JobKind",
    "JobResult",
    "JobStatus",
    # Rule models
    "ColumnMetrics",
    "QualityReport",
    "RuleKind",
    "RuleResult",
    "RuleSpec",
    "Ruleset",
    # Run models
    "STATE_STAGE",
    "TERMINAL_STATES",
    "ErrorKind",
    "Run",
    "RunError",
    "RunState",
    "Stage",
    "Verdict",
    # Configuration models
    "MongoSettings",
    "OrchestratorSettings",
]
