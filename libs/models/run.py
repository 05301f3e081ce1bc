# =============================================================================
# Run Model
# =============================================================================
# Defines the Run document tracked in the MongoDB execution store: one record
# per pipeline execution for one triggering object.
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .job import JobHandle, as_utc
from .rules import QualityReport, RuleResult


__all__ = [
    "Run",
    "RunState",
    "Stage",
    "Verdict",
    "ErrorKind",
    "RunError",
    "TERMINAL_STATES",
    "STATE_STAGE",
]


class RunState(str, Enum):
    """States of the run state machine."""

    CREATED = "created"
    DISCOVERING_SOURCE = "discovering_source"
    DISCOVERING_TARGET = "discovering_target"
    EVALUATING_QUALITY = "evaluating_quality"
    QUARANTINING = "quarantining"
    TRANSFORMING = "transforming"
    FAILED = "failed"
    SUCCEEDED = "succeeded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({RunState.FAILED, RunState.SUCCEEDED})


class Stage(str, Enum):
    """Pipeline stages; each non-initial, non-terminal state runs one stage."""

    DISCOVER_SOURCE = "discover_source"
    DISCOVER_TARGET = "discover_target"
    EVALUATE_QUALITY = "evaluate_quality"
    QUARANTINE = "quarantine"
    TRANSFORM = "transform"


STATE_STAGE: dict[RunState, Stage] = {
    RunState.DISCOVERING_SOURCE: Stage.DISCOVER_SOURCE,
    RunState.DISCOVERING_TARGET: Stage.DISCOVER_TARGET,
    RunState.EVALUATING_QUALITY: Stage.EVALUATE_QUALITY,
    RunState.QUARANTINING: Stage.QUARANTINE,
    RunState.TRANSFORMING: Stage.TRANSFORM,
}


class Verdict(str, Enum):
    """Binary quality outcome; UNSET until the gate has run."""

    UNSET = "unset"
    PASS = "pass"
    FAIL = "fail"


class ErrorKind(str, Enum):
    """Error taxonomy recorded on a run."""

    SUBMISSION_ERROR = "SubmissionError"
    JOB_FAILURE = "JobFailure"
    TIMEOUT = "TimeoutError"
    QUALITY_REJECTED = "QualityRejected"
    RETRY_EXHAUSTED = "RetryExhausted"
    TRANSFORM_ERROR = "TransformError"


class RunError(BaseModel):
    """Last error recorded on a run."""

    kind: ErrorKind
    message: str
    stage: Optional[Stage] = None


# States in which the verdict must still be UNSET
_PRE_GATE_STATES = frozenset(
    {
        RunState.CREATED,
        RunState.DISCOVERING_SOURCE,
        RunState.DISCOVERING_TARGET,
        RunState.EVALUATING_QUALITY,
    }
)


class Run(BaseModel):
    """
    Run document model for MongoDB tracking.

    A run is created by the trigger listener when a new object lands, mutated
    only by the run state machine, and retained (never deleted) once it
    reaches a terminal state.

    Attributes:
        run_id: Opaque unique identifier (immutable)
        source_key: Object key of the triggering object (idempotency key)
        location: Full location of the triggering object (s3://bucket/key)
        state: Current state machine state
        attempts: Failure counter per stage name
        catalog_refs: Catalog references by dataset name ("source", "target")
        quality_report: Last quality evaluation result
        rule_results: Per-rule results from the quality gate
        verdict: PASS/FAIL once the gate has run, UNSET before
        error: Last recorded error, cleared on successful transition
        job: Handle of the in-flight external job for the current stage
        stage_started_at: Start of the current stage attempt (timeout budget)
        next_attempt_at: Earliest re-submission time after a backoff
        ruleset_version: Ruleset version the run is evaluated against
        version: Optimistic concurrency counter
        notification_pending: Terminal notification not yet claimed
    """

    run_id: str = Field(..., description="Run identifier (unique)")
    source_key: str = Field(..., description="Triggering object key")
    location: str = Field(..., description="Triggering object location")
    state: RunState = Field(RunState.CREATED, description="Current state")
    attempts: dict[str, int] = Field(default_factory=dict)
    catalog_refs: dict[str, str] = Field(default_factory=dict)
    quality_report: Optional[QualityReport] = None
    rule_results: list[RuleResult] = Field(default_factory=list)
    verdict: Verdict = Verdict.UNSET
    error: Optional[RunError] = None
    job: Optional[JobHandle] = None
    stage_started_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None
    ruleset_version: str = Field(..., description="Ruleset version for evaluation")
    version: int = Field(0, ge=0, description="Optimistic concurrency counter")
    notification_pending: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @field_validator(
        "stage_started_at",
        "next_attempt_at",
        "created_at",
        "updated_at",
        "completed_at",
    )
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """MongoDB returns naive datetimes unless the client is tz-aware."""
        return as_utc(v) if v is not None else None

    @model_validator(mode="after")
    def check_verdict_consistency(self) -> "Run":
        """Keep state and verdict jointly consistent."""
        if self.state in _PRE_GATE_STATES and self.verdict != Verdict.UNSET:
            raise ValueError(
                f"verdict must be UNSET in state {self.state.value}, "
                f"got {self.verdict.value}"
            )
        if self.state == RunState.QUARANTINING and self.verdict != Verdict.FAIL:
            raise ValueError("QUARANTINING requires verdict FAIL")
        if self.state == RunState.TRANSFORMING and self.verdict != Verdict.PASS:
            raise ValueError("TRANSFORMING requires verdict PASS")
        return self

    @property
    def stage(self) -> Optional[Stage]:
        return STATE_STAGE.get(self.state)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def attempts_for(self, stage: Stage) -> int:
        return self.attempts.get(stage.value, 0)

    def to_document(self) -> dict[str, Any]:
        """
        Serialize for MongoDB.

        Uses model_dump() without mode="json" so datetimes stay native and are
        stored as BSON dates; enums are stored by value.
        """
        document = self.model_dump()
        document["state"] = self.state.value
        document["verdict"] = self.verdict.value
        if self.error is not None:
            document["error"] = self.error.model_dump(mode="json")
        if self.job is not None:
            document["job"] = {
                **self.job.model_dump(),
                "job_kind": self.job.job_kind.value,
            }
        if self.quality_report is not None:
            document["quality_report"] = self.quality_report.model_dump(mode="json")
        document["rule_results"] = [r.model_dump(mode="json") for r in self.rule_results]
        return document
