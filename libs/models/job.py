# =============================================================================
# Job Models
# =============================================================================
# Handles and results for long-running external jobs (discovery, quality
# evaluation, transform-and-load) driven through the job client.
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["JobKind", "JobStatus", "JobHandle", "JobResult", "as_utc"]


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class JobKind(str, Enum):
    """Kinds of external job the orchestrator can submit."""

    DISCOVER = "discover"
    EVALUATE = "evaluate"
    TRANSFORM = "transform"


class JobStatus(str, Enum):
    """Poll result status of an external job."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_FOUND = "not_found"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


class JobHandle(BaseModel):
    """
    Opaque reference to an in-flight external job.

    Stored on the run so polling can resume after an orchestrator restart.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(..., description="External job identifier")
    job_kind: JobKind
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("submitted_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class JobResult(BaseModel):
    """
    Result of polling a job handle.

    Attributes:
        status: RUNNING, SUCCEEDED, FAILED or NOT_FOUND
        reason: Failure reason reported by the external system
        payload: Terminal SUCCEEDED payload (catalog ref, quality report, ...)
    """

    model_config = ConfigDict(frozen=True)

    status: JobStatus
    reason: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def running(cls) -> "JobResult":
        return cls(status=JobStatus.RUNNING)

    @classmethod
    def succeeded(cls, payload: Optional[dict[str, Any]] = None) -> "JobResult":
        return cls(status=JobStatus.SUCCEEDED, payload=payload or {})

    @classmethod
    def failed(cls, reason: str) -> "JobResult":
        return cls(status=JobStatus.FAILED, reason=reason)

    @classmethod
    def not_found(cls) -> "JobResult":
        return cls(status=JobStatus.NOT_FOUND, reason="job not found")
