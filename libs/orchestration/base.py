# =============================================================================
# Collaborator Contracts
# =============================================================================
# Structural interfaces for the collaborators the run state machine drives:
# job client, execution store, raw/quarantine object store and notifier.
# Dagster resources in services/dagster satisfy these without inheriting.
# =============================================================================

from enum import Enum
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from libs.models import JobHandle, JobKind, JobResult, Run, RunState

__all__ = [
    "JobClient",
    "ExecutionStore",
    "ObjectStore",
    "MoveOutcome",
    "Notifier",
    "NotificationOutcome",
]


@runtime_checkable
class JobClient(Protocol):
    """
    Uniform interface to long-running external jobs.

    The client never retries: retry policy belongs to the state machine so
    retry counts stay attributable to a pipeline stage.
    """

    def submit(self, job_kind: JobKind, parameters: Mapping[str, Any]) -> JobHandle:
        """
        Submit a job.

        Raises:
            SubmissionError: If the external system rejects the request
        """
        ...

    def poll(self, handle: JobHandle) -> JobResult:
        """
        Poll a job. Side-effect free; repeated polls of a terminal handle
        return the same terminal result.
        """
        ...


@runtime_checkable
class ExecutionStore(Protocol):
    """Durable run records with optimistic concurrency."""

    def create_or_get_run(self, source_key: str, location: str, ruleset_version: str) -> str:
        """Return the active run for source_key, creating one if none exists."""
        ...

    def get_run(self, run_id: str) -> Run:
        """Raises RunNotFound if no such run exists."""
        ...

    def find_runs(self, source_key: str) -> list[Run]:
        ...

    def list_actionable_runs(self) -> list[Run]:
        """Non-terminal runs plus terminal runs with a pending notification."""
        ...

    def save_run(self, run: Run, expected_version: int) -> Run:
        """
        Compare-and-swap write.

        Raises:
            StoreConflict: If the stored version is not expected_version
        """
        ...

    def record_transition(
        self,
        run_id: str,
        from_state: RunState,
        to_state: RunState,
        detail: Optional[str] = None,
    ) -> None:
        ...


class MoveOutcome(str, Enum):
    """Result of moving an object in the raw/quarantine store."""

    OK = "ok"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"


@runtime_checkable
class ObjectStore(Protocol):
    def move_object(self, source_key: str, destination_prefix: str) -> MoveOutcome:
        ...


class NotificationOutcome(str, Enum):
    """Terminal outcome reported to the notifier."""

    SUCCESS = "success"
    REJECTED = "rejected"  # designed quality failure, not a defect
    FAILURE = "failure"


@runtime_checkable
class Notifier(Protocol):
    def notify(self, run_id: str, outcome: NotificationOutcome, summary: str) -> None:
        """
        Deliver a terminal notification.

        Raises:
            DeliveryError: If delivery fails
        """
        ...
