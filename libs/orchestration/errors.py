# =============================================================================
# Orchestrator Errors
# =============================================================================
# Exceptions raised across the job client, execution store and notifier
# boundaries. Errors recorded on a run use libs.models.ErrorKind instead.
# =============================================================================

__all__ = [
    "OrchestratorError",
    "SubmissionError",
    "DeliveryError",
    "StoreConflict",
    "RunNotFound",
    "InvalidTransition",
]


class OrchestratorError(Exception):
    """Base class for orchestrator errors."""


class SubmissionError(OrchestratorError):
    """The external system rejected a job submission (parameters, capacity)."""

    def __init__(self, job_kind: str, reason: str) -> None:
        self.job_kind = job_kind
        self.reason = reason
        super().__init__(f"{job_kind} job rejected: {reason}")


class DeliveryError(OrchestratorError):
    """A terminal notification could not be delivered. Never fatal to a run."""


class StoreConflict(OrchestratorError):
    """An optimistic write found a different version than the one it read."""

    def __init__(self, run_id: str, expected_version: int) -> None:
        self.run_id = run_id
        self.expected_version = expected_version
        super().__init__(
            f"Run {run_id} changed since version {expected_version} was read"
        )


class RunNotFound(OrchestratorError, KeyError):
    """No run exists for the given run_id."""


class InvalidTransition(OrchestratorError):
    """The transition table has no entry for a (state, outcome) pair."""

    def __init__(self, state: str, outcome: str) -> None:
        self.state = state
        self.outcome = outcome
        super().__init__(f"No transition from {state} on {outcome}")
