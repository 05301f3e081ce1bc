"""
Run orchestration.

Sub-modules:
- base: collaborator contracts (job client, store, object store, notifier)
- transitions: fixed transition table and retry policy
- machine: per-run state machine
- orchestrator: run creation and the concurrent scheduler tick
- errors: exceptions raised at collaborator boundaries
"""

from .base import (
    ExecutionStore,
    JobClient,
    MoveOutcome,
    NotificationOutcome,
    Notifier,
    ObjectStore,
)
from .errors import (
    DeliveryError,
    InvalidTransition,
    OrchestratorError,
    RunNotFound,
    StoreConflict,
    SubmissionError,
)
from .machine import STAGE_JOB_KIND, RunStateMachine, build_notification, utc_now
from .orchestrator import Orchestrator, TickSummary
from .transitions import TRANSITIONS, Outcome, backoff_delay, transition

__all__ = [
    "ExecutionStore",
    "JobClient",
    "MoveOutcome",
    "NotificationOutcome",
    "Notifier",
    "ObjectStore",
    "DeliveryError",
    "InvalidTransition",
    "OrchestratorError",
    "RunNotFound",
    "StoreConflict",
    "SubmissionError",
    "STAGE_JOB_KIND",
    "RunStateMachine",
    "build_notification",
    "utc_now",
    "Orchestrator",
    "TickSummary",
    "TRANSITIONS",
    "Outcome",
    "backoff_delay",
    "transition",
]
