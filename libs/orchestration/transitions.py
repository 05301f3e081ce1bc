# =============================================================================
# Transition Table
# =============================================================================
# The fixed state graph of a run as a typed table, plus the pure retry
# policy helpers (backoff delay, timeout check). No I/O.
# =============================================================================

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from libs.models import ErrorKind, RunState, Stage

from .errors import InvalidTransition

__all__ = [
    "Outcome",
    "TRANSITIONS",
    "transition",
    "allowed_outcomes",
    "backoff_delay",
    "stage_timed_out",
    "exhausted",
    "abort_error_kind",
]


class Outcome(str, Enum):
    """What happened in the current state."""

    STARTED = "started"  # run picked up for the first time
    SUCCEEDED = "succeeded"  # stage job / side effect completed
    PASSED = "passed"  # quality gate verdict PASS
    REJECTED = "rejected"  # quality gate verdict FAIL
    EXHAUSTED = "exhausted"  # retry ceiling reached
    ABORTED = "aborted"  # non-retryable stage failure


_S = RunState
_O = Outcome

TRANSITIONS: dict[tuple[RunState, Outcome], RunState] = {
    (_S.CREATED, _O.STARTED): _S.DISCOVERING_SOURCE,
    (_S.DISCOVERING_SOURCE, _O.SUCCEEDED): _S.DISCOVERING_TARGET,
    (_S.DISCOVERING_TARGET, _O.SUCCEEDED): _S.EVALUATING_QUALITY,
    (_S.EVALUATING_QUALITY, _O.PASSED): _S.TRANSFORMING,
    (_S.EVALUATING_QUALITY, _O.REJECTED): _S.QUARANTINING,
    (_S.QUARANTINING, _O.SUCCEEDED): _S.FAILED,
    (_S.TRANSFORMING, _O.SUCCEEDED): _S.SUCCEEDED,
}

# Every stage can exhaust its retries or fail without retry
for _state in (
    _S.DISCOVERING_SOURCE,
    _S.DISCOVERING_TARGET,
    _S.EVALUATING_QUALITY,
    _S.QUARANTINING,
    _S.TRANSFORMING,
):
    TRANSITIONS[(_state, _O.EXHAUSTED)] = _S.FAILED
    TRANSITIONS[(_state, _O.ABORTED)] = _S.FAILED


def transition(state: RunState, outcome: Outcome) -> RunState:
    """
    Next state for (state, outcome).

    Raises:
        InvalidTransition: If the pair is not in the table (terminal states
            have no outgoing transitions)
    """
    try:
        return TRANSITIONS[(state, outcome)]
    except KeyError:
        raise InvalidTransition(state.value, outcome.value) from None


def allowed_outcomes(state: RunState) -> set[Outcome]:
    return {outcome for (s, outcome) in TRANSITIONS if s == state}


# -----------------------------------------------------------------------------
# Retry policy
# -----------------------------------------------------------------------------


def backoff_delay(failures: int, base_seconds: float, cap_seconds: float) -> timedelta:
    """
    Delay before re-submitting a stage after its n-th failure.

    Exponential: base, 2*base, 4*base, ... capped at cap_seconds.
    """
    if failures < 1:
        return timedelta(0)
    seconds = min(cap_seconds, base_seconds * (2 ** (failures - 1)))
    return timedelta(seconds=seconds)


def exhausted(failures: int, ceiling: int) -> bool:
    """True once a stage has failed `ceiling` times."""
    return failures >= ceiling


def stage_timed_out(
    started_at: Optional[datetime], budget_seconds: Optional[float], now: datetime
) -> bool:
    if started_at is None or budget_seconds is None:
        return False
    return now - started_at > timedelta(seconds=budget_seconds)


def abort_error_kind(stage: Stage) -> ErrorKind:
    """Error kind for a non-retryable failure of a stage."""
    if stage == Stage.TRANSFORM:
        return ErrorKind.TRANSFORM_ERROR
    return ErrorKind.SUBMISSION_ERROR
