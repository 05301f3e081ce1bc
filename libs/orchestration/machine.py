# =============================================================================
# Run State Machine
# =============================================================================
# Advances one run by one step: applies the transition table, submits the job
# of a stage only after entering it is stored, polls it, and emits the terminal
# notification exactly once. All cross-stage data lives on the Run record in
# the execution store.
# =============================================================================

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError

from libs.models import (
    ErrorKind,
    JobKind,
    JobStatus,
    OrchestratorSettings,
    QualityReport,
    Run,
    RunError,
    RunState,
    Stage,
    Verdict,
)
from libs.quality import RulesetRegistry, evaluate

from .base import (
    ExecutionStore,
    JobClient,
    MoveOutcome,
    NotificationOutcome,
    Notifier,
    ObjectStore,
)
from .errors import DeliveryError, StoreConflict, SubmissionError
from .transitions import (
    Outcome,
    abort_error_kind,
    backoff_delay,
    exhausted,
    stage_timed_out,
    transition,
)

__all__ = ["RunStateMachine", "STAGE_JOB_KIND", "build_notification", "utc_now"]

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

STAGE_JOB_KIND: dict[Stage, JobKind] = {
    Stage.DISCOVER_SOURCE: JobKind.DISCOVER,
    Stage.DISCOVER_TARGET: JobKind.DISCOVER,
    Stage.EVALUATE_QUALITY: JobKind.EVALUATE,
    Stage.TRANSFORM: JobKind.TRANSFORM,
}

# (updated run, history detail) or None when nothing changed
Step = Optional[tuple[Run, str]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _evolve(run: Run, **changes: Any) -> Run:
    """Copy a run with changes, re-running model validation."""
    new_verdict = changes.get("verdict", run.verdict)
    if run.verdict != Verdict.UNSET and new_verdict != run.verdict:
        raise ValueError(
            f"Run {run.run_id}: verdict is immutable once set "
            f"({run.verdict.value} -> {new_verdict.value})"
        )
    return Run.model_validate({**run.model_dump(), **changes})


def build_notification(run: Run) -> tuple[NotificationOutcome, str]:
    """Outcome and human-readable summary for a terminal run."""
    if run.state == RunState.SUCCEEDED:
        return (
            NotificationOutcome.SUCCESS,
            f"Run {run.run_id} for '{run.source_key}' succeeded: quality verdict "
            f"{run.verdict.value.upper()} (ruleset {run.ruleset_version}), "
            f"loaded into {run.catalog_refs.get('target', 'target')}",
        )
    error = run.error
    if error is not None and error.kind == ErrorKind.QUALITY_REJECTED:
        return (
            NotificationOutcome.REJECTED,
            f"Run {run.run_id} for '{run.source_key}' rejected by quality gate "
            f"(verdict FAIL, ruleset {run.ruleset_version}): {error.message}",
        )
    kind = error.kind.value if error else "UnknownError"
    message = error.message if error else "no error recorded"
    return (
        NotificationOutcome.FAILURE,
        f"Run {run.run_id} for '{run.source_key}' failed with {kind}: {message}",
    )


class RunStateMachine:
    """
    Per-run finite state machine.

    One call to advance() performs at most one transition, one job submission
    or one retry bookkeeping write for one run. Writes are compare-and-swap;
    on a store conflict the run is re-read and the step re-applied.

    Args:
        store: Execution store holding run records
        job_client: Client for discovery, evaluation and transform jobs
        object_store: Raw/quarantine store used by the quarantine stage
        notifier: Terminal notification transport
        rulesets: Registry resolving each run's ruleset_version
        settings: Retry, backoff, timeout and target configuration
        quarantine_prefix: Destination prefix for rejected objects
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: ExecutionStore,
        job_client: JobClient,
        object_store: ObjectStore,
        notifier: Notifier,
        rulesets: RulesetRegistry,
        settings: Optional[OrchestratorSettings] = None,
        *,
        quarantine_prefix: str = "quarantine/",
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.job_client = job_client
        self.object_store = object_store
        self.notifier = notifier
        self.rulesets = rulesets
        self.settings = settings or OrchestratorSettings()
        self.quarantine_prefix = quarantine_prefix
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def advance(self, run_id: str) -> Optional[Run]:
        """
        Advance a run by one step.

        Returns:
            The run as stored after the step, or None if every attempt hit a
            store conflict (the next scheduler tick picks the run up again)
        """
        for attempt in range(1, self.settings.max_conflict_retries + 1):
            run = self.store.get_run(run_id)

            if run.is_terminal:
                if run.notification_pending:
                    return self._deliver_notification(run)
                return run

            step = self._step(run)
            if step is None:
                return run
            updated, detail = step

            try:
                saved = self.store.save_run(updated, expected_version=run.version)
            except StoreConflict:
                if updated.job is not None and updated.job != run.job:
                    logger.warning(
                        "Run %s: handle of %s job %s not stored; the job may be orphaned",
                        run_id,
                        updated.job.job_kind.value,
                        updated.job.job_id,
                    )
                logger.debug(
                    "Run %s: store conflict on attempt %d, re-reading", run_id, attempt
                )
                continue

            if saved.state != run.state:
                self.store.record_transition(run_id, run.state, saved.state, detail)
                logger.info(
                    "Run %s: %s -> %s (%s)",
                    run_id,
                    run.state.value,
                    saved.state.value,
                    detail,
                )

            if saved.is_terminal:
                return self._deliver_notification(saved)
            return saved

        logger.warning(
            "Run %s: gave up after %d store conflicts; deferring to next tick",
            run_id,
            self.settings.max_conflict_retries,
        )
        return None

    def is_due(self, run: Run, now: Optional[datetime] = None) -> bool:
        """Whether the scheduler should advance this run now."""
        if run.is_terminal:
            return run.notification_pending
        if run.next_attempt_at is None:
            return True
        return run.next_attempt_at <= (now or self._clock())

    # ------------------------------------------------------------------
    # Step computation
    # ------------------------------------------------------------------

    def _step(self, run: Run) -> Step:
        now = self._clock()

        if run.state == RunState.CREATED:
            return self._enter(run, Outcome.STARTED, now)

        stage = run.stage
        if stage is None:
            return None

        if run.next_attempt_at is not None and now < run.next_attempt_at:
            return None

        if stage == Stage.QUARANTINE:
            return self._quarantine(run, now)

        if run.job is None:
            # Stage entered (or backoff elapsed) and its state is stored
            return self._submit(run, stage, now)

        budget = self.settings.timeout_for(run.job.job_kind)
        try:
            result = self.job_client.poll(run.job)
        except Exception as exc:
            if not stage_timed_out(run.stage_started_at, budget, now):
                raise
            return self._fail_attempt(
                run,
                stage,
                ErrorKind.TIMEOUT,
                f"{run.job.job_kind.value} job {run.job.job_id} could not be polled "
                f"within its {budget:.0f}s budget: {exc}",
                now,
            )

        if result.status == JobStatus.RUNNING:
            if stage_timed_out(run.stage_started_at, budget, now):
                return self._fail_attempt(
                    run,
                    stage,
                    ErrorKind.TIMEOUT,
                    f"{run.job.job_kind.value} job {run.job.job_id} exceeded "
                    f"its {budget:.0f}s budget",
                    now,
                )
            return None

        if result.status == JobStatus.SUCCEEDED:
            return self._on_success(run, stage, result.payload, now)

        reason = result.reason or result.status.value
        if result.status == JobStatus.NOT_FOUND:
            reason = f"job {run.job.job_id} not found"
        return self._fail_attempt(run, stage, ErrorKind.JOB_FAILURE, reason, now)

    def _on_success(self, run: Run, stage: Stage, payload: dict[str, Any], now: datetime) -> Step:
        if stage in (Stage.DISCOVER_SOURCE, Stage.DISCOVER_TARGET):
            catalog_ref = payload.get("catalog_ref")
            if not catalog_ref:
                return self._fail_attempt(
                    run, stage, ErrorKind.JOB_FAILURE, "discovery returned no catalog_ref", now
                )
            dataset = "source" if stage == Stage.DISCOVER_SOURCE else "target"
            return self._enter(
                run,
                Outcome.SUCCEEDED,
                now,
                catalog_refs={**run.catalog_refs, dataset: str(catalog_ref)},
            )

        if stage == Stage.EVALUATE_QUALITY:
            try:
                report = QualityReport.model_validate(payload)
            except ValidationError as exc:
                return self._fail_attempt(
                    run,
                    stage,
                    ErrorKind.JOB_FAILURE,
                    f"malformed quality report: {exc.error_count()} error(s)",
                    now,
                )
            gate = evaluate(report, self.rulesets.get(run.ruleset_version))
            outcome = Outcome.PASSED if gate.verdict == Verdict.PASS else Outcome.REJECTED
            return self._enter(
                run,
                outcome,
                now,
                quality_report=report,
                rule_results=list(gate.rule_results),
                verdict=gate.verdict,
                detail=gate.summary(),
            )

        return self._enter(run, Outcome.SUCCEEDED, now)

    def _quarantine(self, run: Run, now: datetime) -> Step:
        moved = self.object_store.move_object(run.source_key, self.quarantine_prefix)

        if moved == MoveOutcome.PERMISSION_DENIED:
            return self._fail_attempt(
                run,
                Stage.QUARANTINE,
                ErrorKind.JOB_FAILURE,
                f"permission denied moving '{run.source_key}' to '{self.quarantine_prefix}'",
                now,
            )
        if moved == MoveOutcome.NOT_FOUND:
            # An earlier attempt moved it before its write landed
            logger.warning(
                "Run %s: '%s' not found in landing zone; treating as already quarantined",
                run.run_id,
                run.source_key,
            )

        failed = [r.rule for r in run.rule_results if not r.passed]
        error = RunError(
            kind=ErrorKind.QUALITY_REJECTED,
            message=f"failed rules: {', '.join(failed) or 'none recorded'}",
            stage=Stage.QUARANTINE,
        )
        return self._enter(run, Outcome.SUCCEEDED, now, error=error)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _enter(self, run: Run, outcome: Outcome, now: datetime, detail: str = "", **changes: Any) -> Step:
        """
        Apply a transition.

        The new stage's job is not submitted here: the next step submits it,
        once this transition is stored.
        """
        target = transition(run.state, outcome)
        changes.setdefault("error", None)
        changes.update(
            state=target,
            job=None,
            stage_started_at=None,
            next_attempt_at=None,
            updated_at=now,
        )
        if target.is_terminal:
            changes.update(completed_at=now, notification_pending=True)

        return _evolve(run, **changes), detail or outcome.value

    def _submit(self, run: Run, stage: Stage, now: datetime) -> Step:
        job_kind = STAGE_JOB_KIND[stage]
        try:
            handle = self.job_client.submit(job_kind, self._parameters(run, stage))
        except SubmissionError as exc:
            logger.error("Run %s: %s submission rejected: %s", run.run_id, stage.value, exc.reason)
            error = RunError(kind=abort_error_kind(stage), message=exc.reason, stage=stage)
            return self._enter(run, Outcome.ABORTED, now, error=error)

        updated = _evolve(
            run,
            job=handle,
            stage_started_at=now,
            next_attempt_at=None,
            updated_at=now,
        )
        return updated, f"submitted {job_kind.value} job {handle.job_id}"

    def _fail_attempt(
        self, run: Run, stage: Stage, kind: ErrorKind, message: str, now: datetime
    ) -> Step:
        failures = run.attempts_for(stage) + 1
        attempts = {**run.attempts, stage.value: failures}

        if exhausted(failures, self.settings.retry_ceiling):
            logger.error(
                "Run %s: %s failed %d time(s), retry ceiling reached: %s",
                run.run_id,
                stage.value,
                failures,
                message,
            )
            error = RunError(
                kind=ErrorKind.RETRY_EXHAUSTED,
                message=f"{stage.value} failed {failures} time(s); last error {kind.value}: {message}",
                stage=stage,
            )
            return self._enter(run, Outcome.EXHAUSTED, now, attempts=attempts, error=error)

        delay = backoff_delay(
            failures, self.settings.backoff_base_seconds, self.settings.backoff_cap_seconds
        )
        logger.warning(
            "Run %s: %s attempt %d failed (%s: %s); retrying in %.0fs",
            run.run_id,
            stage.value,
            failures,
            kind.value,
            message,
            delay.total_seconds(),
        )
        updated = _evolve(
            run,
            attempts=attempts,
            error=RunError(kind=kind, message=message, stage=stage),
            job=None,
            stage_started_at=None,
            next_attempt_at=now + delay,
            updated_at=now,
        )
        return updated, f"{stage.value} attempt {failures} failed"

    def _parameters(self, run: Run, stage: Stage) -> dict[str, Any]:
        if stage == Stage.DISCOVER_SOURCE:
            return {"location": run.location, "catalog_database": self.settings.catalog_database}
        if stage == Stage.DISCOVER_TARGET:
            return {
                "location": self.settings.target_location,
                "catalog_database": self.settings.catalog_database,
            }
        if stage == Stage.EVALUATE_QUALITY:
            return {
                "catalog_ref": run.catalog_refs["source"],
                "ruleset_version": run.ruleset_version,
            }
        if stage == Stage.TRANSFORM:
            return {
                "catalog_ref": run.catalog_refs["source"],
                "target_catalog_ref": run.catalog_refs["target"],
            }
        raise ValueError(f"Stage {stage.value} has no external job")

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def _deliver_notification(self, run: Run) -> Run:
        """
        Claim and send the terminal notification.

        The claim is a compare-and-swap write clearing notification_pending,
        so at most one worker ever calls the notifier for a run.
        """
        claimed = _evolve(run, notification_pending=False, updated_at=self._clock())
        try:
            saved = self.store.save_run(claimed, expected_version=run.version)
        except StoreConflict:
            logger.debug("Run %s: notification already claimed", run.run_id)
            return self.store.get_run(run.run_id)

        outcome, summary = build_notification(saved)
        try:
            self.notifier.notify(saved.run_id, outcome, summary)
        except DeliveryError as exc:
            logger.error("Run %s: notification delivery failed: %s", saved.run_id, exc)
        else:
            logger.info("Run %s: notified %s", saved.run_id, outcome.value)
        return saved
