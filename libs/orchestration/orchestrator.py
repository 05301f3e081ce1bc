# =============================================================================
# Orchestrator
# =============================================================================
# Entry points used by the trigger listener and the scheduling loop:
# idempotent run creation and a scheduler tick that advances every actionable
# run concurrently, one worker per run.
# =============================================================================

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Optional

from libs.models import Run

from .base import ExecutionStore
from .machine import RunStateMachine

__all__ = ["Orchestrator", "TickSummary"]

logger = logging.getLogger(__name__)


@dataclass
class TickSummary:
    """What one scheduler tick did."""

    examined: int = 0
    advanced: list[str] = field(default_factory=list)
    transitioned: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        return (
            f"examined={self.examined} advanced={len(self.advanced)} "
            f"transitioned={len(self.transitioned)} deferred={len(self.deferred)} "
            f"errors={len(self.errors)}"
        )


class Orchestrator:
    """
    Creates runs and drives them to completion.

    State lives entirely in the execution store, so a restarted orchestrator
    resumes by scanning for non-terminal runs on its next tick.
    """

    def __init__(
        self,
        store: ExecutionStore,
        machine: RunStateMachine,
        *,
        max_workers: Optional[int] = None,
    ) -> None:
        self.store = store
        self.machine = machine
        self.max_workers = max_workers or machine.settings.max_workers

    def create_or_get_run(self, source_key: str, location: str) -> str:
        """
        Idempotently create a run for a triggering object.

        A duplicate trigger while a non-terminal run exists for source_key is
        a no-op returning the existing run_id. Once the prior run is terminal,
        a new run is created (reprocessing of a corrected file).
        """
        ruleset_version = self.machine.rulesets.active.version
        run_id = self.store.create_or_get_run(source_key, location, ruleset_version)
        logger.info("Trigger for '%s' -> run %s", source_key, run_id)
        return run_id

    def tick(self) -> TickSummary:
        """
        Advance every actionable run by one step.

        Each run is advanced in its own worker; a failure advancing one run is
        logged and recorded in the summary without affecting the others.
        """
        summary = TickSummary()
        runs = [run for run in self.store.list_actionable_runs() if self.machine.is_due(run)]
        summary.examined = len(runs)
        if not runs:
            return summary

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="run") as pool:
            futures = {pool.submit(self.machine.advance, run.run_id): run for run in runs}
            for future in as_completed(futures):
                before = futures[future]
                try:
                    after = future.result()
                except Exception as exc:
                    logger.exception("Run %s: error while advancing", before.run_id)
                    summary.errors[before.run_id] = f"{type(exc).__name__}: {exc}"
                    continue
                self._record(summary, before, after)

        logger.info("Scheduler tick: %s", summary)
        return summary

    def drive(self, run_id: str, max_steps: int = 100) -> Run:
        """
        Advance a single run repeatedly until it stops changing.

        Stops once the run is terminal and notified, is waiting on a backoff,
        or a step leaves it unchanged (its job is still running).
        """
        run = self.store.get_run(run_id)
        for _ in range(max_steps):
            if not self.machine.is_due(run):
                break
            after = self.machine.advance(run_id)
            if after is None:
                break
            if after.version == run.version:
                run = after
                break
            run = after
        return run

    @staticmethod
    def _record(summary: TickSummary, before: Run, after: Optional[Run]) -> None:
        if after is None:
            summary.deferred.append(before.run_id)
            return
        if after.version != before.version:
            summary.advanced.append(before.run_id)
        if after.state != before.state:
            summary.transitioned.append(before.run_id)
