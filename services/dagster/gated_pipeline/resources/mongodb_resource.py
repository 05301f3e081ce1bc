"""MongoDB Resource - Execution store for pipeline runs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, ClassVar, Dict, Optional

from dagster import ConfigurableResource
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from libs.models import TERMINAL_STATES, Run, RunState, Ruleset
from libs.orchestration import RunNotFound, StoreConflict

__all__ = ["MongoDBResource"]


_TERMINAL_VALUES = [state.value for state in TERMINAL_STATES]


class MongoDBResource(ConfigurableResource):
    """
    Dagster resource for the run execution store.

    This resource is the single source of truth for runs. It is the only
    component that exposes a run by run_id or source_key, and it serializes
    concurrent writes to one run with optimistic versioning.

    Collections:
        runs: one document per run (unique run_id, indexed source_key)
        active_sources: one claim per source_key with a non-terminal run
        run_transitions: append-only transition history
        job_results: payloads written by external jobs, keyed by job_id
        rulesets: every ruleset version a run may refer to
    """

    connection_string: str = Field(..., description="MongoDB connection URI")
    database: str = Field("gated_pipeline", description="MongoDB database name")

    RUNS: ClassVar[str] = "runs"
    ACTIVE_SOURCES: ClassVar[str] = "active_sources"
    TRANSITIONS: ClassVar[str] = "run_transitions"
    JOB_RESULTS: ClassVar[str] = "job_results"
    RULESETS: ClassVar[str] = "rulesets"

    @cached_property
    def _client(self) -> MongoClient:
        return MongoClient(self.connection_string, tz_aware=True)

    def _get_db(self) -> Database:
        return self._client[self.database]

    def _get_collection(self, name: str) -> Collection:
        return self._get_db()[name]

    @staticmethod
    def _strip_object_id(doc: Dict) -> Dict:
        stripped = dict(doc)
        stripped.pop("_id", None)
        return stripped

    def ensure_indexes(self) -> None:
        """
        Create the indexes the store relies on. Idempotent.

        Migrations create the same indexes in deployed databases.
        """
        runs = self._get_collection(self.RUNS)
        runs.create_index("run_id", unique=True, name="run_id_1")
        runs.create_index(
            [("source_key", ASCENDING), ("created_at", DESCENDING)],
            name="source_key_1_created_at_-1",
        )
        runs.create_index("state", name="state_1")
        self._get_collection(self.TRANSITIONS).create_index(
            [("run_id", ASCENDING), ("seq", ASCENDING)],
            name="run_id_1_seq_1",
        )
        self._get_collection(self.JOB_RESULTS).create_index(
            "job_id", unique=True, name="job_id_1"
        )
        self._get_collection(self.RULESETS).create_index(
            "version", unique=True, name="version_1"
        )

    # ------------------------------------------------------------------
    # Run creation
    # ------------------------------------------------------------------

    def create_or_get_run(self, source_key: str, location: str, ruleset_version: str) -> str:
        """
        Return the active run for source_key, creating one if none exists.

        The claim document in active_sources (keyed by source_key) makes
        creation atomic: a duplicate trigger hits DuplicateKeyError and gets
        the existing run_id back. The claim is released when the run reaches
        a terminal state.
        """
        claims = self._get_collection(self.ACTIVE_SOURCES)
        run_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc)

        try:
            claims.insert_one({"_id": source_key, "run_id": run_id, "claimed_at": now})
        except DuplicateKeyError:
            existing = claims.find_one({"_id": source_key})
            if existing is None:
                # Claim released between insert and read; try again
                return self.create_or_get_run(source_key, location, ruleset_version)
            run_id = existing["run_id"]
            stored = self._get_collection(self.RUNS).find_one(
                {"run_id": run_id}, projection={"state": 1}
            )
            if stored is not None and stored["state"] in _TERMINAL_VALUES:
                # Stale claim left by a crash after the terminal write
                claims.delete_one({"_id": source_key, "run_id": run_id})
                return self.create_or_get_run(source_key, location, ruleset_version)

        # Upsert so a crash between claim and insert is repaired by the next trigger
        run = Run(
            run_id=run_id,
            source_key=source_key,
            location=location,
            ruleset_version=ruleset_version,
            created_at=now,
            updated_at=now,
        )
        try:
            self._get_collection(self.RUNS).update_one(
                {"run_id": run_id},
                {"$setOnInsert": run.to_document()},
                upsert=True,
            )
        except DuplicateKeyError:
            pass  # concurrent duplicate trigger inserted the same run
        return run_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_run(self, run_id: str) -> Run:
        """Load a run by run_id; raises RunNotFound if absent."""
        document = self._get_collection(self.RUNS).find_one({"run_id": run_id})
        if not document:
            raise RunNotFound(run_id)
        return Run.model_validate(self._strip_object_id(document))

    def find_runs(self, source_key: str) -> list[Run]:
        """All runs for a source_key, newest first."""
        cursor = self._get_collection(self.RUNS).find(
            {"source_key": source_key},
            sort=[("created_at", DESCENDING)],
        )
        return [Run.model_validate(self._strip_object_id(doc)) for doc in cursor]

    def get_active_run(self, source_key: str) -> Optional[Run]:
        """The non-terminal run for source_key, if any."""
        document = self._get_collection(self.RUNS).find_one(
            {"source_key": source_key, "state": {"$nin": _TERMINAL_VALUES}}
        )
        if not document:
            return None
        return Run.model_validate(self._strip_object_id(document))

    def list_actionable_runs(self) -> list[Run]:
        """
        Runs the scheduler should look at: every non-terminal run plus
        terminal runs whose notification has not been claimed yet.

        Backoff due-times are checked by the caller.
        """
        cursor = self._get_collection(self.RUNS).find(
            {
                "$or": [
                    {"state": {"$nin": _TERMINAL_VALUES}},
                    {"notification_pending": True},
                ]
            },
            sort=[("created_at", ASCENDING)],
        )
        return [Run.model_validate(self._strip_object_id(doc)) for doc in cursor]

    def count_runs_by_state(self) -> dict[str, int]:
        """Number of runs per state, for operator dashboards."""
        counts = {state.value: 0 for state in RunState}
        for doc in self._get_collection(self.RUNS).find({}, projection={"state": 1}):
            counts[doc["state"]] = counts.get(doc["state"], 0) + 1
        return counts

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_run(self, run: Run, expected_version: int) -> Run:
        """
        Compare-and-swap write of a run.

        The write only applies if the stored version still equals
        expected_version; the stored version becomes expected_version + 1.

        Raises:
            StoreConflict: If another writer got there first
        """
        saved = run.model_copy(update={"version": expected_version + 1})
        document = saved.to_document()
        document.pop("run_id")
        document.pop("created_at")

        result = self._get_collection(self.RUNS).update_one(
            {"run_id": run.run_id, "version": expected_version},
            {"$set": document},
        )
        if result.matched_count == 0:
            raise StoreConflict(run.run_id, expected_version)

        if saved.state in TERMINAL_STATES:
            self._get_collection(self.ACTIVE_SOURCES).delete_one(
                {"_id": saved.source_key, "run_id": saved.run_id}
            )
        return saved

    def record_transition(
        self,
        run_id: str,
        from_state: RunState,
        to_state: RunState,
        detail: Optional[str] = None,
    ) -> None:
        """Append one entry to the run's transition history."""
        collection = self._get_collection(self.TRANSITIONS)
        seq = collection.count_documents({"run_id": run_id}) + 1
        collection.insert_one(
            {
                "run_id": run_id,
                "seq": seq,
                "from_state": from_state.value,
                "to_state": to_state.value,
                "detail": detail,
                "recorded_at": datetime.now(timezone.utc),
            }
        )

    # ------------------------------------------------------------------
    # Rulesets
    # ------------------------------------------------------------------

    def save_ruleset(self, ruleset: Ruleset) -> bool:
        """
        Persist a ruleset version if it is not stored yet.

        Rulesets are immutable per version, so an existing version is never
        overwritten. Returns True if the version was inserted.
        """
        result = self._get_collection(self.RULESETS).update_one(
            {"version": ruleset.version},
            {
                "$setOnInsert": {
                    **ruleset.model_dump(mode="json"),
                    "stored_at": datetime.now(timezone.utc),
                }
            },
            upsert=True,
        )
        return result.upserted_id is not None

    def load_rulesets(self) -> list[Ruleset]:
        """Every stored ruleset version."""
        cursor = self._get_collection(self.RULESETS).find({})
        rulesets = []
        for doc in cursor:
            doc = self._strip_object_id(doc)
            doc.pop("stored_at", None)
            rulesets.append(Ruleset.model_validate(doc))
        return rulesets

    # ------------------------------------------------------------------
    # External job results
    # ------------------------------------------------------------------

    def get_job_result(self, job_id: str) -> Optional[dict[str, Any]]:
        """
        Result payload an external job wrote for itself, keyed by job id.

        Discovery jobs write {"catalog_ref": ...}; evaluation jobs write the
        quality report.
        """
        document = self._get_collection(self.JOB_RESULTS).find_one({"job_id": job_id})
        if not document:
            return None
        return dict(document.get("payload") or {})

    def get_history(self, run_id: str) -> list[dict[str, Any]]:
        """Transition history of a run, oldest first."""
        cursor = self._get_collection(self.TRANSITIONS).find(
            {"run_id": run_id},
            sort=[("seq", ASCENDING)],
        )
        return [self._strip_object_id(doc) for doc in cursor]
