"""
Shared pytest fixtures.

Provides rulesets, quality reports, an in-memory execution store (mongomock),
a scripted job client and a controllable clock for state machine tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from unittest.mock import Mock

import mongomock
import pytest

from libs.models import (
    JobHandle,
    JobKind,
    JobResult,
    OrchestratorSettings,
    QualityReport,
    Ruleset,
)
from libs.orchestration import (
    MoveOutcome,
    Orchestrator,
    RunStateMachine,
    SubmissionError,
)
from libs.quality import RulesetRegistry
from services.dagster.gated_pipeline.resources import MongoDBResource


# =============================================================================
# Test doubles
# =============================================================================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeJobClient:
    """
    Job client with scripted outcomes.

    Each submission of a job kind takes the next scripted JobResult for that
    kind; when the script is empty the job succeeds with a default payload.
    Polling returns the result fixed at submission time.
    """

    def __init__(self, report: dict[str, Any] | None = None):
        self.report = report or {}
        self.submissions: list[tuple[JobKind, dict[str, Any]]] = []
        self.polls: list[str] = []
        self.rejected_kinds: set[JobKind] = set()
        self._scripts: dict[JobKind, list[JobResult]] = {kind: [] for kind in JobKind}
        self._results: dict[str, JobResult] = {}

    def script(self, job_kind: JobKind, *results: JobResult) -> None:
        self._scripts[job_kind].extend(results)

    def submitted(self, job_kind: JobKind) -> list[dict[str, Any]]:
        return [params for kind, params in self.submissions if kind == job_kind]

    def submit(self, job_kind: JobKind, parameters: Mapping[str, Any]) -> JobHandle:
        if job_kind in self.rejected_kinds:
            raise SubmissionError(job_kind.value, f"{job_kind.value} job not found")

        self.submissions.append((job_kind, dict(parameters)))
        job_id = f"job-{len(self.submissions)}"
        script = self._scripts[job_kind]
        self._results[job_id] = script.pop(0) if script else self._default(job_kind, parameters)
        return JobHandle(
            job_id=job_id,
            job_kind=job_kind,
            submitted_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        )

    def poll(self, handle: JobHandle) -> JobResult:
        self.polls.append(handle.job_id)
        return self._results.get(handle.job_id, JobResult.not_found())

    def _default(self, job_kind: JobKind, parameters: Mapping[str, Any]) -> JobResult:
        if job_kind == JobKind.DISCOVER:
            return JobResult.succeeded({"catalog_ref": f"catalog://{parameters['location']}"})
        if job_kind == JobKind.EVALUATE:
            return JobResult.succeeded(dict(self.report))
        return JobResult.succeeded({})


# =============================================================================
# Ruleset / Report Fixtures
# =============================================================================

@pytest.fixture
def movie_rules():
    """Rules of the movie dataset: rating in [0, 10], title completeness 0.95."""
    return [
        {
            "name": "imdb_rating_range",
            "target_field": "imdb_rating",
            "kind": "range",
            "parameters": {"min": 0, "max": 10},
        },
        {
            "name": "movie_title_completeness",
            "target_field": "movie_title",
            "kind": "completeness",
            "parameters": {"threshold": 0.95},
        },
    ]


@pytest.fixture
def movie_ruleset(movie_rules):
    return Ruleset(rules=movie_rules)


@pytest.fixture
def passing_report_dict():
    """Ratings within bounds, 99% of titles present."""
    return {
        "row_count": 5000,
        "columns": {
            "imdb_rating": {"min": 1.6, "max": 9.3, "completeness": 1.0},
            "movie_title": {"completeness": 0.99, "uniqueness": 0.97},
        },
    }


@pytest.fixture
def failing_report_dict():
    """Ratings within bounds, only 80% of titles present."""
    return {
        "row_count": 5000,
        "columns": {
            "imdb_rating": {"min": 1.6, "max": 9.3, "completeness": 1.0},
            "movie_title": {"completeness": 0.80, "uniqueness": 0.97},
        },
    }


@pytest.fixture
def passing_report(passing_report_dict):
    return QualityReport(**passing_report_dict)


@pytest.fixture
def failing_report(failing_report_dict):
    return QualityReport(**failing_report_dict)


# =============================================================================
# Execution Store Fixtures
# =============================================================================

@pytest.fixture
def mongomock_client():
    """In-memory MongoDB client for tests."""
    return mongomock.MongoClient()


@pytest.fixture
def mongo_resource(monkeypatch, mongomock_client):
    """MongoDBResource configured to use the mongomock client."""
    monkeypatch.setattr(
        "services.dagster.gated_pipeline.resources.mongodb_resource.MongoClient",
        lambda *args, **kwargs: mongomock_client,
    )
    resource = MongoDBResource(connection_string="mongodb://localhost:27017")
    resource.ensure_indexes()
    return resource


# =============================================================================
# State Machine Fixtures
# =============================================================================

@pytest.fixture
def settings():
    """Orchestrator settings with immediate retries."""
    return OrchestratorSettings(
        retry_ceiling=3,
        backoff_base_seconds=0,
        backoff_cap_seconds=0,
        max_workers=1,
        catalog_database="movies_catalog",
        target_location="s3://data-lake/curated/movies/",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def job_client(passing_report_dict):
    return FakeJobClient(report=passing_report_dict)


@pytest.fixture
def object_store():
    store = Mock()
    store.move_object.return_value = MoveOutcome.OK
    return store


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def rulesets(movie_ruleset):
    return RulesetRegistry(movie_ruleset)


@pytest.fixture
def machine(mongo_resource, job_client, object_store, notifier, rulesets, settings, clock):
    return RunStateMachine(
        store=mongo_resource,
        job_client=job_client,
        object_store=object_store,
        notifier=notifier,
        rulesets=rulesets,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def orchestrator(mongo_resource, machine):
    return Orchestrator(mongo_resource, machine, max_workers=1)
