# =============================================================================
# Dagster Job Resource - Job client over the Dagster GraphQL API
# =============================================================================
# Launches the external discovery, quality-evaluation and transform jobs as
# Dagster runs and polls them to completion. Result payloads are read from
# the execution store's job_results collection.
# =============================================================================

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import requests
from dagster import ConfigurableResource
from pydantic import Field
from requests.exceptions import RequestException

from libs.models import JobHandle, JobKind, JobResult
from libs.orchestration import SubmissionError

from .mongodb_resource import MongoDBResource

__all__ = ["DagsterJobResource", "DAGSTER_STATUS_MAP"]

# Type alias for JSON-like dictionaries
JsonDict = dict[str, Any]

PARAMETERS_TAG = "gated_pipeline/parameters"
JOB_KIND_TAG = "gated_pipeline/job_kind"

LAUNCH_RUN_MUTATION = """
mutation LaunchRun($executionParams: ExecutionParams!) {
    launchRun(executionParams: $executionParams) {
        __typename
        ... on LaunchRunSuccess {
            run { runId }
        }
        ... on RunConfigValidationInvalid {
            errors { message }
        }
        ... on PipelineNotFoundError { message }
        ... on RunConflict { message }
        ... on UnauthorizedError { message }
        ... on PythonError { message }
    }
}
"""

RUN_STATUS_QUERY = """
query RunStatus($runId: ID!) {
    runOrError(runId: $runId) {
        __typename
        ... on Run { runId status }
        ... on RunNotFoundError { message }
        ... on PythonError { message }
    }
}
"""

# Dagster run status -> job status name
DAGSTER_STATUS_MAP: dict[str, str] = {
    "QUEUED": "running",
    "NOT_STARTED": "running",
    "STARTING": "running",
    "STARTED": "running",
    "MANAGED": "running",
    "CANCELING": "running",
    "SUCCESS": "succeeded",
    "FAILURE": "failed",
    "CANCELED": "failed",
}


class DagsterJobResource(ConfigurableResource):
    """
    Job client that runs each job kind as a Dagster job.

    Submission launches a run through the `launchRun` mutation with the job
    parameters attached as run tags; polling reads the run status through
    `runOrError`. The client never retries: transport errors surface as
    RuntimeError and the scheduler picks the run up again on its next tick.

    Attributes:
        graphql_url: Dagster webserver GraphQL endpoint
        repository_location: Code location hosting the engine jobs
        repository_name: Repository name inside the code location
        discover_job / evaluate_job / transform_job: Job name per job kind
        request_timeout: HTTP timeout in seconds
        results: Store holding the payloads written by finished jobs
    """

    graphql_url: str = Field(..., description="Dagster GraphQL endpoint")
    repository_location: str = Field("engines", description="Code location name")
    repository_name: str = Field("__repository__", description="Repository name")
    discover_job: str = Field("discover_job", description="Metadata discovery job")
    evaluate_job: str = Field("evaluate_quality_job", description="Quality evaluation job")
    transform_job: str = Field("transform_load_job", description="Transform-and-load job")
    request_timeout: float = Field(30.0, description="HTTP timeout in seconds")
    results: MongoDBResource

    def _job_name(self, job_kind: JobKind) -> str:
        return {
            JobKind.DISCOVER: self.discover_job,
            JobKind.EVALUATE: self.evaluate_job,
            JobKind.TRANSFORM: self.transform_job,
        }[job_kind]

    def _execute(self, query: str, variables: Mapping[str, Any]) -> JsonDict:
        """Execute a GraphQL request and return its data section."""
        try:
            response = requests.post(
                self.graphql_url,
                json={"query": query, "variables": dict(variables)},
                timeout=self.request_timeout,
            )
        except RequestException as exc:
            raise RuntimeError(
                f"Failed to communicate with Dagster GraphQL API: {exc}"
            ) from exc

        if response.status_code != 200:
            raise RuntimeError(
                f"GraphQL request failed with status {response.status_code}: "
                f"{response.text}"
            )

        result = response.json()
        if "errors" in result:
            raise RuntimeError(f"GraphQL error: {result['errors']}")
        return result.get("data") or {}

    def submit(self, job_kind: JobKind, parameters: Mapping[str, Any]) -> JobHandle:
        """
        Launch the Dagster job for job_kind.

        Raises:
            SubmissionError: If Dagster rejects the launch (unknown job,
                invalid config, conflict, unauthorized, Python error)
            RuntimeError: On transport failures
        """
        execution_params = {
            "selector": {
                "repositoryLocationName": self.repository_location,
                "repositoryName": self.repository_name,
                "jobName": self._job_name(job_kind),
            },
            "runConfigData": {},
            "executionMetadata": {
                "tags": [
                    {"key": JOB_KIND_TAG, "value": job_kind.value},
                    {"key": PARAMETERS_TAG, "value": json.dumps(dict(parameters), sort_keys=True)},
                ]
            },
        }
        data = self._execute(LAUNCH_RUN_MUTATION, {"executionParams": execution_params})
        launch = data.get("launchRun") or {}

        if launch.get("__typename") == "LaunchRunSuccess":
            return JobHandle(
                job_id=launch["run"]["runId"],
                job_kind=job_kind,
                submitted_at=datetime.now(timezone.utc),
            )

        raise SubmissionError(job_kind.value, self._launch_error_message(launch))

    def poll(self, handle: JobHandle) -> JobResult:
        """
        Poll the Dagster run behind a handle.

        Maps Dagster run statuses onto RUNNING / SUCCEEDED / FAILED and
        RunNotFoundError onto NOT_FOUND. Terminal results are stable: the
        run status and the stored payload no longer change once finished.
        """
        data = self._execute(RUN_STATUS_QUERY, {"runId": handle.job_id})
        run_or_error = data.get("runOrError") or {}
        typename = run_or_error.get("__typename")

        if typename == "RunNotFoundError":
            return JobResult.not_found()
        if typename != "Run":
            raise RuntimeError(
                f"Unexpected response polling run {handle.job_id}: "
                f"{run_or_error.get('message', typename)}"
            )

        dagster_status = run_or_error.get("status", "")
        status = DAGSTER_STATUS_MAP.get(dagster_status)
        if status is None:
            raise RuntimeError(f"Unknown Dagster run status '{dagster_status}'")

        if status == "running":
            return JobResult.running()
        if status == "failed":
            return JobResult.failed(
                f"Dagster run {handle.job_id} finished with {dagster_status}"
            )
        return JobResult.succeeded(self.results.get_job_result(handle.job_id))

    @staticmethod
    def _launch_error_message(launch: JsonDict) -> str:
        typename = launch.get("__typename", "UnknownError")
        if typename == "RunConfigValidationInvalid":
            messages = [e.get("message", "") for e in launch.get("errors", [])]
            return f"{typename}: {'; '.join(messages)}"
        message: Optional[str] = launch.get("message")
        return f"{typename}: {message}" if message else typename
