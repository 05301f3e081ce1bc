"""Scheduler sensor: advances every actionable run once per evaluation."""

from dagster import (
    DefaultSensorStatus,
    SensorEvaluationContext,
    SkipReason,
    sensor,
)

from ..factory import build_orchestrator
from ..resources import (
    DagsterJobResource,
    MinIOResource,
    MongoDBResource,
    WebhookNotifierResource,
)


@sensor(
    minimum_interval_seconds=15,
    default_status=DefaultSensorStatus.RUNNING,
    name="orchestrator_sensor",
    description="Scheduler tick: polls jobs and advances pipeline runs",
)
def orchestrator_sensor(
    context: SensorEvaluationContext,
    minio: MinIOResource,
    mongodb: MongoDBResource,
    dagster_jobs: DagsterJobResource,
    notifier: WebhookNotifierResource,
):
    """
    Run one scheduler tick.

    Run state lives in MongoDB, so the sensor keeps no cursor. Errors on
    individual runs are reported in the tick summary; only a failure to
    build the orchestrator or list runs skips the whole tick.

    Yields:
        SkipReason: With the tick summary
    """
    try:
        orchestrator = build_orchestrator(
            mongodb=mongodb,
            minio=minio,
            dagster_jobs=dagster_jobs,
            notifier=notifier,
        )
        summary = orchestrator.tick()
    except Exception as e:
        context.log.error(f"Scheduler tick failed: {e}")
        yield SkipReason(f"Scheduler tick failed: {e}")
        return

    for run_id, error in summary.errors.items():
        context.log.warning(f"Run {run_id} not advanced: {error}")
    if summary.transitioned:
        context.log.info(f"Runs transitioned: {', '.join(summary.transitioned)}")

    yield SkipReason(f"Scheduler tick: {summary}")
