"""Landing sensor: turns newly landed objects into orchestrator runs.

The sensor never launches Dagster runs itself. It registers each new object
with the orchestrator, which creates (or returns) the run for its key; the
scheduler sensor then drives the run through its stages.
"""

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
from .cursor import build_cursor, merge_seen, object_token, parse_cursor


@sensor(
    minimum_interval_seconds=30,
    default_status=DefaultSensorStatus.RUNNING,
    name="landing_sensor",
    description="Registers newly landed objects as pipeline runs",
)
def landing_sensor(
    context: SensorEvaluationContext,
    minio: MinIOResource,
    mongodb: MongoDBResource,
    dagster_jobs: DagsterJobResource,
    notifier: WebhookNotifierResource,
):
    """
    Poll the landing prefix and create a run per new object.

    Flow:
    1. List data objects under the landing prefix
    2. Drop objects already seen (key + etag in cursor)
    3. For each new object, create_or_get_run(key, location)
    4. Record successfully registered objects in the cursor

    Objects that fail to register stay out of the cursor and are retried on
    the next evaluation.

    Yields:
        SkipReason: Always; runs are driven by the scheduler sensor
    """
    try:
        objects = minio.list_landing_objects()
    except Exception as e:
        context.log.error(f"Failed to list landing objects: {e}")
        yield SkipReason(f"Error listing landing objects: {e}")
        return

    seen_order = parse_cursor(context.cursor)
    seen_set = set(seen_order)
    new_objects = [
        obj for obj in objects if object_token(obj.key, obj.etag) not in seen_set
    ]

    if not new_objects:
        yield SkipReason("No new landing objects found")
        return

    orchestrator = build_orchestrator(
        mongodb=mongodb,
        minio=minio,
        dagster_jobs=dagster_jobs,
        notifier=notifier,
    )

    registered = []
    failed = 0
    for obj in new_objects:
        try:
            run_id = orchestrator.create_or_get_run(obj.key, minio.location_for(obj.key))
        except Exception as e:
            context.log.error(f"Failed to register '{obj.key}': {e}")
            failed += 1
            continue
        context.log.info(f"Object '{obj.key}' registered as run {run_id}")
        registered.append(object_token(obj.key, obj.etag))

    if registered:
        context.update_cursor(build_cursor(merge_seen(seen_order, registered)))

    message = f"Registered {len(registered)} landing object(s)"
    if failed:
        message += f", {failed} failed"
    yield SkipReason(message)
