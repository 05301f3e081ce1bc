"""Dagster Definitions - Repository Configuration.

Wires the orchestrator resources and sensors for the quality-gated pipeline.
The discovery, evaluation and transform jobs live in their own code location
and are launched through the Dagster GraphQL API.
"""

from dagster import Definitions, EnvVar

from .resources import (
    DagsterJobResource,
    MinIOResource,
    MongoDBResource,
    WebhookNotifierResource,
)
from .sensors import landing_sensor, orchestrator_sensor


# =============================================================================
# Resources
# =============================================================================

mongodb = MongoDBResource(
    connection_string=EnvVar("MONGO_CONNECTION_STRING"),
    database="gated_pipeline",
)


# =============================================================================
# Definitions
# =============================================================================

defs = Definitions(
    resources={
        "minio": MinIOResource(
            endpoint=EnvVar("MINIO_ENDPOINT"),
            access_key=EnvVar("MINIO_ROOT_USER"),
            secret_key=EnvVar("MINIO_ROOT_PASSWORD"),
            use_ssl=False,
            landing_bucket="landing-zone",
            landing_prefix="raw/",
            quarantine_prefix="quarantine/",
        ),
        "mongodb": mongodb,
        "dagster_jobs": DagsterJobResource(
            graphql_url=EnvVar("DAGSTER_GRAPHQL_URL"),
            repository_location="engines",
            results=mongodb,
        ),
        "notifier": WebhookNotifierResource(
            webhook_url=EnvVar("NOTIFIER_WEBHOOK_URL"),
        ),
    },
    schedules=[],
    sensors=[
        landing_sensor,  # Trigger listener: landing objects -> runs
        orchestrator_sensor,  # Scheduler tick: advances runs
    ],
)
