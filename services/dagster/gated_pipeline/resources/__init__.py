"""Dagster Resources - External Service Connections."""

from .dagster_job_resource import DagsterJobResource
from .minio_resource import LandingObject, MinIOResource
from .mongodb_resource import MongoDBResource
from .notifier_resource import WebhookNotifierResource

__all__ = [
    "DagsterJobResource",
    "LandingObject",
    "MinIOResource",
    "MongoDBResource",
    "WebhookNotifierResource",
]
