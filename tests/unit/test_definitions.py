"""
Unit tests for the Dagster Definitions wiring.
"""

from dagster import Definitions

from services.dagster.gated_pipeline import definitions
from services.dagster.gated_pipeline.sensors import landing_sensor, orchestrator_sensor


def test_definitions_are_loadable():
    """Every sensor's resource requirements are satisfied."""
    Definitions.validate_loadable(definitions.defs)


def test_sensors_require_wired_resources():
    wired = {"minio", "mongodb", "dagster_jobs", "notifier"}
    assert landing_sensor.required_resource_keys <= wired
    assert orchestrator_sensor.required_resource_keys <= wired
