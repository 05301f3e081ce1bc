"""Dagster Sensors - Trigger listener and scheduler tick."""

from .landing_sensor import landing_sensor
from .orchestrator_sensor import orchestrator_sensor

__all__ = [
    "landing_sensor",
    "orchestrator_sensor",
]
