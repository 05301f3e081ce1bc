"""
Migration 001: Execution store collections

Creates:
1. runs - one document per pipeline run, validated against the run schema
2. active_sources - one claim per source_key with a non-terminal run
3. run_transitions - append-only state transition history

Runs collection schema:
- run_id: unique identifier (uuid4 hex)
- source_key / location: triggering object
- state: created/discovering_source/.../failed/succeeded
- verdict: unset/pass/fail
- version: optimistic concurrency counter
- created_at / updated_at: timestamps
"""

from pymongo.database import Database

VERSION = "001"

RUN_STATES = [
    "created",
    "discovering_source",
    "discovering_target",
    "evaluating_quality",
    "quarantining",
    "transforming",
    "failed",
    "succeeded",
]

ERROR_KINDS = [
    "SubmissionError",
    "JobFailure",
    "TimeoutError",
    "QualityRejected",
    "RetryExhausted",
    "TransformError",
]


def _create_if_missing(db: Database, name: str) -> None:
    if name not in db.list_collection_names():
        db.create_collection(name)


def up(db: Database) -> None:
    """
    Apply this migration.

    Args:
        db: PyMongo Database instance (already connected).
    """
    # ==========================================================================
    # runs
    # ==========================================================================
    _create_if_missing(db, "runs")
    runs = db["runs"]
    runs.create_index("run_id", unique=True, name="run_id_1")
    runs.create_index([("source_key", 1), ("created_at", -1)], name="source_key_1_created_at_-1")
    runs.create_index("state", name="state_1")

    runs_validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": [
                "run_id",
                "source_key",
                "location",
                "state",
                "verdict",
                "ruleset_version",
                "version",
                "created_at",
                "updated_at",
            ],
            "properties": {
                "run_id": {"bsonType": "string"},
                "source_key": {"bsonType": "string"},
                "location": {"bsonType": "string"},
                "state": {"enum": RUN_STATES},
                "attempts": {"bsonType": "object"},
                "catalog_refs": {"bsonType": "object"},
                "quality_report": {"bsonType": ["object", "null"]},
                "rule_results": {"bsonType": "array"},
                "verdict": {"enum": ["unset", "pass", "fail"]},
                "error": {
                    "bsonType": ["object", "null"],
                    "properties": {
                        "kind": {"enum": ERROR_KINDS},
                        "message": {"bsonType": "string"},
                        "stage": {"bsonType": ["string", "null"]},
                    },
                },
                "job": {
                    "bsonType": ["object", "null"],
                    "properties": {
                        "job_id": {"bsonType": "string"},
                        "job_kind": {"enum": ["discover", "evaluate", "transform"]},
                        "submitted_at": {"bsonType": "date"},
                    },
                },
                "stage_started_at": {"bsonType": ["date", "null"]},
                "next_attempt_at": {"bsonType": ["date", "null"]},
                "ruleset_version": {"bsonType": "string"},
                "version": {"bsonType": ["int", "long"], "minimum": 0},
                "notification_pending": {"bsonType": "bool"},
                "created_at": {"bsonType": "date"},
                "updated_at": {"bsonType": "date"},
                "completed_at": {"bsonType": ["date", "null"]},
            },
        }
    }
    db.command(
        "collMod",
        "runs",
        validator=runs_validator,
        validationLevel="strict",
        validationAction="error",
    )

    # ==========================================================================
    # active_sources (keyed by source_key through _id)
    # ==========================================================================
    _create_if_missing(db, "active_sources")
    db["active_sources"].create_index("run_id", name="run_id_1")

    # ==========================================================================
    # run_transitions
    # ==========================================================================
    _create_if_missing(db, "run_transitions")
    db["run_transitions"].create_index(
        [("run_id", 1), ("seq", 1)], name="run_id_1_seq_1"
    )


def down(db: Database) -> None:
    """
    Rollback this migration.

    Note: This rollback is destructive - it drops all run history.
    """
    for name in ("run_transitions", "active_sources", "runs"):
        if name in db.list_collection_names():
            db[name].drop()
