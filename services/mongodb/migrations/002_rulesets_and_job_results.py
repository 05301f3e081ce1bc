"""
Migration 002: Ruleset versions and external job results

1. rulesets - every ruleset version a run may refer to (unique version)
2. job_results - payloads written by discovery/evaluation jobs, keyed by the
   Dagster run id of the job
"""

from pymongo.database import Database

VERSION = "002"


def up(db: Database) -> None:
    if "rulesets" not in db.list_collection_names():
        db.create_collection("rulesets")
    db["rulesets"].create_index("version", unique=True, name="version_1")
    db.command(
        "collMod",
        "rulesets",
        validator={
            "$jsonSchema": {
                "bsonType": "object",
                "required": ["version", "rules"],
                "properties": {
                    "version": {"bsonType": "string"},
                    "rules": {"bsonType": "array"},
                    "stored_at": {"bsonType": "date"},
                },
            }
        },
        validationLevel="strict",
        validationAction="error",
    )

    if "job_results" not in db.list_collection_names():
        db.create_collection("job_results")
    db["job_results"].create_index("job_id", unique=True, name="job_id_1")


def down(db: Database) -> None:
    for name in ("job_results", "rulesets"):
        if name in db.list_collection_names():
            db[name].drop()
