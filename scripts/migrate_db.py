# =============================================================================
# MongoDB Schema Migration Runner
# =============================================================================
# Applies the execution store migrations in services/mongodb/migrations/ in
# version order, tracking applied versions in schema_migrations. Supports
# rolling back the most recent migrations through their down() functions.
#
# Usage:
#   python scripts/migrate_db.py              # apply pending migrations
#   python scripts/migrate_db.py --status     # list applied / pending
#   python scripts/migrate_db.py --rollback 1 # revert the newest migration
# =============================================================================

import argparse
import importlib.util
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from types import ModuleType
from typing import Callable, Optional

from pymongo import MongoClient
from pymongo.database import Database

from libs.models import MongoSettings

MIGRATIONS_COLLECTION = "schema_migrations"
CONTAINER_MIGRATIONS_DIR = Path("/app/services/mongodb/migrations")

MigrationFunc = Callable[[Database], None]


@dataclass(frozen=True)
class Migration:
    """A loaded migration file."""

    version: str
    name: str
    up: MigrationFunc
    down: Optional[MigrationFunc]


def discover_migrations(migrations_dir: Path) -> list[tuple[str, Path]]:
    """
    Find migration files (NNN_*.py) in migrations_dir, sorted by version.

    Raises:
        ValueError: If the directory is missing or two files share a version
    """
    if not migrations_dir.exists():
        raise ValueError(f"Migrations directory does not exist: {migrations_dir}")

    migrations = []
    seen_versions = set()
    for file_path in migrations_dir.glob("*.py"):
        filename = file_path.name
        if filename.startswith("__"):
            continue
        if not filename[0:3].isdigit():
            print(f"Warning: Skipping file '{filename}' - does not start with 3-digit version", file=sys.stderr)
            continue

        version = filename[0:3]
        if version in seen_versions:
            raise ValueError(f"Duplicate migration version '{version}' found in '{filename}'")
        seen_versions.add(version)
        migrations.append((version, file_path))

    migrations.sort(key=lambda item: item[0])
    return migrations


def _import_file(file_path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(f"migration_{file_path.stem}", file_path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load migration module from {file_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def load_migration(file_path: Path) -> Migration:
    """
    Load a migration file and check its interface.

    A migration defines VERSION (string matching the filename prefix) and a
    callable up(db); down(db) is optional but required for rollback.

    Raises:
        ValueError: If the module does not conform
    """
    module = _import_file(file_path)

    version = getattr(module, "VERSION", None)
    if version is None:
        raise ValueError(f"Migration '{file_path.name}' missing VERSION constant")
    if not isinstance(version, str):
        raise ValueError(f"Migration '{file_path.name}' VERSION must be a string, got {type(version).__name__}")
    if version != file_path.name[0:3]:
        raise ValueError(
            f"Migration '{file_path.name}' VERSION '{version}' "
            f"does not match filename version '{file_path.name[0:3]}'"
        )

    up = getattr(module, "up", None)
    if not callable(up):
        raise ValueError(f"Migration '{file_path.name}' missing up() function")

    down = getattr(module, "down", None)
    if down is not None and not callable(down):
        raise ValueError(f"Migration '{file_path.name}' down must be callable")

    return Migration(version=version, name=file_path.stem, up=up, down=down)


def get_applied_versions(db: Database) -> list[str]:
    """Applied migration versions, oldest first."""
    cursor = db[MIGRATIONS_COLLECTION].find({}, {"version": 1}).sort("version", 1)
    return [doc["version"] for doc in cursor]


def apply_pending(db: Database, migrations_dir: Path) -> list[str]:
    """
    Apply every migration not yet recorded in schema_migrations.

    A failing migration is not recorded, so it is retried on the next run.

    Returns:
        Versions applied by this call
    """
    if MIGRATIONS_COLLECTION not in db.list_collection_names():
        db.create_collection(MIGRATIONS_COLLECTION)
    db[MIGRATIONS_COLLECTION].create_index("version", unique=True, name="version_1")

    applied = set(get_applied_versions(db))
    newly_applied = []
    for version, file_path in discover_migrations(migrations_dir):
        if version in applied:
            continue

        migration = load_migration(file_path)
        print(f"Applying migration {migration.name}...")
        start_time = time.time()
        migration.up(db)
        duration_ms = int((time.time() - start_time) * 1000)

        db[MIGRATIONS_COLLECTION].insert_one({
            "version": version,
            "name": migration.name,
            "applied_at": datetime.now(timezone.utc),
            "duration_ms": duration_ms,
        })
        print(f"Applied migration {version} (took {duration_ms}ms)")
        newly_applied.append(version)

    return newly_applied


def rollback(db: Database, migrations_dir: Path, steps: int = 1) -> list[str]:
    """
    Revert the newest `steps` applied migrations through their down().

    Raises:
        ValueError: If an applied migration has no file or no down()
    """
    files = dict(discover_migrations(migrations_dir))
    reverted = []
    for version in reversed(get_applied_versions(db)[-steps:] if steps > 0 else []):
        if version not in files:
            raise ValueError(f"Applied migration {version} has no file in {migrations_dir}")
        migration = load_migration(files[version])
        if migration.down is None:
            raise ValueError(f"Migration {migration.name} cannot be rolled back (no down())")

        print(f"Reverting migration {migration.name}...")
        migration.down(db)
        db[MIGRATIONS_COLLECTION].delete_one({"version": version})
        reverted.append(version)

    return reverted


def resolve_migrations_dir() -> Path:
    """services/mongodb/migrations next to this checkout, or the container path."""
    local = Path(__file__).parent.absolute().parent / "services" / "mongodb" / "migrations"
    return local if local.exists() else CONTAINER_MIGRATIONS_DIR


def main(argv: Optional[list[str]] = None) -> int:
    """
    Migration runner entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Apply execution store migrations")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--status", action="store_true", help="List applied and pending migrations")
    group.add_argument("--rollback", type=int, metavar="N", help="Revert the newest N migrations")
    args = parser.parse_args(argv)

    try:
        settings = MongoSettings()
        client = MongoClient(settings.connection_string, serverSelectionTimeoutMS=10000)
        try:
            db = client[settings.database]
            migrations_dir = resolve_migrations_dir()

            if args.status:
                applied = set(get_applied_versions(db))
                for version, file_path in discover_migrations(migrations_dir):
                    marker = "applied" if version in applied else "pending"
                    print(f"{version}  {marker:8} {file_path.stem}")
                return 0

            if args.rollback is not None:
                reverted = rollback(db, migrations_dir, args.rollback)
                print(f"Reverted {len(reverted)} migration(s)")
                return 0

            applied = apply_pending(db, migrations_dir)
            print(f"Applied {len(applied)} migration(s); schema is up to date")
            return 0
        finally:
            client.close()

    except Exception as e:
        print(f"Migration failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
