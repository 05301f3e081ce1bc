# =============================================================================
# Configuration Models Module
# =============================================================================
# Provides Pydantic Settings models read outside Dagster resources:
# - MongoSettings: MongoDB execution store configuration
# - OrchestratorSettings: retry, backoff, timeout and scheduling policy
# =============================================================================

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .job import JobKind

__all__ = [
    "MongoSettings",
    "OrchestratorSettings",
]


# =============================================================================
# MongoDB Settings (Execution Store)
# =============================================================================

class MongoSettings(BaseSettings):
    """
    Configuration for MongoDB (execution store).

    Maps environment variables with prefix "MONGO_":
    - MONGO_HOST → host
    - MONGO_PORT → port
    - MONGO_INITDB_ROOT_USERNAME → username
    - MONGO_INITDB_ROOT_PASSWORD → password
    - MONGO_DATABASE → database
    - MONGO_AUTH_SOURCE → auth_source
    """

    host: str = Field("mongodb", validation_alias="MONGO_HOST", description="MongoDB host")
    port: int = Field(27017, validation_alias="MONGO_PORT", description="MongoDB port")
    username: str = Field(..., validation_alias="MONGO_INITDB_ROOT_USERNAME", description="MongoDB username (maps from MONGO_INITDB_ROOT_USERNAME)")
    password: str = Field(..., validation_alias="MONGO_INITDB_ROOT_PASSWORD", description="MongoDB password (maps from MONGO_INITDB_ROOT_PASSWORD)")
    database: str = Field("gated_pipeline", validation_alias="MONGO_DATABASE", description="Database name")
    auth_source: str = Field("admin", validation_alias="MONGO_AUTH_SOURCE", description="Authentication source")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )

    @property
    def connection_string(self) -> str:
        """
        Build MongoDB connection URI.

        Format: mongodb://[username]:[password]@[host]:[port]/[database]?authSource=[auth_source]
        """
        return (
            f"mongodb://{self.username}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?authSource={self.auth_source}"
        )


# =============================================================================
# Orchestrator Settings (Retry / Backoff / Timeouts)
# =============================================================================

class OrchestratorSettings(BaseSettings):
    """
    Policy for the run state machine and scheduler.

    Attributes:
        retry_ceiling: Failed attempts per stage before RetryExhausted (default 3)
        backoff_base_seconds: First retry delay (default 30s)
        backoff_cap_seconds: Maximum retry delay (default 10 min)
        stage_timeouts: Wall-clock budget per job kind, in seconds
        max_workers: Runs advanced concurrently per scheduler tick
        max_conflict_retries: Re-read/re-apply attempts on a store conflict
        catalog_database: Catalog database passed to discovery jobs
        target_location: Destination location discovered as the target schema
        ruleset_path: JSON ruleset file loaded as the active ruleset
    """

    retry_ceiling: int = Field(3, ge=1, validation_alias="ORCHESTRATOR_RETRY_CEILING")
    backoff_base_seconds: float = Field(30.0, ge=0, validation_alias="ORCHESTRATOR_BACKOFF_BASE_SECONDS")
    backoff_cap_seconds: float = Field(600.0, ge=0, validation_alias="ORCHESTRATOR_BACKOFF_CAP_SECONDS")
    stage_timeouts: dict[str, float] = Field(
        default_factory=lambda: {
            JobKind.DISCOVER.value: 900.0,
            JobKind.EVALUATE.value: 1800.0,
            JobKind.TRANSFORM.value: 3600.0,
        },
        validation_alias="ORCHESTRATOR_STAGE_TIMEOUTS",
    )
    max_workers: int = Field(8, ge=1, validation_alias="ORCHESTRATOR_MAX_WORKERS")
    max_conflict_retries: int = Field(5, ge=1, validation_alias="ORCHESTRATOR_MAX_CONFLICT_RETRIES")
    catalog_database: str = Field("datalake_catalog", validation_alias="ORCHESTRATOR_CATALOG_DATABASE")
    target_location: str = Field("s3://data-lake/curated/", validation_alias="ORCHESTRATOR_TARGET_LOCATION")
    ruleset_path: str = Field("config/ruleset.json", validation_alias="ORCHESTRATOR_RULESET_PATH")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Allow OrchestratorSettings(retry_ceiling=...) in code
    )

    @field_validator("stage_timeouts")
    @classmethod
    def validate_stage_timeouts(cls, v: dict[str, float]) -> dict[str, float]:
        unknown = set(v) - {kind.value for kind in JobKind}
        if unknown:
            raise ValueError(f"Unknown job kinds in stage_timeouts: {sorted(unknown)}")
        if any(seconds <= 0 for seconds in v.values()):
            raise ValueError("stage_timeouts must be positive")
        return v

    def timeout_for(self, job_kind: JobKind) -> float | None:
        return self.stage_timeouts.get(job_kind.value)

