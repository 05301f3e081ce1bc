"""Build the orchestrator from Dagster resources."""

from typing import Optional

from libs.models import OrchestratorSettings
from libs.orchestration import Orchestrator, RunStateMachine
from libs.quality import RulesetRegistry, load_ruleset

from .resources import (
    DagsterJobResource,
    MinIOResource,
    MongoDBResource,
    WebhookNotifierResource,
)

__all__ = ["build_orchestrator", "load_rulesets"]


def load_rulesets(mongodb: MongoDBResource, settings: OrchestratorSettings) -> RulesetRegistry:
    """
    Registry with the ruleset file as active version plus every version
    stored earlier, so in-flight runs keep resolving the version they
    recorded. The active version is persisted on first sight.
    """
    active = load_ruleset(settings.ruleset_path)
    mongodb.save_ruleset(active)

    registry = RulesetRegistry(active)
    for ruleset in mongodb.load_rulesets():
        if ruleset.version != active.version:
            registry.register(ruleset)
    return registry


def build_orchestrator(
    *,
    mongodb: MongoDBResource,
    minio: MinIOResource,
    dagster_jobs: DagsterJobResource,
    notifier: WebhookNotifierResource,
    settings: Optional[OrchestratorSettings] = None,
    rulesets: Optional[RulesetRegistry] = None,
) -> Orchestrator:
    settings = settings or OrchestratorSettings()
    mongodb.ensure_indexes()
    machine = RunStateMachine(
        store=mongodb,
        job_client=dagster_jobs,
        object_store=minio,
        notifier=notifier,
        rulesets=rulesets or load_rulesets(mongodb, settings),
        settings=settings,
        quarantine_prefix=minio.quarantine_prefix,
    )
    return Orchestrator(mongodb, machine, max_workers=settings.max_workers)
