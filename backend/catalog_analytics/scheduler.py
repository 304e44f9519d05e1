"""
Background job lifecycle for the host process.

Call initialize_jobs() from the FastAPI startup event and stop_jobs() from
shutdown. The JobRegistry is created by the host and passed in; nothing here
keeps module-level state.
"""
import logging
from typing import Iterable, Optional

from catalog_analytics.core.config import Settings, settings as default_settings
from catalog_analytics.jobs.definitions import build_job_definitions
from catalog_analytics.jobs.registry import JobDefinition, JobRegistry

logger = logging.getLogger(__name__)


def create_job_registry(config: Optional[Settings] = None) -> JobRegistry:
    config = config or default_settings
    return JobRegistry(warmup_seconds=config.JOB_WARMUP_SECONDS)


def initialize_jobs(
    registry: JobRegistry,
    definitions: Optional[Iterable[JobDefinition]] = None,
    config: Optional[Settings] = None,
) -> bool:
    """
    Register every job and, in production-like environments, start their timers.

    Jobs are always registered so manual triggers work everywhere. Returns
    True when timers are running after the call. Safe to call repeatedly.
    """
    config = config or default_settings

    if registry.scheduled:
        logger.warning("Background jobs already initialized")
        return True

    definitions = list(definitions if definitions is not None else build_job_definitions(config=config))
    registry.register_all(definitions)

    logger.info("Initializing background jobs...")
    if not config.jobs_enabled:
        logger.info(
            f"Skipping job scheduling in {config.ENVIRONMENT} mode. Set ENABLE_JOBS=true to enable."
        )
        return False

    for definition in definitions:
        registry.schedule_job(definition)

    registry.start()
    logger.info(f"Background jobs initialized ({len(definitions)} jobs)")
    return True


def stop_jobs(registry: JobRegistry) -> None:
    registry.stop_jobs()


def trigger_job(registry: JobRegistry, name: str) -> bool:
    return registry.trigger_job(name)


def get_job_status(registry: JobRegistry):
    return registry.get_job_status()
