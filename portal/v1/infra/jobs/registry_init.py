"""
Job registry initialization.

Registers all job handlers with a job registry. Safe to call on every
trigger: types already registered are left as they are.
"""

import logging

from portal.config.settings import Settings
from portal.v1.core.registries import JobRegistry
from portal.v1.infra.jobs.handlers import (
    DevelopmentAgent,
    JobTypes,
    MaintenanceCleanupHandler,
    MaintenanceCleanupPayload,
    ProjectDevelopmentHandler,
    ProjectDevelopmentPayload,
)
from portal.v1.infra.jobs.store import JobStore

logger = logging.getLogger(__name__)


def register_job_handlers(
    registry: JobRegistry,
    store: JobStore,
    settings: Settings,
    agent: DevelopmentAgent | None = None,
) -> None:
    """Register all job handlers with the job registry."""
    if all(
        job_type in registry
        for job_type in (JobTypes.PROJECT_DEVELOPMENT, JobTypes.MAINTENANCE_CLEANUP)
    ):
        return

    registry.add(
        JobTypes.PROJECT_DEVELOPMENT,
        ProjectDevelopmentHandler(settings, agent),
        ProjectDevelopmentPayload,
    )
    registry.add(
        JobTypes.MAINTENANCE_CLEANUP,
        MaintenanceCleanupHandler(store),
        MaintenanceCleanupPayload,
    )

    logger.info(
        "Job handlers registered", extra={"registered_handlers": registry.list()}
    )
