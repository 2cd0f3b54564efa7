"""
Job handlers.

Each handler pairs with a payload model; the registry validates payloads
against that model when a job is enqueued and again before it runs.
"""

import logging
from typing import Any, Protocol
from uuid import UUID

import httpx
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from portal.config.settings import Settings
from portal.v1.infra.jobs.errors import PermanentJobError
from portal.v1.infra.jobs.models import Job
from portal.v1.infra.jobs.store import JobStore

logger = logging.getLogger(__name__)


class JobTypes:
    PROJECT_DEVELOPMENT = "project_development"
    MAINTENANCE_CLEANUP = "maintenance_cleanup"


class DevelopmentOptions(BaseModel):
    create_github_repo: bool = True
    deploy_to_vercel: bool = True
    generate_supabase: bool = True
    send_notifications: bool = True


class ProjectDevelopmentPayload(BaseModel):
    project_id: UUID
    user_id: str = Field(..., min_length=1)
    requirements: dict[str, Any] = Field(default_factory=dict)
    options: DevelopmentOptions = Field(default_factory=DevelopmentOptions)


class DevelopmentResult(BaseModel):
    success: bool
    repository_url: str | None = None
    deployment_url: str | None = None
    generated_files: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class MaintenanceCleanupPayload(BaseModel):
    older_than_days: int | None = Field(default=None, ge=1)
    dry_run: bool = False


class DevelopmentAgent(Protocol):
    """The service that actually builds a project."""

    async def develop(self, payload: ProjectDevelopmentPayload) -> DevelopmentResult: ...


class HttpDevelopmentAgent:
    """Development agent reached over HTTP."""

    def __init__(
        self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ):
        self.base_url = settings.agent_service_url.rstrip("/")
        self.timeout = settings.agent_timeout_s
        self.transport = transport

    async def develop(self, payload: ProjectDevelopmentPayload) -> DevelopmentResult:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            response = await client.post("/develop", json=payload.model_dump(mode="json"))

        # A rejected request will be rejected again
        if response.status_code in (400, 404, 422):
            raise PermanentJobError(
                f"Development agent rejected project {payload.project_id}: "
                f"HTTP {response.status_code}"
            )
        response.raise_for_status()
        return DevelopmentResult.model_validate(response.json())


class ProjectDevelopmentHandler:
    """
    Runs the development agent for a project.

    Payload expected:
    {
        "project_id": "uuid-string",
        "user_id": "owner id",
        "requirements": {...},
        "options": {"create_github_repo": true, ...}  # optional
    }

    An unsuccessful agent run raises so the job is retried; the last
    attempt's errors end up in the job's error_message.
    """

    def __init__(self, settings: Settings, agent: DevelopmentAgent | None = None):
        self.settings = settings
        self.agent = agent or HttpDevelopmentAgent(settings)

    async def handle(
        self,
        session: AsyncSession,
        job: Job,
        payload: ProjectDevelopmentPayload,
    ) -> dict[str, Any] | None:
        logger.info(
            "Starting project development",
            extra={
                "job_id": str(job.id),
                "project_id": str(payload.project_id),
                "attempt": job.attempts,
            },
        )

        result = await self.agent.develop(payload)

        if not result.success:
            raise RuntimeError(
                "; ".join(result.errors) or "Development agent reported failure"
            )

        logger.info(
            "Project development completed",
            extra={
                "job_id": str(job.id),
                "project_id": str(payload.project_id),
                "generated_files": len(result.generated_files),
            },
        )
        return result.model_dump()


class MaintenanceCleanupHandler:
    """
    Deletes terminal jobs past the retention window.

    Payload expected:
    {
        "older_than_days": 7,  # optional, defaults to job_cleanup_after_days
        "dry_run": false  # optional
    }
    """

    def __init__(self, store: JobStore):
        self.store = store

    async def handle(
        self,
        session: AsyncSession,
        job: Job,
        payload: MaintenanceCleanupPayload,
    ) -> dict[str, Any] | None:
        retention_days = (
            payload.older_than_days or self.store.settings.job_cleanup_after_days
        )

        if payload.dry_run:
            return {"status": "dry_run", "retention_days": retention_days}

        deleted_count = await self.store.cleanup_old_jobs(retention_days)

        logger.info(
            "Job cleanup task completed",
            extra={"deleted_count": deleted_count, "retention_days": retention_days},
        )
        return {
            "status": "completed",
            "deleted_count": deleted_count,
            "retention_days": retention_days,
        }
