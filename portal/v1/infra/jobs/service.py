"""
Job service for enqueueing and following background jobs.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import Request

from portal.config.logging import get_logger
from portal.v1.core.registries import JobRegistry
from portal.v1.infra.jobs.models import Job, JobPriority, JobStatus
from portal.v1.infra.jobs.store import JobStore

logger = get_logger(__name__)


class JobService:
    """Entry point used by request handlers to create and inspect jobs."""

    def __init__(self, store: JobStore, registry: JobRegistry):
        self.store = store
        self.registry = registry

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        priority: int | None = None,
        max_attempts: int | None = None,
        scheduled_for: datetime | None = None,
        created_by: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UUID:
        """
        Validate the payload for its job type and store a pending job.

        Returns as soon as the row is written; the job runs on a later tick.

        Raises:
            UnknownJobTypeError: no handler is registered for job_type
            InvalidJobPayloadError: payload does not match the type's model
        """
        validated = self.registry.validate_payload(job_type, payload)

        job = await self.store.create_job(
            job_type,
            validated.model_dump(mode="json"),
            priority=JobPriority.NORMAL if priority is None else priority,
            max_attempts=max_attempts,
            scheduled_for=scheduled_for,
            created_by=created_by,
            metadata=metadata,
        )

        logger.info(
            "Job enqueued",
            job_id=str(job.id),
            type=job_type,
            priority=job.priority,
            created_by=created_by,
        )
        return job.id

    async def get_job(self, job_id: UUID) -> Job | None:
        return await self.store.get_job(job_id)

    async def get_job_status(self, job_id: UUID) -> dict[str, Any] | None:
        """Status fields for pollers, or None if the job does not exist."""
        job = await self.store.get_job(job_id)
        if job is None:
            return None
        return {
            "status": job.status,
            "attempts": job.attempts,
            "max_attempts": job.max_attempts,
            "error_message": job.error_message,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
        }

    async def list_jobs(
        self,
        status: list[JobStatus] | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        return await self.store.list_jobs(status, job_type, limit, offset)

    async def cancel_job(self, job_id: UUID) -> bool:
        return await self.store.cancel_job(job_id)

    async def get_stats(self) -> dict[str, int]:
        return await self.store.get_stats()


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_job_registry(request: Request) -> JobRegistry:
    return request.app.state.job_registry


def get_job_service(request: Request) -> JobService:
    return JobService(get_job_store(request), get_job_registry(request))
