"""
Job API endpoints: enqueue, status polling, listing and cancellation.
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from portal.config.logging import get_logger
from portal.v1.core.exceptions import (
    NotFoundError,
    ValidationError,
    create_success_response,
)
from portal.v1.core.rate_limit import RateLimit
from portal.v1.core.security import Principal, PrincipalDep
from portal.v1.infra.jobs.errors import InvalidJobPayloadError, UnknownJobTypeError
from portal.v1.infra.jobs.models import JobStatus
from portal.v1.infra.jobs.schemas import (
    JobEnqueueRequest,
    JobEnqueueResponse,
    JobListResponse,
    JobResponse,
)
from portal.v1.infra.jobs.service import JobService, get_job_service

logger = get_logger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=dict, dependencies=[Depends(RateLimit("api"))])
async def enqueue_job(
    job_request: JobEnqueueRequest,
    principal: Principal = PrincipalDep,
    service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Enqueue a new background job."""
    try:
        job_id = await service.enqueue(
            job_request.type,
            job_request.payload,
            priority=job_request.priority,
            max_attempts=job_request.max_attempts,
            scheduled_for=job_request.scheduled_for,
            metadata=job_request.metadata,
            created_by=principal.user_id,
        )
    except UnknownJobTypeError as e:
        raise ValidationError(str(e), {"type": job_request.type}) from e
    except InvalidJobPayloadError as e:
        raise ValidationError(str(e), {"errors": e.errors}) from e

    response = JobEnqueueResponse(job_id=job_id, status=JobStatus.PENDING.value)
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(
        default=None, description="Filter by status"
    ),
    type: str | None = Query(default=None, description="Filter by job type"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    principal: Principal = PrincipalDep,
    service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """List jobs in claim order."""
    jobs, total = await service.list_jobs(status, type, limit, offset)

    response_data = JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )
    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats", response_model=dict)
async def get_job_stats(
    principal: Principal = PrincipalDep,
    service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Job counts per status."""
    stats = await service.get_stats()
    return create_success_response(data=stats)


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    principal: Principal = PrincipalDep,
    service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Get a specific job by ID."""
    job = await service.get_job(job_id)
    if not job:
        raise NotFoundError("Job not found", {"job_id": str(job_id)})

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


@router.post("/{job_id}/cancel", response_model=dict)
async def cancel_job(
    job_id: UUID,
    principal: Principal = PrincipalDep,
    service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """Cancel a job that has not started."""
    if not await service.cancel_job(job_id):
        raise NotFoundError(
            "Job not found or not eligible for cancellation", {"job_id": str(job_id)}
        )

    logger.info("Job cancelled via API", job_id=str(job_id), user_id=principal.user_id)
    return create_success_response(data={"success": True, "job_id": str(job_id)})
