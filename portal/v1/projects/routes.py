"""
Project development endpoints.

Starting development only queues the work; clients poll the job status
endpoint for progress.
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from portal.config.logging import get_logger
from portal.v1.core.exceptions import create_success_response
from portal.v1.core.rate_limit import RateLimit
from portal.v1.core.security import Principal, PrincipalDep
from portal.v1.infra.jobs.handlers import DevelopmentOptions, JobTypes
from portal.v1.infra.jobs.models import JobPriority
from portal.v1.infra.jobs.service import JobService, get_job_service

logger = get_logger(__name__)
router = APIRouter(prefix="/projects", tags=["projects"])

DEVELOPMENT_MAX_ATTEMPTS = 3


class DevelopRequest(BaseModel):
    requirements: dict[str, Any] = Field(default_factory=dict)
    options: DevelopmentOptions = Field(default_factory=DevelopmentOptions)


@router.post(
    "/{project_id}/develop",
    response_model=dict,
    dependencies=[Depends(RateLimit("ai"))],
)
async def start_development(
    project_id: UUID,
    develop_request: DevelopRequest | None = None,
    principal: Principal = PrincipalDep,
    service: JobService = Depends(get_job_service),
) -> dict[str, Any]:
    """
    Queue a development run for a project.

    The job runs at high priority with a fixed retry budget, so a flaky
    agent run is retried a couple of times before it is dead-lettered.
    """
    develop_request = develop_request or DevelopRequest()

    job_id = await service.enqueue(
        JobTypes.PROJECT_DEVELOPMENT,
        {
            "project_id": str(project_id),
            "user_id": principal.user_id,
            "requirements": develop_request.requirements,
            "options": develop_request.options.model_dump(),
        },
        priority=JobPriority.HIGH,
        max_attempts=DEVELOPMENT_MAX_ATTEMPTS,
        created_by=principal.user_id,
    )

    logger.info(
        "Project development queued",
        project_id=str(project_id),
        job_id=str(job_id),
        user_id=principal.user_id,
    )
    return create_success_response(
        data={"job_id": str(job_id)}, message="Development queued"
    )
