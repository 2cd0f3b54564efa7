"""
Job queue Pydantic schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from portal.v1.infra.jobs.models import JobPriority

MIN_PRIORITY = -1000
MAX_PRIORITY = 1000


class JobEnqueueRequest(BaseModel):
    """Schema for enqueueing jobs via API."""

    type: str = Field(..., min_length=1, description="Job type")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job payload")
    priority: int = Field(
        default=JobPriority.NORMAL,
        ge=MIN_PRIORITY,
        le=MAX_PRIORITY,
        description="Priority (higher runs first)",
    )
    max_attempts: int | None = Field(
        default=None, ge=1, le=20, description="Attempts before dead-lettering"
    )
    scheduled_for: datetime | None = Field(
        default=None, description="Earliest time to run the job"
    )
    metadata: dict[str, Any] | None = Field(
        default=None, description="Context stored with the job, not passed to the handler"
    )


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job_id: UUID
    status: str


class JobStatusResponse(BaseModel):
    """What pollers need to follow a job."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    status: str
    priority: int
    attempts: int
    max_attempts: int
    error_message: str | None = None
    next_retry_at: datetime
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class JobResponse(JobStatusResponse):
    """Full job record."""

    payload: dict[str, Any]
    result: dict[str, Any] | None = None
    error_stack: str | None = None
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias="job_metadata"
    )
    created_by: str | None = None
    updated_at: datetime


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class TriggerResponse(BaseModel):
    """Body returned by the job trigger endpoint."""

    success: bool
    processed: int
    errors: list[str] | None = None
    stats: dict[str, int] | None = None
    error: str | None = None
