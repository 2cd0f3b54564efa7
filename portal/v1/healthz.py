from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from portal.config.logging import get_logger
from portal.config.settings import Settings, SettingsDep
from portal.infra.database import get_session
from portal.v1.core.exceptions import create_success_response
from portal.v1.infra.jobs.models import JobStatus
from portal.v1.infra.jobs.service import get_job_store
from portal.v1.infra.jobs.store import JobStore

logger = get_logger(__name__)
router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Job queue status."""

    queue_depth: int = 0
    processing: int = 0
    failed: int = 0
    stale_jobs_count: int = 0


@router.get("/healthz", response_model=dict)
async def health_check(
    request: Request,
    settings: Settings = SettingsDep,
    session: AsyncSession = Depends(get_session),
    store: JobStore = Depends(get_job_store),
):
    """Health check with database and job queue status."""

    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(session)

    queue_health = None
    if db_health.connected:
        try:
            queue_health = await _check_queue_health(store)
        except Exception as e:
            # Queue stats failing does not fail the probe
            logger.warning("Queue health check failed", error=str(e))

    health_data = {
        "ok": db_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "database": db_health.model_dump(),
        "queue": queue_health.model_dump() if queue_health else None,
    }

    return create_success_response(
        data=health_data, request_id=getattr(request.state, "request_id", None)
    )


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_queue_health(store: JobStore) -> QueueHealth:
    stats = await store.get_stats()
    return QueueHealth(
        queue_depth=stats[JobStatus.PENDING.value],
        processing=stats[JobStatus.PROCESSING.value],
        failed=stats[JobStatus.FAILED.value],
        stale_jobs_count=await store.count_stale_jobs(),
    )
