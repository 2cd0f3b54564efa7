"""
Scheduler-facing trigger that drains a bounded batch of jobs.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from portal.config.logging import get_logger
from portal.config.settings import Settings, SettingsDep
from portal.v1.core.rate_limit import RateLimit
from portal.v1.core.registries import JobRegistry
from portal.v1.core.security import verify_cron_request
from portal.v1.infra.jobs.manager import JobQueueManager
from portal.v1.infra.jobs.registry_init import register_job_handlers
from portal.v1.infra.jobs.schemas import TriggerResponse
from portal.v1.infra.jobs.service import get_job_registry, get_job_store
from portal.v1.infra.jobs.store import JobStore
from portal.v1.infra.jobs.tick import run_tick

logger = get_logger(__name__)
router = APIRouter(prefix="/cron", tags=["cron"])

FAILURE_MESSAGE = "Failed to process jobs"


def _failure_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": FAILURE_MESSAGE},
    )


async def _process_jobs(
    request: Request,
    settings: Settings,
    store: JobStore,
    registry: JobRegistry,
) -> JSONResponse:
    verify_cron_request(request, settings)

    try:
        register_job_handlers(registry, store, settings, request.app.state.agent)
        summary = await run_tick(
            JobQueueManager(store, registry), settings.cron_max_jobs
        )
    except Exception:
        logger.exception("Job trigger failed")
        return _failure_response()

    body = TriggerResponse(
        success=not summary.aborted,
        processed=summary.processed_count,
        errors=summary.errors or None,
        stats=summary.stats,
    )
    if summary.aborted:
        # Jobs finished before the store failed stay done; report them
        logger.error(
            "Job trigger aborted",
            processed=summary.processed_count,
            errors=summary.errors,
        )
        body.error = FAILURE_MESSAGE
        return JSONResponse(
            status_code=500, content=body.model_dump(exclude_none=True)
        )

    return JSONResponse(content=body.model_dump(exclude_none=True))


@router.get("/process-jobs")
async def process_jobs_scheduled(
    request: Request,
    settings: Settings = SettingsDep,
    store: JobStore = Depends(get_job_store),
    registry: JobRegistry = Depends(get_job_registry),
) -> JSONResponse:
    """Entry point for the platform scheduler."""
    return await _process_jobs(request, settings, store, registry)


@router.post(
    "/process-jobs",
    dependencies=[Depends(RateLimit("api", use_principal=False))],
)
async def process_jobs_manual(
    request: Request,
    settings: Settings = SettingsDep,
    store: JobStore = Depends(get_job_store),
    registry: JobRegistry = Depends(get_job_registry),
) -> JSONResponse:
    """Manual trigger, used for testing and for draining the queue on demand."""
    return await _process_jobs(request, settings, store, registry)
