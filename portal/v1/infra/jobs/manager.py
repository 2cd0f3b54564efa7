"""
Dispatch of claimed jobs to their handlers.
"""

import traceback
from typing import Any

from portal.config.logging import get_logger
from portal.v1.core.registries import JobRegistry
from portal.v1.infra.jobs.errors import (
    InvalidJobPayloadError,
    PermanentJobError,
    UnknownJobTypeError,
)
from portal.v1.infra.jobs.models import Job
from portal.v1.infra.jobs.store import JobStore

logger = get_logger(__name__)


class JobQueueManager:
    """
    Glue between the claim protocol and the handler registry.

    Handler failures are recorded on the job and never raised from here.
    Store errors are not caught: if the table is unreachable the caller's
    batch should stop.
    """

    def __init__(self, store: JobStore, registry: JobRegistry):
        self.store = store
        self.registry = registry

    async def process_next_job(self) -> Job | None:
        """
        Claim and run one job.

        Returns the job with its status after bookkeeping, or None when no
        job is eligible.
        """
        job = await self.store.claim_next_job()
        if job is None:
            return None

        job_logger = logger.bind(job_id=str(job.id), job_type=job.type, attempt=job.attempts)

        # Neither an unknown type nor a malformed payload gets better on retry
        try:
            definition = self.registry.resolve(job.type)
            payload = definition.parse_payload(job.type, job.payload)
        except (UnknownJobTypeError, InvalidJobPayloadError) as e:
            job_logger.error("Job cannot be dispatched", error=str(e))
            return await self._fail(job, str(e), retryable=False)

        try:
            job_logger.info("Processing job started")
            async with self.store.database.SessionLocal() as session:
                result = await definition.handler.handle(session, job, payload)
        except PermanentJobError as e:
            job_logger.error("Job failed permanently", error=str(e))
            return await self._fail(job, str(e), retryable=False, exc=e)
        except Exception as e:
            job_logger.exception("Job processing failed", error=str(e))
            return await self._fail(job, str(e) or e.__class__.__name__, exc=e)

        completed = await self.store.complete_job(
            job.id, _as_result(result), attempt=job.attempts
        )
        job_logger.info("Processing job completed successfully")
        return completed or job

    async def _fail(
        self,
        job: Job,
        error: str,
        retryable: bool = True,
        exc: BaseException | None = None,
    ) -> Job:
        stack = "".join(traceback.format_exception(exc)) if exc is not None else None
        updated = await self.store.fail_job(
            job.id, error, retryable=retryable, attempt=job.attempts, error_stack=stack
        )
        return updated or job

    async def get_stats(self) -> dict[str, int]:
        return await self.store.get_stats()


def _as_result(result: Any) -> dict[str, Any] | None:
    if result is None or isinstance(result, dict):
        return result
    return {"result": str(result)}
