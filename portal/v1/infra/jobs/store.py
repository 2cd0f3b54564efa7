"""
Persistence for the job queue.

Every state change is a single UPDATE guarded by the status the caller
expects the row to be in. Success is read from the affected row count, so
concurrent invocations sharing the table never both win the same
transition and no lock beyond the row itself is needed.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.config.logging import get_logger
from portal.config.settings import Settings
from portal.infra.database import Database
from portal.v1.infra.jobs.backoff import compute_backoff_seconds
from portal.v1.infra.jobs.models import Job, JobPriority, JobStatus

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 2000
MAX_STACK_LENGTH = 16000


class JobStore:
    """Durable job table operations, including the atomic claim."""

    def __init__(
        self,
        database: Database,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.database = database
        self.settings = settings
        self.clock = clock or (lambda: datetime.now(UTC))

    def _now(self) -> datetime:
        return self.clock()

    async def create_job(
        self,
        job_type: str,
        payload: dict[str, Any],
        priority: int = JobPriority.NORMAL,
        max_attempts: int | None = None,
        scheduled_for: datetime | None = None,
        created_by: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Job:
        """Insert a pending job."""
        now = self._now()
        job = Job(
            id=uuid4(),
            type=job_type,
            payload=payload,
            status=JobStatus.PENDING.value,
            priority=int(priority),
            attempts=0,
            max_attempts=max_attempts or self.settings.job_default_max_attempts,
            next_retry_at=scheduled_for or now,
            created_by=created_by,
            job_metadata=metadata,
            created_at=now,
            updated_at=now,
        )

        async with self.database.SessionLocal() as session:
            session.add(job)
            await session.commit()

        logger.info(
            "Job created",
            job_id=str(job.id),
            type=job_type,
            priority=job.priority,
            max_attempts=job.max_attempts,
        )
        return job

    async def get_job(self, job_id: UUID) -> Job | None:
        async with self.database.SessionLocal() as session:
            return await session.get(Job, job_id)

    async def list_jobs(
        self,
        status: list[JobStatus] | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """List jobs in claim order, with the total matching count."""
        query = select(Job)
        if status:
            query = query.where(Job.status.in_([s.value for s in status]))
        if job_type:
            query = query.where(Job.type == job_type)

        async with self.database.SessionLocal() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(query.subquery())
                )
            ).scalar() or 0
            jobs = (
                await session.execute(
                    query.order_by(Job.priority.desc(), Job.created_at.asc())
                    .offset(offset)
                    .limit(limit)
                )
            ).scalars().all()

        return list(jobs), total

    async def claim_next_job(self) -> Job | None:
        """
        Take ownership of the next eligible job.

        Picks the pending job with the highest priority (oldest first within
        a priority) whose next_retry_at has passed, then moves it to
        processing with a conditional update. If another claimant changed the
        row in between, the update matches nothing and selection is retried.
        """
        for _ in range(self.settings.job_claim_retries):
            async with self.database.SessionLocal() as session:
                now = self._now()
                candidate_id = await self._select_candidate(session, now)
                if candidate_id is None:
                    return None

                result = await session.execute(
                    update(Job)
                    .where(
                        Job.id == candidate_id,
                        Job.status == JobStatus.PENDING.value,
                    )
                    .values(
                        status=JobStatus.PROCESSING.value,
                        started_at=now,
                        attempts=Job.attempts + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()

                if result.rowcount == 1:
                    job = await session.get(Job, candidate_id)
                    logger.info(
                        "Job claimed",
                        job_id=str(candidate_id),
                        type=job.type,
                        attempt=job.attempts,
                    )
                    return job

                logger.debug("Claim lost to another invocation", job_id=str(candidate_id))

        return None

    async def _select_candidate(self, session: AsyncSession, now: datetime) -> UUID | None:
        return (
            await session.execute(
                select(Job.id)
                .where(
                    Job.status == JobStatus.PENDING.value,
                    Job.next_retry_at <= now,
                )
                .order_by(Job.priority.desc(), Job.created_at.asc())
                .limit(1)
            )
        ).scalar_one_or_none()

    async def complete_job(
        self,
        job_id: UUID,
        result: dict[str, Any] | None = None,
        attempt: int | None = None,
    ) -> Job | None:
        """
        Mark a processing job completed. A repeated call is a no-op.

        attempt is the attempt count seen at claim time. When given, the
        update only applies to that claim, so an invocation whose job was
        recovered as stale and claimed again cannot finish the newer claim.
        """
        conditions = [Job.id == job_id, Job.status == JobStatus.PROCESSING.value]
        if attempt is not None:
            conditions.append(Job.attempts == attempt)

        async with self.database.SessionLocal() as session:
            now = self._now()
            outcome = await session.execute(
                update(Job)
                .where(*conditions)
                .values(
                    status=JobStatus.COMPLETED.value,
                    result=result,
                    completed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            job = await session.get(Job, job_id)

        if outcome.rowcount:
            logger.info("Job completed", job_id=str(job_id))
        elif job is not None:
            logger.debug(
                "Completion ignored, claim no longer current",
                job_id=str(job_id),
                status=job.status,
                attempt=attempt,
            )
        return job

    async def fail_job(
        self,
        job_id: UUID,
        error: str,
        retryable: bool = True,
        attempt: int | None = None,
        error_stack: str | None = None,
    ) -> Job | None:
        """
        Record a failed attempt.

        Retryable failures with attempts left go back to pending with a
        backoff delay; everything else is dead-lettered as failed. attempt
        fences the update to one claim, as in complete_job.
        """
        error = (error or "Unknown error")[:MAX_ERROR_LENGTH]
        if error_stack:
            error_stack = error_stack[-MAX_STACK_LENGTH:]

        async with self.database.SessionLocal() as session:
            job = await session.get(Job, job_id)
            if job is None:
                return None
            if job.status != JobStatus.PROCESSING.value or (
                attempt is not None and job.attempts != attempt
            ):
                logger.debug(
                    "Failure ignored, claim no longer current",
                    job_id=str(job_id),
                    status=job.status,
                    attempt=attempt,
                )
                return job

            now = self._now()
            will_retry = retryable and job.can_retry()
            if will_retry:
                delay = compute_backoff_seconds(
                    job.attempts,
                    self.settings.job_backoff_base_s,
                    self.settings.job_backoff_cap_s,
                    self.settings.job_backoff_jitter,
                )
                values = {
                    "status": JobStatus.PENDING.value,
                    "next_retry_at": now + timedelta(seconds=delay),
                    "error_message": error,
                    "error_stack": error_stack,
                    "updated_at": now,
                }
            else:
                values = {
                    "status": JobStatus.FAILED.value,
                    "error_message": error,
                    "error_stack": error_stack,
                    "completed_at": now,
                    "updated_at": now,
                }

            outcome = await session.execute(
                update(Job)
                .where(
                    Job.id == job_id,
                    Job.status == JobStatus.PROCESSING.value,
                    Job.attempts == job.attempts,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            await session.refresh(job)

        if not outcome.rowcount:
            logger.debug("Failure ignored, job changed concurrently", job_id=str(job_id))
        elif will_retry:
            logger.warning(
                "Job will retry",
                job_id=str(job_id),
                attempt=job.attempts,
                max_attempts=job.max_attempts,
                next_retry_at=job.next_retry_at.isoformat(),
                error=error,
            )
        else:
            logger.error(
                "Job dead-lettered",
                job_id=str(job_id),
                attempt=job.attempts,
                retryable=retryable,
                error=error,
            )
        return job

    async def cancel_job(self, job_id: UUID) -> bool:
        """Cancel a job that has not been claimed yet."""
        async with self.database.SessionLocal() as session:
            now = self._now()
            outcome = await session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == JobStatus.PENDING.value)
                .values(status=JobStatus.CANCELLED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        cancelled = outcome.rowcount > 0
        if cancelled:
            logger.info("Job cancelled", job_id=str(job_id))
        return cancelled

    async def get_stats(self) -> dict[str, int]:
        """Count jobs per status."""
        async with self.database.SessionLocal() as session:
            rows = (
                await session.execute(
                    select(Job.status, func.count(Job.id)).group_by(Job.status)
                )
            ).all()

        stats = {status.value: 0 for status in JobStatus}
        stats.update({status: count for status, count in rows})
        return stats

    async def count_stale_jobs(self) -> int:
        if not self.settings.job_stale_after_s:
            return 0
        cutoff = self._now() - timedelta(seconds=self.settings.job_stale_after_s)
        async with self.database.SessionLocal() as session:
            return (
                await session.execute(
                    select(func.count(Job.id)).where(
                        Job.status == JobStatus.PROCESSING.value,
                        Job.started_at < cutoff,
                    )
                )
            ).scalar() or 0

    async def recover_stale_jobs(self) -> int:
        """
        Release jobs left in processing by an invocation that died mid-handler.

        A job counts as stale once it has been processing for longer than
        job_stale_after_s. It returns to pending if it has attempts left,
        otherwise it is dead-lettered. The update is guarded on the attempt
        count, so a job re-claimed or finished meanwhile is left alone.
        """
        timeout_s = self.settings.job_stale_after_s
        if not timeout_s:
            return 0

        recovered = 0
        async with self.database.SessionLocal() as session:
            now = self._now()
            cutoff = now - timedelta(seconds=timeout_s)
            stale_jobs = (
                await session.execute(
                    select(Job).where(
                        Job.status == JobStatus.PROCESSING.value,
                        Job.started_at < cutoff,
                    )
                )
            ).scalars().all()

            for job in stale_jobs:
                error = f"Job timed out after {timeout_s}s in processing"
                if job.can_retry():
                    values = {
                        "status": JobStatus.PENDING.value,
                        "next_retry_at": now,
                        "error_message": error,
                        "error_stack": None,
                        "updated_at": now,
                    }
                else:
                    values = {
                        "status": JobStatus.FAILED.value,
                        "error_message": error,
                        "error_stack": None,
                        "completed_at": now,
                        "updated_at": now,
                    }
                outcome = await session.execute(
                    update(Job)
                    .where(
                        Job.id == job.id,
                        Job.status == JobStatus.PROCESSING.value,
                        Job.attempts == job.attempts,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                recovered += outcome.rowcount

            await session.commit()

        if recovered:
            logger.warning(
                "Recovered stale jobs",
                stale_job_count=recovered,
                timeout_seconds=timeout_s,
            )
        return recovered

    async def cleanup_old_jobs(self, older_than_days: int | None = None) -> int:
        """Delete terminal jobs last updated before the retention cutoff."""
        retention_days = older_than_days or self.settings.job_cleanup_after_days
        cutoff = self._now() - timedelta(days=retention_days)

        async with self.database.SessionLocal() as session:
            outcome = await session.execute(
                delete(Job)
                .where(
                    Job.status.in_([s.value for s in JobStatus.terminal()]),
                    Job.updated_at < cutoff,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        deleted_count = outcome.rowcount
        if deleted_count:
            logger.info(
                "Cleaned up old jobs",
                deleted_count=deleted_count,
                retention_days=retention_days,
            )
        return deleted_count
