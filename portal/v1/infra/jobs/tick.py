"""
Bounded batch processing for one external trigger.
"""

from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from portal.config.logging import get_logger
from portal.v1.infra.jobs.manager import JobQueueManager
from portal.v1.infra.jobs.models import JobStatus

logger = get_logger(__name__)


@dataclass
class TickSummary:
    processed_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    stats: dict[str, int] | None = None
    recovered: int = 0
    aborted: bool = False

    @property
    def processed_count(self) -> int:
        return len(self.processed_ids)


async def run_tick(manager: JobQueueManager, max_jobs: int) -> TickSummary:
    """
    Process up to max_jobs jobs, stopping as soon as the queue is empty.

    Each iteration is isolated: a failing job is recorded and the loop goes
    on. A store failure stops the batch; whatever was done so far is
    returned with aborted set, and the next tick picks up the rest.
    """
    summary = TickSummary()
    summary.recovered = await manager.store.recover_stale_jobs()

    for _ in range(max_jobs):
        try:
            job = await manager.process_next_job()
        except SQLAlchemyError as e:
            logger.exception("Job store failure, aborting tick")
            summary.errors.append(f"Job store unavailable: {e.__class__.__name__}")
            summary.aborted = True
            break
        except Exception as e:
            logger.exception("Error processing job in tick")
            summary.errors.append(str(e) or e.__class__.__name__)
            continue

        if job is None:
            break

        summary.processed_ids.append(str(job.id))
        if job.status in (JobStatus.PENDING.value, JobStatus.FAILED.value):
            summary.errors.append(f"{job.id}: {job.error_message}")

    try:
        summary.stats = await manager.get_stats()
    except SQLAlchemyError:
        if not summary.aborted:
            raise
        logger.exception("Could not read queue stats after aborted tick")

    logger.info(
        "Tick finished",
        processed_count=summary.processed_count,
        error_count=len(summary.errors),
        recovered=summary.recovered,
        aborted=summary.aborted,
        stats=summary.stats,
    )
    return summary
