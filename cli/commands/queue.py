"""Queue Commands - Run queue maintenance directly against the database"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console

from portal.config.logging import setup_logging
from portal.config.settings import Settings, get_settings
from portal.infra.database import Database
from portal.v1.core.registries import JobRegistry
from portal.v1.infra.jobs.manager import JobQueueManager
from portal.v1.infra.jobs.registry_init import register_job_handlers
from portal.v1.infra.jobs.store import JobStore
from portal.v1.infra.jobs.tick import TickSummary, run_tick

from ..utils.formatting import (
    create_stats_table,
    create_tick_panel,
    print_error,
    print_info,
    print_success,
)

console = Console()
app = typer.Typer(
    name="queue", help="Queue maintenance (connects to DATABASE_URL directly)"
)

T = TypeVar("T")


def _run(operation: Callable[[JobStore, Settings], Awaitable[T]]) -> T:
    """Open the database, run one store operation and close it again."""
    settings = get_settings()
    setup_logging(settings)

    async def runner() -> T:
        database = Database(settings)
        try:
            return await operation(JobStore(database, settings), settings)
        finally:
            await database.close()

    return asyncio.run(runner())


async def _tick(store: JobStore, settings: Settings, max_jobs: int) -> TickSummary:
    registry = JobRegistry()
    register_job_handlers(registry, store, settings)
    return await run_tick(JobQueueManager(store, registry), max_jobs)


def _show_summary(summary: TickSummary):
    console.print(
        create_tick_panel(
            {
                "processed": summary.processed_count,
                "errors": summary.errors,
                "recovered": summary.recovered,
            }
        )
    )
    if summary.stats:
        console.print(create_stats_table(summary.stats))


@app.command("tick")
def tick(
    max_jobs: int | None = typer.Option(
        None, "--max-jobs", "-n", help="Batch size (defaults to CRON_MAX_JOBS)"
    ),
):
    """▶️ Process one batch of jobs in this process"""
    summary = _run(
        lambda store, settings: _tick(store, settings, max_jobs or settings.cron_max_jobs)
    )
    _show_summary(summary)
    if summary.aborted:
        print_error("Tick aborted on a database error")
        raise typer.Exit(1)


@app.command("poll")
def poll(
    interval: float = typer.Option(5.0, "--interval", "-i", help="Seconds between ticks"),
    iterations: int = typer.Option(
        0, "--iterations", help="Stop after this many ticks (0 runs until interrupted)"
    ),
):
    """🔁 Run ticks in a loop (development only)"""
    settings = get_settings()
    if not settings.is_development:
        print_error("Polling is only available in development")
        raise typer.Exit(1)

    async def loop(store: JobStore, settings: Settings) -> int:
        ticks = 0
        while not iterations or ticks < iterations:
            summary = await _tick(store, settings, settings.cron_max_jobs)
            ticks += 1
            if summary.processed_count or summary.errors:
                _show_summary(summary)
            if not iterations or ticks < iterations:
                await asyncio.sleep(interval)
        return ticks

    print_info(f"Polling every {interval}s, press Ctrl+C to stop")
    try:
        ticks = _run(loop)
    except KeyboardInterrupt:
        print_info("Polling stopped")
        return
    print_success(f"Ran {ticks} ticks")


@app.command("recover")
def recover():
    """🩹 Release jobs stuck in processing"""
    recovered = _run(lambda store, settings: store.recover_stale_jobs())
    print_success(f"Recovered {recovered} stale jobs")


@app.command("cleanup")
def cleanup(
    older_than_days: int | None = typer.Option(
        None, "--older-than-days", "-d", min=1, help="Retention (defaults to JOB_CLEANUP_AFTER_DAYS)"
    ),
):
    """🧹 Delete finished jobs past retention"""
    deleted = _run(lambda store, settings: store.cleanup_old_jobs(older_than_days))
    print_success(f"Deleted {deleted} old jobs")
