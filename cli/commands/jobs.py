"""Job Commands - Enqueue, inspect and trigger jobs over the HTTP API"""

import json

import typer
from rich.console import Console

from ..client.endpoints import PortalJobsClient, PortalJobsError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_job_panel,
    create_jobs_table,
    create_stats_table,
    create_tick_panel,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Job queue commands (via the API)")


@app.command("trigger")
def trigger(
    secret: str | None = typer.Option(
        None, "--secret", "-s", help="Cron secret (defaults to cron.secret)"
    ),
    dev_key: str | None = typer.Option(
        None, "--dev-key", help="X-Dev-Key for development servers"
    ),
):
    """▶️ Process one batch of jobs now"""
    secret = secret or config.get("cron.secret")
    dev_key = dev_key or config.get("cron.dev_key")

    try:
        with PortalJobsClient() as client:
            print_info("Triggering job processing...")
            summary = client.trigger_jobs(secret=secret, dev_key=dev_key)
    except PortalJobsError as e:
        print_error(f"Trigger failed: {e}")
        raise typer.Exit(1) from None

    console.print(create_tick_panel(summary))
    if summary.get("stats"):
        console.print(create_stats_table(summary["stats"]))


@app.command("stats")
def stats():
    """📊 Show job counts per status"""
    try:
        with PortalJobsClient() as client:
            data = client.get_stats()
    except PortalJobsError as e:
        print_error(f"Failed to get stats: {e}")
        raise typer.Exit(1) from None

    console.print(create_stats_table(data))


@app.command("list")
def list_jobs(
    status: str | None = typer.Option(None, "--status", help="Filter by status"),
    type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum jobs to show"),
):
    """📋 List jobs"""
    try:
        with PortalJobsClient() as client:
            data = client.list_jobs(status=status, type=type, limit=limit)
    except PortalJobsError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    jobs = data.get("jobs", [])
    if not jobs:
        print_warning("No jobs found")
        return

    console.print(create_jobs_table(jobs))
    console.print(f"[dim]Showing {len(jobs)} of {data.get('total', len(jobs))}[/dim]")


@app.command("show")
def show(job_id: str = typer.Argument(..., help="Job ID")):
    """🔍 Show one job"""
    try:
        with PortalJobsClient() as client:
            job = client.get_job(job_id)
    except PortalJobsError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None

    console.print(create_job_panel(job))


@app.command("enqueue")
def enqueue(
    job_type: str = typer.Argument(..., help="Job type"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON payload"),
    priority: int | None = typer.Option(None, "--priority", help="Priority"),
    max_attempts: int | None = typer.Option(
        None, "--max-attempts", help="Attempts before dead-lettering"
    ),
):
    """➕ Enqueue a job"""
    try:
        payload_data = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1) from None

    try:
        with PortalJobsClient() as client:
            data = client.enqueue_job(
                job_type, payload_data, priority=priority, max_attempts=max_attempts
            )
    except PortalJobsError as e:
        print_error(f"Failed to enqueue job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Enqueued job {data['job_id']}")


@app.command("cancel")
def cancel(job_id: str = typer.Argument(..., help="Job ID")):
    """🛑 Cancel a pending job"""
    try:
        with PortalJobsClient() as client:
            client.cancel_job(job_id)
    except PortalJobsError as e:
        print_error(f"Failed to cancel job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Cancelled job {job_id}")
