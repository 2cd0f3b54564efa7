"""Rich Formatting Utilities for CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a job list"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Priority", justify="right")
    table.add_column("Attempts", justify="center")
    table.add_column("Created", justify="left", style="dim")

    for job in jobs:
        table.add_row(
            str(job.get("id", ""))[:8],  # Short ID
            job.get("type", ""),
            _styled_status(job.get("status", "")),
            str(job.get("priority", "")),
            f"{job.get('attempts', 0)}/{job.get('max_attempts', 0)}",
            str(job.get("created_at", ""))[:19],
        )

    return table


def create_stats_table(stats: dict[str, int]) -> Table:
    """Create a table of job counts per status"""
    table = Table(title="Queue Stats", box=box.ROUNDED)
    table.add_column("Status", justify="left")
    table.add_column("Count", justify="right", style="bold")

    for status, count in stats.items():
        table.add_row(_styled_status(status), str(count))
    table.add_row("[bold]total[/bold]", str(sum(stats.values())))

    return table


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Create a detail panel for a single job"""
    lines = [
        f"• ID: [cyan]{job.get('id')}[/cyan]",
        f"• Type: [magenta]{job.get('type')}[/magenta]",
        f"• Status: {_styled_status(job.get('status', ''))}",
        f"• Priority: {job.get('priority')}",
        f"• Attempts: {job.get('attempts')}/{job.get('max_attempts')}",
        f"• Next retry at: {job.get('next_retry_at')}",
        f"• Started at: {job.get('started_at') or '—'}",
        f"• Completed at: {job.get('completed_at') or '—'}",
    ]
    if job.get("error_message"):
        lines.append(f"• Error: [red]{job['error_message']}[/red]")
    if job.get("result") is not None:
        lines.append(f"• Result: {json.dumps(job['result'])}")

    return Panel(
        "\n".join(lines),
        title="Job",
        border_style=STATUS_STYLES.get(job.get("status", ""), "white"),
    )


def create_tick_panel(summary: dict[str, Any]) -> Panel:
    """Summarise one processing tick"""
    errors = summary.get("errors") or []
    content = f"• Processed: [bold]{summary.get('processed', 0)}[/bold]"
    if summary.get("recovered"):
        content += f"\n• Recovered stale jobs: {summary['recovered']}"
    if errors:
        content += "\n• Errors:\n" + "\n".join(f"  [red]{e}[/red]" for e in errors)

    return Panel(
        content,
        title="Tick",
        border_style="red" if errors else "green",
    )
