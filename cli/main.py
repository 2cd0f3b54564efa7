"""Portal Jobs CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

# Import command modules
from .client.endpoints import PortalJobsClient, PortalJobsError
from .commands import config, jobs, queue
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="portal-jobs",
    help="Portal Jobs - background job queue CLI",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

# Add command subapps
app.add_typer(jobs.app, name="jobs")
app.add_typer(queue.app, name="queue")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API status and queue depth"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with PortalJobsClient(base_url) as client:
            health = client.health_check()
    except PortalJobsError as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                f"🚫 [red]Connection Failed[/red]\n\n"
                f"Make sure the Portal Jobs API is running at:\n"
                f"[blue]{base_url}[/blue]\n\n"
                f"You can update the API URL with:\n"
                f"[cyan]portal-jobs config set api.base_url <url>[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    queue_health = health.get("queue") or {}
    console.print(
        Panel(
            f"🚀 [green]Connected Successfully![/green]\n\n"
            f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
            f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
            f"• Queue depth: [magenta]{queue_health.get('queue_depth', 'unknown')}[/magenta]\n"
            f"• Stale jobs: [magenta]{queue_health.get('stale_jobs_count', 'unknown')}[/magenta]\n"
            f"• API URL: [blue]{base_url}[/blue]",
            title="System Status",
            border_style="green",
        )
    )


if __name__ == "__main__":
    app()
