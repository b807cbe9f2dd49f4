"""Job Core CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .client.endpoints import JobCoreClient, JobCoreError
from .commands import config, cron, jobs, webhook
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="jobcore",
    help="⚙️ Job Core - job processing and webhook delivery CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(cron.app, name="cron")
app.add_typer(jobs.app, name="jobs")
app.add_typer(webhook.app, name="webhook")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API connectivity and queue depth"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with JobCoreClient(base_url) as client:
            health = client.health_check()
    except JobCoreError as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the Job Core API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can update the API URL with:\n"
            f"[cyan]jobcore config set api.base_url <url>[/cyan]",
            title="Connection Error",
            border_style="red"
        ))
        raise typer.Exit(1) from None

    queue = health.get("queue") or {}
    store = health.get("store") or {}
    console.print(Panel(
        f"🚀 [green]Connected[/green]\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• Store: [cyan]{store.get('backend', 'unknown')}[/cyan] "
        f"({'up' if store.get('connected') else 'down'})\n"
        f"• Pending: {queue.get('pending', 0)}  Processing: {queue.get('processing', 0)}  "
        f"Retrying: {queue.get('retrying', 0)}  Failed: {queue.get('failed', 0)}",
        title="System Status",
        border_style="green" if health.get("ok") else "red"
    ))
    if not health.get("ok"):
        raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit"
    ),
):
    """
    ⚙️ Job Core CLI

    Trigger orchestrator runs, inspect jobs and work with signed webhooks.
    """
    if version:
        console.print(f"Job Core CLI v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
