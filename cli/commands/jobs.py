"""Jobs Commands - inspect jobs and enqueue content changes"""

import json

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import JobCoreClient, JobCoreError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_deliveries_table,
    create_job_panel,
    create_jobs_table,
    print_error,
    print_success,
)

console = Console()
app = typer.Typer(name="jobs", help="Job inspection commands")


@app.command("list")
def list_jobs(
    kind: str | None = typer.Option(None, "--kind", "-k", help="translation | scheduled_publish | sync"),
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs, newest first"""
    limit = limit or int(config.get("display.jobs_per_page", 20))

    try:
        with JobCoreClient() as client:
            page = client.list_jobs(kind=kind, status=status, limit=limit, offset=offset)
    except JobCoreError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    jobs = page.get("jobs", [])
    total = page.get("total", len(jobs))
    if not jobs:
        console.print(Panel("📭 [yellow]No jobs found[/yellow]", border_style="yellow"))
        return

    console.print(create_jobs_table(jobs))
    console.print(f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{total}[/yellow] jobs")
    if offset + limit < total:
        console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")


@app.command("show")
def show_job(job_id: str = typer.Argument(..., help="Job ID")):
    """🔍 Show one job, with delivery logs for sync jobs"""
    try:
        with JobCoreClient() as client:
            job = client.get_job(job_id)
            deliveries = client.get_deliveries(job_id) if job.get("kind") == "sync" else []
    except JobCoreError as e:
        print_error(f"Failed to load job: {e}")
        raise typer.Exit(1) from None

    console.print(create_job_panel(job))
    if deliveries:
        console.print(create_deliveries_table(deliveries))


@app.command("sync")
def enqueue_sync(
    article_id: str = typer.Argument(..., help="Changed article"),
    action: str = typer.Argument(..., help="create | update | delete"),
    data: str = typer.Option("{}", "--data", "-d", help="Article snapshot as JSON"),
    event_id: str | None = typer.Option(None, "--event-id", help="Deduplication id"),
):
    """🔄 Enqueue a content change for delivery to sync destinations"""
    try:
        snapshot = json.loads(data)
    except json.JSONDecodeError as e:
        print_error(f"--data is not valid JSON: {e}")
        raise typer.Exit(1) from None

    try:
        with JobCoreClient() as client:
            result = client.enqueue_sync(article_id, action, snapshot, event_id)
    except JobCoreError as e:
        print_error(f"Failed to enqueue sync job: {e}")
        raise typer.Exit(1) from None

    if result.get("deduplicated"):
        print_success(f"Sync job already exists: {result.get('job_id')}")
    else:
        print_success(f"Sync job enqueued: {result.get('job_id')}")
