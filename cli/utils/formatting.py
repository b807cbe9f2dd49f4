"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "retrying": "magenta",
    "completed": "green",
    "success": "green",
    "failed": "red",
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


def styled_status(status: str | None) -> str:
    if not status:
        return "-"
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a page of jobs"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Kind", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Retries", justify="right")
    table.add_column("Article", justify="left", style="white")
    table.add_column("Next Attempt", justify="left", style="dim")
    table.add_column("Error", justify="left", style="red", max_width=40)

    for job in jobs:
        table.add_row(
            job.get("id", "")[:8],
            job.get("kind", ""),
            styled_status(job.get("status")),
            str(job.get("retry_count", 0)),
            str(job.get("payload", {}).get("article_id") or "-"),
            job.get("scheduled_at") or "-",
            (job.get("error_message") or "")[:80],
        )

    return table


def create_deliveries_table(deliveries: list[dict[str, Any]]) -> Table:
    """Create a formatted table of per-destination delivery logs"""
    table = Table(title="Deliveries", box=box.ROUNDED)

    table.add_column("Destination", justify="left", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("HTTP", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Next Retry", justify="left", style="dim")
    table.add_column("Duration", justify="right")
    table.add_column("Error", justify="left", style="red", max_width=40)

    for log in deliveries:
        duration = log.get("duration_ms")
        table.add_row(
            log.get("destination_id", "")[:8],
            styled_status(log.get("status")),
            str(log.get("response_status") or "-"),
            str(log.get("retry_count", 0)),
            log.get("next_retry_at") or "-",
            f"{duration} ms" if duration is not None else "-",
            (log.get("error_message") or "")[:80],
        )

    return table


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Detail panel for a single job"""
    lines = [
        f"• Kind: [magenta]{job.get('kind')}[/magenta]",
        f"• Status: {styled_status(job.get('status'))}",
        f"• Retry count: [cyan]{job.get('retry_count', 0)}[/cyan]",
        f"• Scheduled at: {job.get('scheduled_at') or '-'}",
        f"• Started at: {job.get('started_at') or '-'} by {job.get('claimed_by') or '-'}",
        f"• Completed at: {job.get('completed_at') or '-'}",
    ]
    if job.get("target_languages"):
        lines += [
            f"• Progress: [cyan]{job.get('progress', 0)}%[/cyan]",
            f"• Languages: {', '.join(job['target_languages'])}",
            f"• Completed: [green]{', '.join(job.get('completed_languages') or []) or '-'}[/green]",
        ]
        for language, error in (job.get("failed_languages") or {}).items():
            lines.append(f"  [red]✗ {language}: {error}[/red]")
    if job.get("error_message"):
        lines.append(f"\n[red]{job['error_message']}[/red]")

    return Panel("\n".join(lines), title=f"Job {job.get('id')}", border_style="blue")


def create_summary_panel(name: str, summary: dict[str, Any]) -> Panel:
    """Panel for an orchestrator run summary"""
    ok = summary.get("success", summary.get("error") is None)
    body = (
        f"• Processed: [cyan]{summary.get('processed', 0)}[/cyan]\n"
        f"• Completed: [green]{summary.get('completed', 0)}[/green]\n"
        f"• Retried: [magenta]{summary.get('retried', 0)}[/magenta]\n"
        f"• Rescheduled: [yellow]{summary.get('rescheduled', 0)}[/yellow]\n"
        f"• Failed: [red]{summary.get('failed', 0)}[/red]\n"
        f"• Skipped: [dim]{summary.get('skipped', 0)}[/dim]"
    )
    if summary.get("error"):
        body += f"\n\n[red]{summary['error']}[/red]"
    return Panel(
        body,
        title=f"{name} run",
        border_style="green" if ok else "red",
    )
