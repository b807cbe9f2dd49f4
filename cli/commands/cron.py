"""Cron Commands - trigger orchestrator runs"""

import typer
from rich.console import Console

from ..client.endpoints import JobCoreClient, JobCoreError
from ..utils.formatting import create_summary_panel, print_error, print_info, print_warning

console = Console()
app = typer.Typer(name="cron", help="Trigger orchestrator runs")

ORCHESTRATORS = ("translation", "scheduled-publish", "sync")


@app.command("run")
def run(
    name: str = typer.Argument(..., help="translation | scheduled-publish | sync"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Show per-job details"),
):
    """▶️ Run one orchestrator pass; exits non-zero if the run errored"""
    if name not in ORCHESTRATORS:
        print_error(f"Unknown orchestrator '{name}'. Choose from: {', '.join(ORCHESTRATORS)}")
        raise typer.Exit(2)

    try:
        with JobCoreClient() as client:
            print_info(f"Running {name}")
            status_code, summary = client.run_orchestrator(name)
    except JobCoreError as e:
        print_error(f"Failed to run {name}: {e}")
        raise typer.Exit(1) from None

    console.print(create_summary_panel(name, summary))
    if verbose:
        for detail in summary.get("details", []):
            console.print(
                f"  [cyan]{detail.get('job_id', '')[:8]}[/cyan] "
                f"{detail.get('outcome')} {detail.get('message') or ''}"
            )

    if summary.get("failed"):
        print_warning(f"{summary['failed']} job(s) failed, see `jobcore jobs list --status failed`")

    if status_code >= 400 or summary.get("error"):
        raise typer.Exit(1)


@app.command("run-all")
def run_all():
    """⏩ Run every orchestrator once, in order"""
    failed = []
    with JobCoreClient() as client:
        for name in ORCHESTRATORS:
            try:
                status_code, summary = client.run_orchestrator(name)
            except JobCoreError as e:
                print_error(f"{name}: {e}")
                failed.append(name)
                continue
            console.print(create_summary_panel(name, summary))
            if status_code >= 400 or summary.get("error"):
                failed.append(name)

    if failed:
        print_error(f"Runs with errors: {', '.join(failed)}")
        raise typer.Exit(1)
