"""
Trigger endpoints for the external scheduler.

Each call runs one orchestrator pass. Calls may overlap; the claim protocol
keeps two passes from processing the same job.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import NotFoundError
from jobcore.v1.core.security import CronAuthDep, JobContextDep
from jobcore.v1.orchestrators.context import JobContext
from jobcore.v1.orchestrators.runner import ORCHESTRATORS, run_orchestrator

logger = get_logger(__name__)
router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[CronAuthDep])


@router.api_route("/{name}", methods=["GET", "POST"])
async def trigger_orchestrator(name: str, context: JobContext = JobContextDep) -> JSONResponse:
    """Run one orchestrator pass and return its summary."""
    if name not in ORCHESTRATORS:
        raise NotFoundError(
            f"Unknown orchestrator: {name}", {"available": sorted(ORCHESTRATORS)}
        )

    summary = await run_orchestrator(name, context)
    if not summary.ok:
        logger.error("Orchestrator run errored", orchestrator=name, error=summary.error)

    return JSONResponse(
        status_code=200 if summary.ok else 500,
        content={"success": summary.ok, **summary.model_dump(mode="json")},
    )
