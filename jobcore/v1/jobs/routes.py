"""
Admin endpoints for inspecting jobs and enqueueing content changes.
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, Request

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import NotFoundError, create_success_response
from jobcore.v1.core.security import CronAuthDep, JobContextDep
from jobcore.v1.jobs.models import JobKind, JobStatus
from jobcore.v1.jobs.schemas import JobListResponse, SyncJobCreate
from jobcore.v1.jobs.service import JobService
from jobcore.v1.orchestrators.context import JobContext

logger = get_logger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"], dependencies=[CronAuthDep])


@router.get("", response_model=dict)
async def list_jobs(
    request: Request,
    kind: JobKind | None = Query(None, description="Filter by job kind"),
    status: JobStatus | None = Query(None, description="Filter by job status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    context: JobContext = JobContextDep,
) -> dict[str, Any]:
    """List jobs, newest first."""
    jobs, total = await context.store.list_jobs(kind, status, limit, offset)
    page = JobListResponse(jobs=jobs, total=total, limit=limit, offset=offset)
    return create_success_response(
        data=page.model_dump(mode="json"),
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID, request: Request, context: JobContext = JobContextDep
) -> dict[str, Any]:
    """Get one job with its progress and error details."""
    job = await context.store.get_job(job_id)
    if job is None:
        raise NotFoundError(f"Job {job_id} not found")
    return create_success_response(
        data=job.model_dump(mode="json"),
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/{job_id}/deliveries", response_model=dict)
async def get_job_deliveries(
    job_id: UUID, request: Request, context: JobContext = JobContextDep
) -> dict[str, Any]:
    """Per-destination delivery logs of a sync job."""
    job = await context.store.get_job(job_id)
    if job is None:
        raise NotFoundError(f"Job {job_id} not found")
    logs = await context.store.get_delivery_logs(job_id)
    return create_success_response(
        data=[log.model_dump(mode="json") for log in logs],
        request_id=getattr(request.state, "request_id", None),
    )


@router.post("/sync", response_model=dict, status_code=202)
async def enqueue_sync(
    body: SyncJobCreate, request: Request, context: JobContext = JobContextDep
) -> dict[str, Any]:
    """Record a content change for delivery to sync destinations."""
    job, created = await JobService(context.store).create_sync_job(
        body.article_id, body.action, body.data, body.event_id
    )
    return create_success_response(
        data={"job_id": str(job.id), "status": job.status.value, "deduplicated": not created},
        message="Sync job enqueued" if created else "Sync job already exists",
        request_id=getattr(request.state, "request_id", None),
    )
