import time
from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import create_success_response
from jobcore.v1.core.security import JobContextDep
from jobcore.v1.jobs.models import JobStatus
from jobcore.v1.orchestrators.context import JobContext

logger = get_logger(__name__)
router = APIRouter()


class StoreHealth(BaseModel):
    """Job store health status."""

    connected: bool
    backend: str
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Job counts by status."""

    pending: int = 0
    processing: int = 0
    retrying: int = 0
    failed: int = 0


@router.get("/healthz", response_model=dict)
async def health_check(context: JobContext = JobContextDep):
    """Health check with job store connectivity and queue depth."""

    settings = context.settings
    store_health = await _check_store_health(context)

    queue = None
    if store_health.connected:
        try:
            counts = await context.store.count_by_status()
            queue = QueueHealth(
                pending=counts.get(JobStatus.PENDING.value, 0),
                processing=counts.get(JobStatus.PROCESSING.value, 0),
                retrying=counts.get(JobStatus.RETRYING.value, 0),
                failed=counts.get(JobStatus.FAILED.value, 0),
            )
        except Exception as exc:
            # Queue stats are informational only
            logger.warning("Queue stats unavailable", error=str(exc))

    health_data = {
        "ok": store_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
        "store": store_health.model_dump(),
        "queue": queue.model_dump() if queue else None,
    }

    return create_success_response(data=health_data)


async def _check_store_health(context: JobContext) -> StoreHealth:
    """Check store connectivity and response time."""
    backend = context.settings.store_backend.value
    start = time.perf_counter()
    try:
        await context.store.ping()
    except Exception as e:
        return StoreHealth(connected=False, backend=backend, error=str(e))
    elapsed_ms = (time.perf_counter() - start) * 1000
    return StoreHealth(connected=True, backend=backend, response_time_ms=round(elapsed_ms, 2))
