"""
Optimistic work claiming.

A worker writes ``started_at`` and its own id onto a candidate row, guarded
by the same predicate that selected it, then reads the row back. Only the
worker whose values survived owns the job; everyone else moves on. A worker
that dies mid-job is recovered once its ``started_at`` is older than the
staleness threshold.
"""

import os
import socket
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from jobcore.config.logging import get_logger
from jobcore.v1.jobs.models import JobKind, JobStatus, utcnow
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.jobs.store import ClaimablePredicate, JobStore, OwnedByPredicate

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def make_worker_id() -> str:
    """Identifier unique to this process and invocation."""
    return f"{socket.gethostname()}-{os.getpid()}-{uuid4().hex[:8]}"


class ClaimProtocol:
    """Claims jobs of one kind for one worker."""

    def __init__(
        self,
        store: JobStore,
        kind: JobKind,
        worker_id: str,
        staleness: timedelta = timedelta(minutes=5),
        clock: Clock = utcnow,
        claimable_statuses: tuple[JobStatus, ...] = (JobStatus.PENDING, JobStatus.RETRYING),
        require_auto_publish: bool = False,
    ):
        self.store = store
        self.kind = kind
        self.worker_id = worker_id
        self.staleness = staleness
        self.clock = clock
        self.claimable_statuses = claimable_statuses
        self.require_auto_publish = require_auto_publish

    def predicate(self, now: datetime | None = None) -> ClaimablePredicate:
        now = now or self.clock()
        return ClaimablePredicate(
            kind=self.kind,
            statuses=self.claimable_statuses,
            now=now,
            stale_before=now - self.staleness,
            require_auto_publish=self.require_auto_publish,
        )

    async def claim_batch(self, limit: int) -> list[JobRecord]:
        """Select due candidates and return the ones this worker won."""
        predicate = self.predicate()
        candidates = await self.store.select_candidates(predicate, limit)
        claimed: list[JobRecord] = []
        for candidate in candidates:
            job = await self._claim(candidate.id, predicate)
            if job is not None:
                claimed.append(job)

        logger.info(
            "Claimed jobs",
            kind=self.kind.value,
            candidates=len(candidates),
            claimed=len(claimed),
            worker_id=self.worker_id,
        )
        return claimed

    async def try_claim(self, job_id: UUID) -> bool:
        return await self._claim(job_id, self.predicate()) is not None

    async def _claim(
        self, job_id: UUID, predicate: ClaimablePredicate
    ) -> JobRecord | None:
        lock_timestamp = self.clock()
        updated = await self.store.conditional_update(
            job_id,
            predicate,
            {
                "status": JobStatus.PROCESSING,
                "started_at": lock_timestamp,
                "claimed_by": self.worker_id,
            },
        )
        if not updated:
            logger.debug("Claim lost at update", job_id=str(job_id))
            return None

        job = await self.store.read_back(job_id)
        if (
            job is None
            or job.claimed_by != self.worker_id
            or job.started_at != lock_timestamp
        ):
            logger.debug("Claim lost at read-back", job_id=str(job_id))
            return None
        return job

    async def heartbeat(self, job_id: UUID) -> bool:
        """Refresh ``started_at`` on a job this worker still owns."""
        return await self.store.conditional_update(
            job_id, self.owned(), {"started_at": self.clock()}
        )

    def owned(self) -> OwnedByPredicate:
        return OwnedByPredicate(self.worker_id)
