"""
Job store contract and its in-process implementation.

Orchestrators coordinate only through a store: a claim is a conditional
update guarded by a predicate, confirmed by reading the row back.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import and_, or_

from jobcore.v1.jobs.models import (
    Job,
    JobKind,
    JobStatus,
    SyncAction,
    utcnow,
)
from jobcore.v1.jobs.schemas import DeliveryLogRecord, DestinationRecord, JobRecord


@dataclass(frozen=True)
class ClaimablePredicate:
    """Jobs of ``kind`` that are due, or whose claim has gone stale."""

    kind: JobKind
    statuses: tuple[JobStatus, ...]
    now: datetime
    stale_before: datetime
    require_auto_publish: bool = False

    def matches(self, job: JobRecord) -> bool:
        if job.kind != self.kind:
            return False
        if self.require_auto_publish and not job.auto_publish:
            return False
        if job.status in self.statuses:
            return job.scheduled_at is None or job.scheduled_at <= self.now
        if job.status == JobStatus.PROCESSING:
            return job.started_at is None or job.started_at < self.stale_before
        return False

    def clause(self):
        due = and_(
            Job.status.in_([s.value for s in self.statuses]),
            or_(Job.scheduled_at.is_(None), Job.scheduled_at <= self.now),
        )
        stale = and_(
            Job.status == JobStatus.PROCESSING.value,
            or_(Job.started_at.is_(None), Job.started_at < self.stale_before),
        )
        conditions = [Job.kind == self.kind.value, or_(due, stale)]
        if self.require_auto_publish:
            conditions.append(Job.auto_publish.is_(True))
        return and_(*conditions)


@dataclass(frozen=True)
class OwnedByPredicate:
    """A processing job still held by ``worker_id``."""

    worker_id: str

    def matches(self, job: JobRecord) -> bool:
        return job.status == JobStatus.PROCESSING and job.claimed_by == self.worker_id

    def clause(self):
        return and_(
            Job.status == JobStatus.PROCESSING.value,
            Job.claimed_by == self.worker_id,
        )


JobPredicate = ClaimablePredicate | OwnedByPredicate


def candidate_order(job: JobRecord) -> tuple[datetime, datetime]:
    return (job.scheduled_at or job.created_at, job.created_at)


class JobStore(Protocol):
    """Persistence operations the claim protocol and orchestrators rely on."""

    async def select_candidates(
        self, predicate: ClaimablePredicate, limit: int
    ) -> list[JobRecord]:
        ...

    async def conditional_update(
        self, job_id: UUID, predicate: JobPredicate, fields: Mapping[str, Any]
    ) -> bool:
        """Apply ``fields`` only if the row still satisfies ``predicate``."""
        ...

    async def read_back(self, job_id: UUID) -> JobRecord | None:
        ...

    async def get_job(self, job_id: UUID) -> JobRecord | None:
        ...

    async def insert_job(self, job: JobRecord) -> tuple[JobRecord, bool]:
        """Insert unless a non-failed job shares its dedupe key.

        Returns the stored job and whether it was newly created.
        """
        ...

    async def update_job(
        self, job_id: UUID, fields: Mapping[str, Any]
    ) -> JobRecord | None:
        ...

    async def list_jobs(
        self,
        kind: JobKind | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        ...

    async def count_by_status(self) -> dict[str, int]:
        ...

    async def add_destination(self, destination: DestinationRecord) -> DestinationRecord:
        ...

    async def get_destination(self, destination_id: UUID) -> DestinationRecord | None:
        ...

    async def list_destinations(self, action: SyncAction) -> list[DestinationRecord]:
        """Active destinations subscribed to ``action``."""
        ...

    async def update_destination(
        self, destination_id: UUID, fields: Mapping[str, Any]
    ) -> None:
        ...

    async def get_delivery_logs(self, job_id: UUID) -> list[DeliveryLogRecord]:
        ...

    async def upsert_delivery_log(self, log: DeliveryLogRecord) -> DeliveryLogRecord:
        """Insert or replace the log for (job_id, destination_id)."""
        ...

    async def ping(self) -> bool:
        ...


class InMemoryJobStore:
    """Single-process store used for development and tests.

    Records are copied on the way in and out so callers never share state
    with the store, the same as with a database round trip.
    """

    def __init__(self):
        self._jobs: dict[UUID, JobRecord] = {}
        self._destinations: dict[UUID, DestinationRecord] = {}
        self._logs: dict[tuple[UUID, UUID], DeliveryLogRecord] = {}

    async def select_candidates(
        self, predicate: ClaimablePredicate, limit: int
    ) -> list[JobRecord]:
        matching = [job for job in self._jobs.values() if predicate.matches(job)]
        matching.sort(key=candidate_order)
        return [job.model_copy(deep=True) for job in matching[:limit]]

    async def conditional_update(
        self, job_id: UUID, predicate: JobPredicate, fields: Mapping[str, Any]
    ) -> bool:
        job = self._jobs.get(job_id)
        if job is None or not predicate.matches(job):
            return False
        self._jobs[job_id] = job.model_copy(
            update={**fields, "updated_at": utcnow()}, deep=True
        )
        return True

    async def read_back(self, job_id: UUID) -> JobRecord | None:
        return await self.get_job(job_id)

    async def get_job(self, job_id: UUID) -> JobRecord | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def insert_job(self, job: JobRecord) -> tuple[JobRecord, bool]:
        if job.dedupe_key:
            for existing in self._jobs.values():
                if (
                    existing.dedupe_key == job.dedupe_key
                    and existing.status != JobStatus.FAILED
                ):
                    return existing.model_copy(deep=True), False
        self._jobs[job.id] = job.model_copy(deep=True)
        return job.model_copy(deep=True), True

    async def update_job(
        self, job_id: UUID, fields: Mapping[str, Any]
    ) -> JobRecord | None:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        updated = job.model_copy(update={**fields, "updated_at": utcnow()}, deep=True)
        self._jobs[job_id] = updated
        return updated.model_copy(deep=True)

    async def list_jobs(
        self,
        kind: JobKind | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        jobs = [
            job
            for job in self._jobs.values()
            if (kind is None or job.kind == kind)
            and (status is None or job.status == status)
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        page = jobs[offset : offset + limit]
        return [job.model_copy(deep=True) for job in page], len(jobs)

    async def count_by_status(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for job in self._jobs.values():
            counts[job.status.value] = counts.get(job.status.value, 0) + 1
        return counts

    async def add_destination(self, destination: DestinationRecord) -> DestinationRecord:
        self._destinations[destination.id] = destination.model_copy(deep=True)
        return destination.model_copy(deep=True)

    async def get_destination(self, destination_id: UUID) -> DestinationRecord | None:
        destination = self._destinations.get(destination_id)
        return destination.model_copy(deep=True) if destination else None

    async def list_destinations(self, action: SyncAction) -> list[DestinationRecord]:
        destinations = [
            d for d in self._destinations.values() if d.is_active and d.accepts(action)
        ]
        destinations.sort(key=lambda d: d.created_at)
        return [d.model_copy(deep=True) for d in destinations]

    async def update_destination(
        self, destination_id: UUID, fields: Mapping[str, Any]
    ) -> None:
        destination = self._destinations.get(destination_id)
        if destination is not None:
            self._destinations[destination_id] = destination.model_copy(
                update=dict(fields), deep=True
            )

    async def get_delivery_logs(self, job_id: UUID) -> list[DeliveryLogRecord]:
        logs = [log for (jid, _), log in self._logs.items() if jid == job_id]
        logs.sort(key=lambda log: log.created_at)
        return [log.model_copy(deep=True) for log in logs]

    async def upsert_delivery_log(self, log: DeliveryLogRecord) -> DeliveryLogRecord:
        key = (log.job_id, log.destination_id)
        existing = self._logs.get(key)
        update: dict[str, Any] = {"updated_at": utcnow()}
        if existing is not None:
            update.update(id=existing.id, created_at=existing.created_at)
        stored = log.model_copy(update=update, deep=True)
        self._logs[key] = stored
        return stored.model_copy(deep=True)

    async def ping(self) -> bool:
        return True
