"""
PostgreSQL job store on SQLAlchemy's async ORM.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError

from jobcore.config.logging import get_logger
from jobcore.infra.database import Database
from jobcore.v1.jobs.models import (
    DeliveryLog,
    Destination,
    Job,
    JobKind,
    JobStatus,
    SyncAction,
    utcnow,
)
from jobcore.v1.jobs.schemas import DeliveryLogRecord, DestinationRecord, JobRecord
from jobcore.v1.jobs.store import ClaimablePredicate, JobPredicate

logger = get_logger(__name__)

_ACTION_COLUMNS = {
    SyncAction.CREATE: Destination.sync_on_create,
    SyncAction.UPDATE: Destination.sync_on_update,
    SyncAction.DELETE: Destination.sync_on_delete,
}


def _column_values(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Store enum members by value."""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
    }


class SqlJobStore:
    """Job store backed by the ``jobs``, ``sync_destinations`` and
    ``delivery_logs`` tables. Every call runs in its own short transaction."""

    def __init__(self, database: Database):
        self.database = database

    async def select_candidates(
        self, predicate: ClaimablePredicate, limit: int
    ) -> list[JobRecord]:
        stmt = (
            select(Job)
            .where(predicate.clause())
            .order_by(
                func.coalesce(Job.scheduled_at, Job.created_at).asc(),
                Job.created_at.asc(),
            )
            .limit(limit)
        )
        async with self.database.session() as session:
            rows = (await session.scalars(stmt)).all()
        return [JobRecord.model_validate(row) for row in rows]

    async def conditional_update(
        self, job_id: UUID, predicate: JobPredicate, fields: Mapping[str, Any]
    ) -> bool:
        stmt = (
            update(Job)
            .where(Job.id == job_id, predicate.clause())
            .values(**_column_values(fields), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self.database.session() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount > 0

    async def read_back(self, job_id: UUID) -> JobRecord | None:
        return await self.get_job(job_id)

    async def get_job(self, job_id: UUID) -> JobRecord | None:
        async with self.database.session() as session:
            row = await session.get(Job, job_id)
        return JobRecord.model_validate(row) if row else None

    async def _find_deduplicated(self, session, dedupe_key: str) -> Job | None:
        stmt = select(Job).where(
            Job.dedupe_key == dedupe_key,
            Job.status != JobStatus.FAILED.value,
        )
        return (await session.scalars(stmt)).first()

    async def insert_job(self, job: JobRecord) -> tuple[JobRecord, bool]:
        async with self.database.session() as session:
            if job.dedupe_key:
                existing = await self._find_deduplicated(session, job.dedupe_key)
                if existing is not None:
                    return JobRecord.model_validate(existing), False

            row = Job(**_column_values(job.model_dump()))
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                # Lost an insert race on the partial unique dedupe index
                await session.rollback()
                existing = await self._find_deduplicated(session, job.dedupe_key)
                if existing is None:
                    raise
                logger.info("Job insert deduplicated", dedupe_key=job.dedupe_key)
                return JobRecord.model_validate(existing), False
            await session.refresh(row)
            return JobRecord.model_validate(row), True

    async def update_job(
        self, job_id: UUID, fields: Mapping[str, Any]
    ) -> JobRecord | None:
        stmt = (
            update(Job)
            .where(Job.id == job_id)
            .values(**_column_values(fields), updated_at=utcnow())
            .returning(Job)
        )
        async with self.database.session() as session:
            row = (await session.scalars(stmt)).one_or_none()
            record = JobRecord.model_validate(row) if row else None
            await session.commit()
        return record

    async def list_jobs(
        self,
        kind: JobKind | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        conditions = []
        if kind is not None:
            conditions.append(Job.kind == kind.value)
        if status is not None:
            conditions.append(Job.status == status.value)

        async with self.database.session() as session:
            total = await session.scalar(
                select(func.count()).select_from(Job).where(*conditions)
            )
            rows = (
                await session.scalars(
                    select(Job)
                    .where(*conditions)
                    .order_by(Job.created_at.desc())
                    .limit(limit)
                    .offset(offset)
                )
            ).all()
        return [JobRecord.model_validate(row) for row in rows], total or 0

    async def count_by_status(self) -> dict[str, int]:
        async with self.database.session() as session:
            rows = await session.execute(
                select(Job.status, func.count()).group_by(Job.status)
            )
            return {status: count for status, count in rows.all()}

    async def add_destination(self, destination: DestinationRecord) -> DestinationRecord:
        async with self.database.session() as session:
            row = Destination(**destination.model_dump())
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return DestinationRecord.model_validate(row)

    async def get_destination(self, destination_id: UUID) -> DestinationRecord | None:
        async with self.database.session() as session:
            row = await session.get(Destination, destination_id)
        return DestinationRecord.model_validate(row) if row else None

    async def list_destinations(self, action: SyncAction) -> list[DestinationRecord]:
        stmt = (
            select(Destination)
            .where(Destination.is_active.is_(True), _ACTION_COLUMNS[action].is_(True))
            .order_by(Destination.created_at.asc())
        )
        async with self.database.session() as session:
            rows = (await session.scalars(stmt)).all()
        return [DestinationRecord.model_validate(row) for row in rows]

    async def update_destination(
        self, destination_id: UUID, fields: Mapping[str, Any]
    ) -> None:
        async with self.database.session() as session:
            await session.execute(
                update(Destination)
                .where(Destination.id == destination_id)
                .values(**_column_values(fields))
            )
            await session.commit()

    async def get_delivery_logs(self, job_id: UUID) -> list[DeliveryLogRecord]:
        stmt = (
            select(DeliveryLog)
            .where(DeliveryLog.job_id == job_id)
            .order_by(DeliveryLog.created_at.asc())
        )
        async with self.database.session() as session:
            rows = (await session.scalars(stmt)).all()
        return [DeliveryLogRecord.model_validate(row) for row in rows]

    async def upsert_delivery_log(self, log: DeliveryLogRecord) -> DeliveryLogRecord:
        values = _column_values(log.model_dump())
        values["updated_at"] = utcnow()
        changed = {
            key: value
            for key, value in values.items()
            if key not in ("id", "job_id", "destination_id", "created_at")
        }
        stmt = (
            pg_insert(DeliveryLog)
            .values(**values)
            .on_conflict_do_update(
                index_elements=[DeliveryLog.job_id, DeliveryLog.destination_id],
                set_=changed,
            )
            .returning(DeliveryLog)
        )
        async with self.database.session() as session:
            row = (await session.scalars(stmt)).one()
            record = DeliveryLogRecord.model_validate(row)
            await session.commit()
        return record

    async def ping(self) -> bool:
        return await self.database.ping()
