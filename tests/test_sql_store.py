"""Job store tests against PostgreSQL; skipped unless DATABASE_URL points at one."""

from datetime import timedelta

import pytest

from jobcore.config.settings import Settings
from jobcore.infra.database import Base, Database
from jobcore.v1.jobs import models  # noqa: F401
from jobcore.v1.jobs.claim import ClaimProtocol
from jobcore.v1.jobs.models import DeliveryStatus, JobKind, JobStatus, SyncAction
from jobcore.v1.jobs.schemas import DeliveryLogRecord, DestinationRecord, JobRecord
from jobcore.v1.jobs.sql_store import SqlJobStore


@pytest.fixture
async def sql_store(postgres_url):
    database = Database(Settings(database_url=postgres_url, debug=False))
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield SqlJobStore(database)
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await database.close()


@pytest.mark.asyncio
async def test_ping(sql_store):
    assert await sql_store.ping()


@pytest.mark.asyncio
async def test_insert_and_dedupe(sql_store):
    job, created = await sql_store.insert_job(
        JobRecord(kind=JobKind.SYNC, payload={"article_id": "a1"}, dedupe_key="sync:e1")
    )
    again, created_again = await sql_store.insert_job(
        JobRecord(kind=JobKind.SYNC, payload={"article_id": "a1"}, dedupe_key="sync:e1")
    )

    assert created
    assert not created_again
    assert again.id == job.id


@pytest.mark.asyncio
async def test_failed_job_does_not_block_dedupe_key(sql_store):
    job, _ = await sql_store.insert_job(
        JobRecord(kind=JobKind.SYNC, dedupe_key="sync:e2", status=JobStatus.FAILED)
    )
    fresh, created = await sql_store.insert_job(JobRecord(kind=JobKind.SYNC, dedupe_key="sync:e2"))

    assert created
    assert fresh.id != job.id


@pytest.mark.asyncio
async def test_claim_round_trip(sql_store, clock):
    job, _ = await sql_store.insert_job(
        JobRecord(kind=JobKind.TRANSLATION, target_languages=["fr"])
    )
    first = ClaimProtocol(sql_store, JobKind.TRANSLATION, "worker-a", clock=clock)
    second = ClaimProtocol(sql_store, JobKind.TRANSLATION, "worker-b", clock=clock)

    assert [j.id for j in await first.claim_batch(5)] == [job.id]
    assert await second.claim_batch(5) == []

    clock.advance(minutes=6)
    assert await second.try_claim(job.id)
    assert not await first.heartbeat(job.id)

    stored = await sql_store.get_job(job.id)
    assert stored.status == JobStatus.PROCESSING
    assert stored.claimed_by == "worker-b"


@pytest.mark.asyncio
async def test_update_and_list(sql_store, clock):
    job, _ = await sql_store.insert_job(
        JobRecord(kind=JobKind.TRANSLATION, target_languages=["fr", "de"])
    )
    await sql_store.update_job(
        job.id,
        {
            "status": JobStatus.RETRYING,
            "scheduled_at": clock() + timedelta(minutes=5),
            "failed_languages": {"de": "unsupported"},
        },
    )

    jobs, total = await sql_store.list_jobs(status=JobStatus.RETRYING)
    assert total == 1
    assert jobs[0].failed_languages == {"de": "unsupported"}
    assert (await sql_store.count_by_status()) == {"retrying": 1}


@pytest.mark.asyncio
async def test_destinations_and_delivery_logs(sql_store):
    job, _ = await sql_store.insert_job(JobRecord(kind=JobKind.SYNC))
    subscribed = await sql_store.add_destination(
        DestinationRecord(name="alpha", webhook_url="http://a.test", sync_on_delete=True)
    )
    await sql_store.add_destination(DestinationRecord(name="beta", webhook_url="http://b.test"))

    deletes = await sql_store.list_destinations(SyncAction.DELETE)
    assert [d.id for d in deletes] == [subscribed.id]

    first = await sql_store.upsert_delivery_log(
        DeliveryLogRecord(job_id=job.id, destination_id=subscribed.id, status=DeliveryStatus.RETRYING, retry_count=1)
    )
    second = await sql_store.upsert_delivery_log(
        DeliveryLogRecord(job_id=job.id, destination_id=subscribed.id, status=DeliveryStatus.SUCCESS, retry_count=1)
    )

    logs = await sql_store.get_delivery_logs(job.id)
    assert len(logs) == 1
    assert logs[0].status == DeliveryStatus.SUCCESS
    assert second.id == first.id
