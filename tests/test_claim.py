import asyncio
import os
from datetime import timedelta

import pytest

from jobcore.v1.jobs.claim import ClaimProtocol, make_worker_id
from jobcore.v1.jobs.models import JobKind, JobStatus
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.jobs.store import InMemoryJobStore


class LastWriteWinsStore(InMemoryJobStore):
    """Store whose conditional update checks the predicate, yields, then
    writes, so concurrent claimers can all pass the check."""

    def __init__(self):
        super().__init__()
        self.accepted_updates = 0

    async def conditional_update(self, job_id, predicate, fields):
        job = self._jobs.get(job_id)
        if job is None or not predicate.matches(job):
            return False
        await asyncio.sleep(0)
        self._jobs[job_id] = self._jobs[job_id].model_copy(update=dict(fields), deep=True)
        self.accepted_updates += 1
        return True

    async def read_back(self, job_id):
        await asyncio.sleep(0)
        return await super().read_back(job_id)


async def add_job(store, **fields) -> JobRecord:
    fields.setdefault("kind", JobKind.TRANSLATION)
    fields.setdefault("target_languages", ["fr"])
    job, _ = await store.insert_job(JobRecord(**fields))
    return job


def claimer(store, clock, worker_id="worker-a", kind=JobKind.TRANSLATION, **kwargs):
    return ClaimProtocol(store, kind, worker_id, clock=clock, **kwargs)


@pytest.mark.asyncio
async def test_claim_marks_job_processing(store, clock):
    """Claiming writes status, lock timestamp and owner."""
    job = await add_job(store)

    claimed = await claimer(store, clock).claim_batch(10)

    assert [j.id for j in claimed] == [job.id]
    stored = await store.get_job(job.id)
    assert stored.status == JobStatus.PROCESSING
    assert stored.claimed_by == "worker-a"
    assert stored.started_at == clock()


@pytest.mark.asyncio
async def test_claimed_job_not_claimable_by_another_worker(store, clock):
    job = await add_job(store)
    await claimer(store, clock, "worker-a").claim_batch(10)

    assert await claimer(store, clock, "worker-b").claim_batch(10) == []
    assert not await claimer(store, clock, "worker-b").try_claim(job.id)


@pytest.mark.asyncio
async def test_future_job_waits_until_due(store, clock):
    job = await add_job(store, scheduled_at=clock() + timedelta(minutes=10))
    protocol = claimer(store, clock)

    assert await protocol.claim_batch(10) == []

    clock.advance(minutes=10)
    assert [j.id for j in await protocol.claim_batch(10)] == [job.id]


@pytest.mark.asyncio
async def test_retrying_job_is_claimable_when_due(store, clock):
    job = await add_job(store, status=JobStatus.RETRYING, retry_count=1, scheduled_at=clock())
    assert await claimer(store, clock).try_claim(job.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [JobStatus.COMPLETED, JobStatus.FAILED])
async def test_terminal_jobs_are_never_claimed(store, clock, status):
    await add_job(store, status=status)
    assert await claimer(store, clock).claim_batch(10) == []


@pytest.mark.asyncio
async def test_claims_only_its_own_kind(store, clock):
    await add_job(store, kind=JobKind.SYNC, payload={"article_id": "a1", "action": "update"})
    assert await claimer(store, clock).claim_batch(10) == []


@pytest.mark.asyncio
async def test_require_auto_publish(store, clock):
    held = await add_job(store, kind=JobKind.SCHEDULED_PUBLISH, auto_publish=False)
    ready = await add_job(store, kind=JobKind.SCHEDULED_PUBLISH)

    protocol = claimer(
        store, clock, kind=JobKind.SCHEDULED_PUBLISH, require_auto_publish=True
    )
    claimed = await protocol.claim_batch(10)

    assert [j.id for j in claimed] == [ready.id]
    assert (await store.get_job(held.id)).status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_batch_limit_takes_earliest_due(store, clock):
    now = clock()
    late = await add_job(store, scheduled_at=now - timedelta(minutes=1))
    early = await add_job(store, scheduled_at=now - timedelta(minutes=30))
    middle = await add_job(store, scheduled_at=now - timedelta(minutes=10))

    claimed = await claimer(store, clock).claim_batch(2)

    assert [j.id for j in claimed] == [early.id, middle.id]
    assert (await store.get_job(late.id)).status == JobStatus.PENDING


class TestStaleClaims:
    @pytest.mark.asyncio
    async def test_abandoned_claim_is_recovered(self, store, clock):
        """A job stuck in processing is reclaimed once its claim is stale."""
        job = await add_job(store)
        crashed = claimer(store, clock, "worker-a")
        rescuer = claimer(store, clock, "worker-b")
        await crashed.claim_batch(10)

        clock.advance(minutes=4)
        assert await rescuer.claim_batch(10) == []

        clock.advance(minutes=2)
        assert [j.id for j in await rescuer.claim_batch(10)] == [job.id]
        assert (await store.get_job(job.id)).claimed_by == "worker-b"

        # The original owner can no longer write
        assert not await crashed.heartbeat(job.id)

    @pytest.mark.asyncio
    async def test_heartbeat_keeps_claim_alive(self, store, clock):
        job = await add_job(store)
        owner = claimer(store, clock, "worker-a")
        await owner.claim_batch(10)

        clock.advance(minutes=4)
        assert await owner.heartbeat(job.id)
        clock.advance(minutes=4)

        assert await claimer(store, clock, "worker-b").claim_batch(10) == []

    @pytest.mark.asyncio
    async def test_staleness_is_configurable(self, store, clock):
        job = await add_job(store)
        await claimer(store, clock, "worker-a").claim_batch(10)
        clock.advance(seconds=31)

        impatient = claimer(store, clock, "worker-b", staleness=timedelta(seconds=30))
        assert await impatient.try_claim(job.id)


class TestConcurrentClaims:
    @pytest.mark.asyncio
    async def test_each_job_claimed_once(self, store, clock):
        for _ in range(3):
            await add_job(store)
        workers = [claimer(store, clock, f"worker-{i}") for i in range(5)]

        batches = await asyncio.gather(*(w.claim_batch(10) for w in workers))

        claimed = [job.id for batch in batches for job in batch]
        assert len(claimed) == 3
        assert len(set(claimed)) == 3

    @pytest.mark.asyncio
    async def test_read_back_settles_last_write_wins_race(self, clock):
        """Both conditional updates succeed; only the surviving writer owns the job."""
        store = LastWriteWinsStore()
        job = await add_job(store)
        first = claimer(store, clock, "worker-a")
        second = claimer(store, clock, "worker-b")

        results = await asyncio.gather(first.try_claim(job.id), second.try_claim(job.id))

        assert store.accepted_updates == 2
        assert results == [False, True]
        assert (await store.get_job(job.id)).claimed_by == "worker-b"


def test_worker_ids_are_unique():
    ids = {make_worker_id() for _ in range(20)}
    assert len(ids) == 20
    assert all(str(os.getpid()) in worker_id for worker_id in ids)
