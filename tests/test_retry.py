import asyncio
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from jobcore.config.settings import Settings, TerminalPolicy
from jobcore.v1.core.exceptions import (
    AuthError,
    DeliveryTimeout,
    NetworkError,
    PartialFailure,
    RemoteClientError,
    RemoteServerError,
    ValidationError,
)
from jobcore.v1.jobs.models import JobKind, JobStatus
from jobcore.v1.jobs.retry import (
    BackoffSchedule,
    ErrorClass,
    ErrorClassifier,
    RetryAction,
    RetryPolicy,
    RetryScheduler,
    finalize_status,
    pending_targets,
    policy_from_settings,
)
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.jobs.store import OwnedByPredicate

NOW = datetime(2026, 5, 1, 9, 0, tzinfo=UTC)


def default_policy(terminal_policy=TerminalPolicy.FAIL) -> RetryPolicy:
    return RetryPolicy(3, BackoffSchedule.from_minutes([5, 30, 120]), terminal_policy)


class TestBackoffSchedule:
    def test_delays_by_retry_number(self):
        schedule = BackoffSchedule.from_minutes([5, 30, 120])
        assert schedule.delay_for(1) == timedelta(minutes=5)
        assert schedule.delay_for(2) == timedelta(minutes=30)
        assert schedule.delay_for(3) == timedelta(minutes=120)

    def test_past_the_end_reuses_last_delay(self):
        schedule = BackoffSchedule.from_minutes([1, 5])
        assert schedule.delay_for(7) == timedelta(minutes=5)

    def test_zero_uses_first_delay(self):
        assert BackoffSchedule.from_minutes([1, 5]).delay_for(0) == timedelta(minutes=1)

    def test_empty_schedule_rejected(self):
        with pytest.raises(ValueError):
            BackoffSchedule.from_minutes([])


class TestRetryPolicy:
    def test_retry_then_fail(self):
        """Two retries at +5m and +30m, then the third failure is final."""
        policy = default_policy()

        first = policy.decide(0, ErrorClass.RETRYABLE, NOW)
        assert first.action == RetryAction.RETRY
        assert first.retry_count == 1
        assert first.next_attempt_at == NOW + timedelta(minutes=5)
        assert first.status == JobStatus.RETRYING

        second = policy.decide(1, ErrorClass.RETRYABLE, NOW)
        assert second.action == RetryAction.RETRY
        assert second.retry_count == 2
        assert second.next_attempt_at == NOW + timedelta(minutes=30)

        third = policy.decide(2, ErrorClass.RETRYABLE, NOW)
        assert third.action == RetryAction.FAIL
        assert third.retry_count == 3
        assert third.next_attempt_at is None
        assert third.status == JobStatus.FAILED

    def test_reschedule_policy_resets_budget(self):
        decision = default_policy(TerminalPolicy.RESCHEDULE).decide(
            2, ErrorClass.RETRYABLE, NOW
        )
        assert decision.action == RetryAction.RESCHEDULE
        assert decision.status == JobStatus.PENDING
        assert decision.retry_count == 0
        assert decision.next_attempt_at == NOW + timedelta(hours=2)
        assert decision.annotate("Publish failed") == (
            "Publish failed (rescheduled after 3 retries)"
        )

    def test_terminal_error_fails_immediately(self):
        decision = default_policy(TerminalPolicy.RESCHEDULE).decide(
            0, ErrorClass.TERMINAL, NOW
        )
        assert decision.action == RetryAction.FAIL
        assert decision.retry_count == 0

    def test_needs_at_least_one_retry(self):
        with pytest.raises(ValueError):
            RetryPolicy(0, BackoffSchedule.from_minutes([5]))

    def test_job_fields(self):
        policy = default_policy()
        retry_fields = policy.decide(0, ErrorClass.RETRYABLE, NOW).job_fields("boom", NOW)
        assert retry_fields["status"] == JobStatus.RETRYING
        assert retry_fields["scheduled_at"] == NOW + timedelta(minutes=5)
        assert retry_fields["error_message"] == "boom"
        assert "completed_at" not in retry_fields

        fail_fields = policy.decide(0, ErrorClass.TERMINAL, NOW).job_fields("boom", NOW)
        assert fail_fields["status"] == JobStatus.FAILED
        assert fail_fields["completed_at"] == NOW
        assert "scheduled_at" not in fail_fields

    def test_policy_from_settings(self):
        settings = Settings(sync_terminal_policy=TerminalPolicy.RESCHEDULE)

        sync = policy_from_settings(settings, JobKind.SYNC)
        assert sync.backoff.delay_for(1) == timedelta(minutes=1)
        assert sync.terminal_policy == TerminalPolicy.RESCHEDULE

        translation = policy_from_settings(settings, JobKind.TRANSLATION)
        assert translation.max_retries == 3
        assert translation.backoff.delay_for(1) == timedelta(minutes=5)
        assert translation.terminal_policy == TerminalPolicy.FAIL


class TestErrorClassifier:
    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("connection reset"),
            DeliveryTimeout("timed out"),
            RemoteServerError("HTTP 503", 503),
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            asyncio.TimeoutError(),
            ConnectionResetError(),
            RuntimeError("something odd"),
        ],
    )
    def test_retryable(self, error):
        assert ErrorClassifier().classify(error) == ErrorClass.RETRYABLE

    @pytest.mark.parametrize(
        "error",
        [
            RemoteClientError("HTTP 404", 404),
            AuthError("HTTP 401"),
            ValidationError("bad payload"),
        ],
    )
    def test_terminal(self, error):
        assert ErrorClassifier().classify(error) == ErrorClass.TERMINAL

    def test_message_pattern_is_terminal(self):
        classifier = ErrorClassifier(["Invalid API key"])
        assert classifier.classify(RuntimeError("Invalid API key provided")) == ErrorClass.TERMINAL
        assert classifier.classify(NetworkError("Invalid API key")) == ErrorClass.TERMINAL


class TestRetryScheduler:
    async def _claimed_job(self, store, worker_id="worker-a") -> JobRecord:
        job, _ = await store.insert_job(
            JobRecord(
                kind=JobKind.SCHEDULED_PUBLISH,
                status=JobStatus.PROCESSING,
                claimed_by=worker_id,
                started_at=NOW,
                payload={"article_id": "a1"},
            )
        )
        return job

    @pytest.mark.asyncio
    async def test_persists_backoff_sequence(self, store):
        scheduler = RetryScheduler(store, default_policy(), ErrorClassifier(), lambda: NOW)
        job = await self._claimed_job(store)

        expected = [
            (JobStatus.RETRYING, 1, NOW + timedelta(minutes=5)),
            (JobStatus.RETRYING, 2, NOW + timedelta(minutes=30)),
        ]
        for status, count, scheduled_at in expected:
            await scheduler.apply(job, NetworkError("CMS unreachable"))
            job = await store.get_job(job.id)
            assert job.status == status
            assert job.retry_count == count
            assert job.scheduled_at == scheduled_at
            assert job.error_message == "CMS unreachable"

        decision = await scheduler.apply(job, NetworkError("CMS unreachable"))
        job = await store.get_job(job.id)
        assert decision.action == RetryAction.FAIL
        assert job.status == JobStatus.FAILED
        assert job.retry_count == 3
        assert job.completed_at == NOW

    @pytest.mark.asyncio
    async def test_guard_blocks_write_after_claim_lost(self, store):
        scheduler = RetryScheduler(store, default_policy(), ErrorClassifier(), lambda: NOW)
        job = await self._claimed_job(store, worker_id="worker-b")

        decision = await scheduler.apply(
            job, NetworkError("boom"), guard=OwnedByPredicate("worker-a")
        )

        assert decision is None
        stored = await store.get_job(job.id)
        assert stored.status == JobStatus.PROCESSING
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_extra_fields_are_written(self, store):
        scheduler = RetryScheduler(store, default_policy(), ErrorClassifier(), lambda: NOW)
        job = await self._claimed_job(store)

        await scheduler.apply(job, ValidationError("bad"), extra_fields={"progress": 50})

        stored = await store.get_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.progress == 50


def test_pending_targets_keeps_order():
    assert pending_targets(["fr", "de", "ja", "es"], ["de"], ["ja"]) == ["fr", "es"]


class TestFinalizeStatus:
    def test_pending_targets_leave_job_open(self):
        assert finalize_status(["fr", "de"], ["fr"], []) is None

    def test_all_completed(self):
        assert finalize_status(["fr", "de"], ["fr", "de"], []) == JobStatus.COMPLETED

    def test_partial_success_completes(self):
        assert finalize_status(["fr", "de"], ["fr"], ["de"]) == JobStatus.COMPLETED

    def test_all_failed(self):
        assert finalize_status(["fr", "de"], [], ["fr", "de"]) == JobStatus.FAILED


def test_partial_failure_message_lists_targets():
    error = PartialFailure("Failed languages", {"de": "unsupported", "ja": "HTTP 500"})

    assert error.message == "Failed languages: de: unsupported; ja: HTTP 500"
    assert error.failures == {"de": "unsupported", "ja": "HTTP 500"}
    assert error.status_code == 207
