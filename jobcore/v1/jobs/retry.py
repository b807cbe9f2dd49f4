"""
Retry/backoff decisions and their persistence.

Every failure is classified as retryable or terminal. Retryable failures
are retried on a backoff schedule until ``max_retries`` is reached; then
the job's terminal policy either fails it or reschedules it with a fresh
retry budget.
"""

import asyncio
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import httpx

from jobcore.config.logging import get_logger
from jobcore.config.settings import Settings, TerminalPolicy
from jobcore.v1.core.exceptions import JobCoreException
from jobcore.v1.jobs.models import JobKind, JobStatus, utcnow
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.jobs.store import JobPredicate, JobStore

logger = get_logger(__name__)


class ErrorClass(str, Enum):
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class RetryAction(str, Enum):
    RETRY = "retry"
    FAIL = "fail"
    RESCHEDULE = "reschedule"


_RETRYABLE_BUILTINS = (
    httpx.TimeoutException,
    httpx.TransportError,
    asyncio.TimeoutError,
    ConnectionError,
)


class ErrorClassifier:
    """Decides whether a failure is worth another attempt.

    Job core exceptions carry their own ``retryable`` flag. Transport and
    timeout errors are retryable. A message containing any of
    ``terminal_patterns`` is terminal whatever its type. Anything else is
    assumed to be transient.
    """

    def __init__(self, terminal_patterns: Iterable[str] = ()):
        self.terminal_patterns = tuple(terminal_patterns)

    def classify(self, error: BaseException) -> ErrorClass:
        message = str(error)
        if any(pattern in message for pattern in self.terminal_patterns):
            return ErrorClass.TERMINAL
        if isinstance(error, JobCoreException):
            return ErrorClass.RETRYABLE if error.retryable else ErrorClass.TERMINAL
        if isinstance(error, _RETRYABLE_BUILTINS):
            return ErrorClass.RETRYABLE
        return ErrorClass.RETRYABLE


@dataclass(frozen=True)
class BackoffSchedule:
    delays: tuple[timedelta, ...]

    @classmethod
    def from_minutes(cls, minutes: Sequence[int]) -> "BackoffSchedule":
        if not minutes:
            raise ValueError("Backoff schedule needs at least one delay")
        return cls(tuple(timedelta(minutes=m) for m in minutes))

    def delay_for(self, retry_count: int) -> timedelta:
        """Delay before retry number ``retry_count`` (1-based).

        Counts past the end of the schedule reuse the last delay.
        """
        index = min(max(retry_count, 1), len(self.delays)) - 1
        return self.delays[index]


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    retry_count: int
    next_attempt_at: datetime | None = None
    note: str | None = None

    @property
    def status(self) -> JobStatus:
        return {
            RetryAction.RETRY: JobStatus.RETRYING,
            RetryAction.FAIL: JobStatus.FAILED,
            RetryAction.RESCHEDULE: JobStatus.PENDING,
        }[self.action]

    def annotate(self, message: str) -> str:
        return f"{message} {self.note}" if self.note else message

    def job_fields(self, message: str, now: datetime) -> dict[str, Any]:
        """Column values that persist this decision on a job."""
        fields: dict[str, Any] = {
            "status": self.status,
            "retry_count": self.retry_count,
            "error_message": self.annotate(message),
            "current_language": None,
        }
        if self.action == RetryAction.FAIL:
            fields["completed_at"] = now
        else:
            fields["scheduled_at"] = self.next_attempt_at
        return fields


class RetryPolicy:
    def __init__(
        self,
        max_retries: int,
        backoff: BackoffSchedule,
        terminal_policy: TerminalPolicy = TerminalPolicy.FAIL,
        reschedule_window: timedelta = timedelta(hours=2),
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.backoff = backoff
        self.terminal_policy = terminal_policy
        self.reschedule_window = reschedule_window

    def decide(
        self, retry_count: int, classification: ErrorClass, now: datetime
    ) -> RetryDecision:
        if classification == ErrorClass.TERMINAL:
            return RetryDecision(RetryAction.FAIL, retry_count)

        attempts = retry_count + 1
        if attempts < self.max_retries:
            return RetryDecision(
                RetryAction.RETRY, attempts, now + self.backoff.delay_for(attempts)
            )

        if self.terminal_policy == TerminalPolicy.RESCHEDULE:
            return RetryDecision(
                RetryAction.RESCHEDULE,
                0,
                now + self.reschedule_window,
                note=f"(rescheduled after {attempts} retries)",
            )
        return RetryDecision(RetryAction.FAIL, attempts)


def policy_from_settings(settings: Settings, kind: JobKind) -> RetryPolicy:
    prefix = {
        JobKind.TRANSLATION: "translation",
        JobKind.SCHEDULED_PUBLISH: "publish",
        JobKind.SYNC: "sync",
    }[kind]
    return RetryPolicy(
        max_retries=getattr(settings, f"{prefix}_max_retries"),
        backoff=BackoffSchedule.from_minutes(getattr(settings, f"{prefix}_backoff_minutes")),
        terminal_policy=getattr(settings, f"{prefix}_terminal_policy"),
        reschedule_window=timedelta(minutes=settings.reschedule_window_minutes),
    )


class RetryScheduler:
    """Turns a job failure into its next persisted state."""

    def __init__(
        self,
        store: JobStore,
        policy: RetryPolicy,
        classifier: ErrorClassifier,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.policy = policy
        self.classifier = classifier
        self.clock = clock

    async def apply(
        self,
        job: JobRecord,
        error: BaseException,
        guard: JobPredicate | None = None,
        extra_fields: dict[str, Any] | None = None,
    ) -> RetryDecision | None:
        """Persist the decision for ``error``.

        With ``guard`` the write only happens while the predicate holds;
        ``None`` is returned when it no longer does.
        """
        classification = self.classifier.classify(error)
        now = self.clock()
        decision = self.policy.decide(job.retry_count, classification, now)
        fields = decision.job_fields(str(error) or error.__class__.__name__, now)
        if extra_fields:
            fields.update(extra_fields)

        if guard is not None:
            if not await self.store.conditional_update(job.id, guard, fields):
                logger.warning("Job claim lost before failure was recorded", job_id=str(job.id))
                return None
        else:
            await self.store.update_job(job.id, fields)

        logger.info(
            "Job failure recorded",
            job_id=str(job.id),
            kind=job.kind.value,
            classification=classification.value,
            action=decision.action.value,
            retry_count=decision.retry_count,
            next_attempt_at=decision.next_attempt_at.isoformat()
            if decision.next_attempt_at
            else None,
            error=str(error),
        )
        return decision


def pending_targets(
    targets: Iterable[str], completed: Iterable[str], failed: Iterable[str]
) -> list[str]:
    """Targets that are neither completed nor failed, in original order."""
    resolved = set(completed) | set(failed)
    return [target for target in targets if target not in resolved]


def finalize_status(
    targets: Sequence[str], completed: Iterable[str], failed: Iterable[str]
) -> JobStatus | None:
    """Terminal status for a multi-target job, ``None`` while targets remain.

    Completed when every target is resolved and at least one succeeded;
    failed only when every target failed.
    """
    completed, failed = set(completed), set(failed)
    if pending_targets(targets, completed, failed):
        return None
    if targets and all(target in failed for target in targets):
        return JobStatus.FAILED
    return JobStatus.COMPLETED
