"""
Shared run loop for the job orchestrators.

A run claims a batch of due jobs, processes each one and converts every
failure into a persisted job state. The run itself never raises: problems
that prevent it from doing its work are reported in ``RunSummary.error``.
"""

import asyncio
from collections.abc import Mapping
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from jobcore.config.logging import bind_run_context, get_logger
from jobcore.v1.jobs.claim import ClaimProtocol
from jobcore.v1.jobs.models import JobKind, JobStatus
from jobcore.v1.jobs.retry import (
    ErrorClassifier,
    RetryAction,
    RetryPolicy,
    RetryScheduler,
    policy_from_settings,
)
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.orchestrators.context import JobContext

logger = get_logger(__name__)


class JobOutcome(str, Enum):
    COMPLETED = "completed"
    RETRIED = "retried"
    RESCHEDULED = "rescheduled"
    FAILED = "failed"
    SKIPPED = "skipped"


_DECISION_OUTCOMES = {
    RetryAction.RETRY: JobOutcome.RETRIED,
    RetryAction.RESCHEDULE: JobOutcome.RESCHEDULED,
    RetryAction.FAIL: JobOutcome.FAILED,
}


class RunSummary(BaseModel):
    kind: JobKind
    worker_id: str
    processed: int = 0
    completed: int = 0
    retried: int = 0
    rescheduled: int = 0
    failed: int = 0
    skipped: int = 0
    error: str | None = None
    details: list[dict[str, Any]] = Field(default_factory=list)
    started_at: datetime
    finished_at: datetime | None = None

    def record(self, job: JobRecord, outcome: JobOutcome, message: str | None = None) -> None:
        self.processed += 1
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)
        detail: dict[str, Any] = {"job_id": str(job.id), "outcome": outcome.value}
        if job.article_id:
            detail["article_id"] = job.article_id
        if message:
            detail["message"] = message
        self.details.append(detail)

    @property
    def ok(self) -> bool:
        return self.error is None


class Orchestrator:
    """Base class: subclasses set ``kind`` and implement ``process``."""

    kind: JobKind
    require_auto_publish = False

    def __init__(
        self,
        context: JobContext,
        policy: RetryPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        concurrency: int | None = None,
        batch_size: int | None = None,
    ):
        settings = context.settings
        self.context = context
        self.store = context.store
        self.clock = context.clock
        self.policy = policy or policy_from_settings(settings, self.kind)
        self.classifier = classifier or self.default_classifier()
        self.concurrency = concurrency or settings.orchestrator_concurrency
        self.batch_size = batch_size or settings.claim_batch_size
        self.claims = ClaimProtocol(
            self.store,
            self.kind,
            context.worker_id,
            staleness=timedelta(seconds=settings.claim_staleness_s),
            clock=self.clock,
            require_auto_publish=self.require_auto_publish,
        )
        self.retry_scheduler = RetryScheduler(
            self.store, self.policy, self.classifier, self.clock
        )

    def default_classifier(self) -> ErrorClassifier:
        return ErrorClassifier()

    async def process(self, job: JobRecord) -> tuple[JobOutcome, str | None]:
        """Drive one claimed job to its next persisted state."""
        raise NotImplementedError

    async def after_run(self) -> None:
        """Hook awaited once every claimed job has been processed."""

    async def run(self) -> RunSummary:
        bind_run_context(self.kind.value, self.context.worker_id)
        summary = RunSummary(
            kind=self.kind, worker_id=self.context.worker_id, started_at=self.clock()
        )
        logger.info("Orchestrator run started", kind=self.kind.value)

        try:
            jobs = await self.claims.claim_batch(self.batch_size)
        except Exception as exc:
            logger.exception("Claiming jobs failed", kind=self.kind.value)
            summary.error = f"Claiming jobs failed: {exc}"
            summary.finished_at = self.clock()
            return summary

        if self.concurrency <= 1:
            for job in jobs:
                await self._run_one(job, summary)
        else:
            semaphore = asyncio.Semaphore(self.concurrency)

            async def bounded(job: JobRecord) -> None:
                async with semaphore:
                    await self._run_one(job, summary)

            await asyncio.gather(*(bounded(job) for job in jobs))

        try:
            await self.after_run()
        except Exception:
            logger.exception("Post-run hook failed", kind=self.kind.value)

        summary.finished_at = self.clock()
        logger.info(
            "Orchestrator run finished",
            kind=self.kind.value,
            processed=summary.processed,
            completed=summary.completed,
            retried=summary.retried,
            rescheduled=summary.rescheduled,
            failed=summary.failed,
            skipped=summary.skipped,
            error=summary.error,
        )
        return summary

    async def _run_one(self, job: JobRecord, summary: RunSummary) -> None:
        log = logger.bind(job_id=str(job.id), article_id=job.article_id)
        log.info("Processing job", retry_count=job.retry_count)
        try:
            outcome, message = await self.process(job)
        except Exception as exc:
            outcome, message = await self._record_failure(job, exc, summary)
        log.info("Job processed", outcome=outcome.value, message=message)
        summary.record(job, outcome, message)

    async def _record_failure(
        self, job: JobRecord, error: Exception, summary: RunSummary
    ) -> tuple[JobOutcome, str]:
        try:
            decision = await self.retry_scheduler.apply(
                job, error, guard=self.claims.owned()
            )
        except Exception as exc:
            # Job stays processing and is picked up again once its claim is stale
            logger.exception("Recording job failure failed", job_id=str(job.id))
            summary.error = f"Recording failure of job {job.id} failed: {exc}"
            return JobOutcome.SKIPPED, str(error)
        if decision is None:
            return JobOutcome.SKIPPED, "Claim lost"
        return _DECISION_OUTCOMES[decision.action], decision.annotate(str(error))

    async def heartbeat(self, job: JobRecord) -> bool:
        """Refresh the claim on a long-running job; False once it is lost."""
        alive = await self.claims.heartbeat(job.id)
        if not alive:
            logger.warning("Job claim lost during processing", job_id=str(job.id))
        return alive

    async def finish(self, job: JobRecord, fields: Mapping[str, Any]) -> bool:
        """Write ``fields`` if this worker still owns ``job``."""
        written = await self.store.conditional_update(job.id, self.claims.owned(), fields)
        if not written:
            logger.warning("Job claim lost, result discarded", job_id=str(job.id))
        return written

    def completed_fields(self, **extra: Any) -> dict[str, Any]:
        return {
            "status": JobStatus.COMPLETED,
            "completed_at": self.clock(),
            "error_message": None,
            "current_language": None,
            **extra,
        }
