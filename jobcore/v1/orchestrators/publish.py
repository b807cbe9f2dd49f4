"""
Scheduled-publish jobs.

A due job is published through the publisher for its target kind. On
success a translation job is chained when the article asked for one, and
search engines are pinged in the background; a failed ping is logged and
never affects the job.
"""

import asyncio

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import ValidationError
from jobcore.v1.core.registries import PublisherRegistry
from jobcore.v1.jobs.models import JobKind, TargetKind
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.jobs.service import JobService
from jobcore.v1.orchestrators.actions import SearchEngineNotifier
from jobcore.v1.orchestrators.base import JobOutcome, Orchestrator
from jobcore.v1.orchestrators.context import JobContext

logger = get_logger(__name__)


class ScheduledPublishOrchestrator(Orchestrator):
    kind = JobKind.SCHEDULED_PUBLISH
    require_auto_publish = True

    def __init__(
        self,
        context: JobContext,
        publishers: PublisherRegistry | None = None,
        notifier: SearchEngineNotifier | None = None,
        **kwargs,
    ):
        super().__init__(context, **kwargs)
        self.publishers = publishers or context.publishers
        self.notifier = notifier or context.notifier
        self.jobs = JobService(self.store)
        self._pings: list[asyncio.Task] = []

    async def process(self, job: JobRecord) -> tuple[JobOutcome, str | None]:
        raw_kind = job.payload.get("target_kind", TargetKind.INTERNAL.value)
        try:
            target_kind = TargetKind(raw_kind)
        except ValueError:
            raise ValidationError(f"Unknown publish target: {raw_kind}") from None
        if not self.publishers.has(target_kind.value):
            raise ValidationError(f"No publisher registered for {target_kind.value}")

        result = await self.publishers.get(target_kind.value).publish(job)

        # Chained before completion so a failure here retries the (idempotent) publish
        translation_id = await self._chain_translation(job)
        if translation_id:
            result = {**result, "translation_job_id": translation_id}

        if not await self.finish(
            job, self.completed_fields(result=result, retry_count=0)
        ):
            return JobOutcome.SKIPPED, "Claim lost"

        logger.info(
            "Article published",
            job_id=str(job.id),
            article_id=job.article_id,
            target_kind=target_kind.value,
        )
        self._schedule_ping(job, result.get("url"))
        return JobOutcome.COMPLETED, None

    async def _chain_translation(self, job: JobRecord) -> str | None:
        languages = job.payload.get("target_languages") or []
        if not job.payload.get("auto_translate") or not languages:
            return None
        translation, _ = await self.jobs.enqueue_translation(
            article_id=job.article_id,
            target_languages=languages,
            website_id=job.payload.get("website_id"),
            source_language=job.payload.get("source_language"),
        )
        return str(translation.id)

    def _schedule_ping(self, job: JobRecord, url: str | None) -> None:
        if self.notifier is None or not url:
            return
        self._pings.append(asyncio.create_task(self._ping(job, url)))

    async def _ping(self, job: JobRecord, url: str) -> None:
        try:
            await self.notifier.notify(url)
        except Exception as exc:
            logger.warning(
                "Search engine ping failed", job_id=str(job.id), url=url, error=str(exc)
            )

    async def after_run(self) -> None:
        pings, self._pings = self._pings, []
        if pings:
            await asyncio.gather(*pings)
