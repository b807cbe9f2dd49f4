"""
Job service for creating jobs from the actions that originate them.

Each job carries a natural dedupe key so that repeating the originating
action (a retried publish, a redelivered content event) never creates a
second job for the same work.
"""

from datetime import datetime
from typing import Any

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import ValidationError
from jobcore.v1.jobs.models import JobKind, SyncAction, TargetKind
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.jobs.store import JobStore

logger = get_logger(__name__)


class JobService:
    """Creates translation, scheduled-publish and sync jobs."""

    def __init__(self, store: JobStore):
        self.store = store

    async def _insert(self, job: JobRecord) -> tuple[JobRecord, bool]:
        stored, created = await self.store.insert_job(job)
        logger.info(
            "Job enqueued" if created else "Job deduplicated",
            job_id=str(stored.id),
            kind=stored.kind.value,
            dedupe_key=stored.dedupe_key,
        )
        return stored, created

    async def enqueue_translation(
        self,
        article_id: str,
        target_languages: list[str],
        website_id: str | None = None,
        source_language: str | None = None,
    ) -> tuple[JobRecord, bool]:
        languages = list(dict.fromkeys(lang for lang in target_languages if lang))
        if not languages:
            raise ValidationError(
                "Translation needs at least one target language",
                {"article_id": article_id},
            )
        return await self._insert(
            JobRecord(
                kind=JobKind.TRANSLATION,
                payload={
                    "article_id": article_id,
                    "website_id": website_id,
                    "source_language": source_language,
                },
                target_languages=languages,
                dedupe_key=f"translation:{article_id}",
            )
        )

    async def enqueue_scheduled_publish(
        self,
        article_id: str,
        publish_at: datetime,
        target_kind: TargetKind = TargetKind.INTERNAL,
        website_id: str | None = None,
        destination_id: str | None = None,
        auto_translate: bool = False,
        target_languages: list[str] | None = None,
        source_language: str | None = None,
    ) -> tuple[JobRecord, bool]:
        if target_kind == TargetKind.EXTERNAL and not destination_id:
            raise ValidationError(
                "External publishing needs a destination", {"article_id": article_id}
            )
        payload: dict[str, Any] = {
            "article_id": article_id,
            "website_id": website_id,
            "target_kind": target_kind.value,
            "destination_id": destination_id,
            "auto_translate": auto_translate,
            "target_languages": target_languages or [],
            "source_language": source_language,
        }
        return await self._insert(
            JobRecord(
                kind=JobKind.SCHEDULED_PUBLISH,
                payload=payload,
                scheduled_at=publish_at,
                dedupe_key=f"publish:{article_id}:{publish_at.isoformat()}",
            )
        )

    async def create_sync_job(
        self,
        article_id: str,
        action: SyncAction,
        data: dict[str, Any] | None = None,
        event_id: str | None = None,
    ) -> tuple[JobRecord, bool]:
        """Record a content change to be fanned out to sync destinations."""
        return await self._insert(
            JobRecord(
                kind=JobKind.SYNC,
                payload={
                    "article_id": article_id,
                    "action": action.value,
                    "data": data or {},
                },
                dedupe_key=f"sync:{event_id}" if event_id else None,
            )
        )
