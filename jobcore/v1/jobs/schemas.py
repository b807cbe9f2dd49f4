"""
Pydantic records exchanged with the job store and the admin API.
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from jobcore.v1.jobs.models import (
    DeliveryStatus,
    JobKind,
    JobStatus,
    SyncAction,
    utcnow,
)


class JobRecord(BaseModel):
    """A job as read from or written to a store."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    kind: JobKind
    status: JobStatus = JobStatus.PENDING
    payload: dict[str, Any] = Field(default_factory=dict)
    auto_publish: bool = True
    dedupe_key: str | None = None

    retry_count: int = 0
    started_at: datetime | None = None
    claimed_by: str | None = None
    scheduled_at: datetime | None = None
    error_message: str | None = None
    result: dict[str, Any] | None = None

    target_languages: list[str] = Field(default_factory=list)
    completed_languages: list[str] = Field(default_factory=list)
    failed_languages: dict[str, str] = Field(default_factory=dict)
    progress: int = 0
    current_language: str | None = None

    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def article_id(self) -> str | None:
        return self.payload.get("article_id")


class DestinationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    name: str
    webhook_url: str | None = None
    webhook_secret: str | None = None
    is_active: bool = True
    sync_on_create: bool = True
    sync_on_update: bool = True
    sync_on_delete: bool = False
    last_synced_at: datetime | None = None
    last_sync_status: str | None = None
    last_sync_error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def accepts(self, action: SyncAction) -> bool:
        """Whether this destination subscribes to ``action``."""
        return {
            SyncAction.CREATE: self.sync_on_create,
            SyncAction.UPDATE: self.sync_on_update,
            SyncAction.DELETE: self.sync_on_delete,
        }[action]


class DeliveryLogRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    job_id: UUID
    destination_id: UUID
    status: DeliveryStatus = DeliveryStatus.PENDING
    response_status: int | None = None
    response_body_snippet: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    next_retry_at: datetime | None = None
    duration_ms: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_final(self) -> bool:
        return self.status in (DeliveryStatus.SUCCESS, DeliveryStatus.FAILED)


class SyncJobCreate(BaseModel):
    """Request body for enqueueing a content change."""

    article_id: str = Field(..., min_length=1, description="Changed article")
    action: SyncAction = Field(..., description="create|update|delete")
    data: dict[str, Any] = Field(default_factory=dict, description="Article snapshot")
    event_id: str | None = Field(
        default=None, description="Caller's event id, used to deduplicate enqueues"
    )


class JobListResponse(BaseModel):
    jobs: list[JobRecord]
    total: int
    limit: int
    offset: int
