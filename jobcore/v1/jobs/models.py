"""
Persistent models for jobs, sync destinations and delivery logs.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from jobcore.infra.database import Base


class JobKind(str, Enum):
    TRANSLATION = "translation"
    SCHEDULED_PUBLISH = "scheduled_publish"
    SYNC = "sync"


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


class SyncAction(str, Enum):
    """Content change that triggers a sync job."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class TargetKind(str, Enum):
    """Where a scheduled article is published."""

    INTERNAL = "internal"
    EXTERNAL = "external"


def utcnow() -> datetime:
    return datetime.now(UTC)


class Job(Base):
    """
    Unit of asynchronous work.

    Claimed optimistically through ``started_at``/``claimed_by``; never
    deleted, so terminal rows double as the audit trail.
    """

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    kind: Mapped[str] = mapped_column(
        Text, nullable=False, comment="translation|scheduled_publish|sync"
    )
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="pending|processing|retrying|completed|failed",
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        server_default="{}",
        comment="Kind-specific references (article_id, website_id, action, ...)",
    )
    auto_publish: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true",
        comment="Scheduled publish is enabled for this job",
    )
    dedupe_key: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Natural key making job creation idempotent"
    )

    # Claim and retry state
    retry_count: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, server_default="0"
    )
    started_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Claim timestamp"
    )
    claimed_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Worker that wrote started_at"
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Earliest next attempt"
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Translation progress
    target_languages: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list, server_default="[]"
    )
    completed_languages: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list, server_default="[]"
    )
    failed_languages: Mapped[dict[str, str]] = mapped_column(
        JSON, nullable=False, default=dict, server_default="{}",
        comment="language -> error message",
    )
    progress: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, server_default="0"
    )
    current_language: Mapped[str | None] = mapped_column(Text, nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default="now()",
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default="now()",
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'retrying', 'completed', 'failed')",
            name="jobs_status_check",
        ),
        CheckConstraint(
            "kind IN ('translation', 'scheduled_publish', 'sync')",
            name="jobs_kind_check",
        ),
        CheckConstraint("progress BETWEEN 0 AND 100", name="jobs_progress_check"),
        Index("ix_jobs_kind_status_scheduled_at", "kind", "status", "scheduled_at"),
        Index("ix_jobs_created_at", "created_at"),
        Index(
            "ix_jobs_dedupe_key_live",
            "dedupe_key",
            unique=True,
            postgresql_where=text("dedupe_key IS NOT NULL AND status <> 'failed'"),
        ),
    )


class Destination(Base):
    """External system that receives content-sync webhooks."""

    __tablename__ = "sync_destinations"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    webhook_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    webhook_secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    sync_on_create: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    sync_on_update: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    sync_on_delete: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    last_sync_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default="now()",
        default=utcnow,
    )


class DeliveryLog(Base):
    """Outcome of delivering one sync job to one destination."""

    __tablename__ = "delivery_logs"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    job_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("jobs.id"), nullable=False
    )
    destination_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("sync_destinations.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=DeliveryStatus.PENDING.value,
        comment="pending|retrying|success|failed",
    )
    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body_snippet: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="First 1000 characters of the response"
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, server_default="0"
    )
    next_retry_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default="now()",
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default="now()",
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("job_id", "destination_id", name="delivery_logs_job_destination_key"),
        Index("ix_delivery_logs_job_id", "job_id"),
        CheckConstraint(
            "status IN ('pending', 'retrying', 'success', 'failed')",
            name="delivery_logs_status_check",
        ),
    )
