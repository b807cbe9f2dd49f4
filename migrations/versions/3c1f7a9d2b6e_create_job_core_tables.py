"""create jobs, sync destinations and delivery logs

Revision ID: 3c1f7a9d2b6e
Revises:
Create Date: 2026-10-18 09:14:03.511284

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1f7a9d2b6e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "jobs",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "kind", sa.Text, nullable=False, comment="translation|scheduled_publish|sync"
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="pending|processing|retrying|completed|failed",
        ),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            server_default="{}",
            comment="Kind-specific references (article_id, website_id, action, ...)",
        ),
        sa.Column(
            "auto_publish",
            sa.Boolean,
            nullable=False,
            server_default=sa.true(),
            comment="Scheduled publish is enabled for this job",
        ),
        sa.Column(
            "dedupe_key",
            sa.Text,
            nullable=True,
            comment="Natural key making job creation idempotent",
        ),
        # Claim and retry state
        sa.Column("retry_count", sa.SmallInteger, nullable=False, server_default="0"),
        sa.Column(
            "started_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Claim timestamp",
        ),
        sa.Column(
            "claimed_by", sa.Text, nullable=True, comment="Worker that wrote started_at"
        ),
        sa.Column(
            "scheduled_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Earliest next attempt",
        ),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("result", sa.JSON, nullable=True),
        # Translation progress
        sa.Column("target_languages", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("completed_languages", sa.JSON, nullable=False, server_default="[]"),
        sa.Column(
            "failed_languages",
            sa.JSON,
            nullable=False,
            server_default="{}",
            comment="language -> error message",
        ),
        sa.Column("progress", sa.SmallInteger, nullable=False, server_default="0"),
        sa.Column("current_language", sa.Text, nullable=True),
        # Timestamps
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'retrying', 'completed', 'failed')",
            name="jobs_status_check",
        ),
        sa.CheckConstraint(
            "kind IN ('translation', 'scheduled_publish', 'sync')",
            name="jobs_kind_check",
        ),
        sa.CheckConstraint("progress BETWEEN 0 AND 100", name="jobs_progress_check"),
    )

    # Candidate selection: kind + status, ordered by due time
    op.create_index("ix_jobs_kind_status_scheduled_at", "jobs", ["kind", "status", "scheduled_at"])
    op.create_index("ix_jobs_created_at", "jobs", ["created_at"])

    # One live job per natural key; a failed job frees its key
    op.create_index(
        "ix_jobs_dedupe_key_live",
        "jobs",
        ["dedupe_key"],
        unique=True,
        postgresql_where=sa.text("dedupe_key IS NOT NULL AND status <> 'failed'"),
    )

    op.create_table(
        "sync_destinations",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("webhook_url", sa.Text, nullable=True),
        sa.Column("webhook_secret", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("sync_on_create", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("sync_on_update", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("sync_on_delete", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_synced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_sync_status", sa.Text, nullable=True),
        sa.Column("last_sync_error", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "delivery_logs",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "job_id", sa.UUID(as_uuid=True), sa.ForeignKey("jobs.id"), nullable=False
        ),
        sa.Column(
            "destination_id",
            sa.UUID(as_uuid=True),
            sa.ForeignKey("sync_destinations.id"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="pending|retrying|success|failed",
        ),
        sa.Column("response_status", sa.Integer, nullable=True),
        sa.Column(
            "response_body_snippet",
            sa.Text,
            nullable=True,
            comment="First 1000 characters of the response",
        ),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("retry_count", sa.SmallInteger, nullable=False, server_default="0"),
        sa.Column("next_retry_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "job_id", "destination_id", name="delivery_logs_job_destination_key"
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'retrying', 'success', 'failed')",
            name="delivery_logs_status_check",
        ),
    )
    op.create_index("ix_delivery_logs_job_id", "delivery_logs", ["job_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("delivery_logs")
    op.drop_table("sync_destinations")
    op.drop_index("ix_jobs_dedupe_key_live", table_name="jobs")
    op.drop_table("jobs")
