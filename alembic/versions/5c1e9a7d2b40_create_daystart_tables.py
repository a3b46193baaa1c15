"""Create jobs, audio segments, content cache and maintenance tables.

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5c1e9a7d2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("local_date", sa.String(length=10), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("priority", sa.Integer(), nullable=False),
    sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("process_not_before", sa.DateTime(timezone=True), nullable=False),
    sa.Column("latest_completion_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("preferences", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("is_welcome", sa.Boolean(), nullable=False),
    sa.Column("segmented", sa.Boolean(), nullable=False),
    sa.Column("segment_count", sa.Integer(), nullable=True),
    sa.Column("segments_ready", sa.Integer(), nullable=False),
    sa.Column("segment_fallback", sa.Boolean(), nullable=False),
    sa.Column("script_attempts", sa.Integer(), nullable=False),
    sa.Column("audio_attempts", sa.Integer(), nullable=False),
    sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("lease_owner", sa.String(), nullable=True),
    sa.Column("lease_until", sa.DateTime(timezone=True), nullable=True),
    sa.Column("script", sa.Text(), nullable=True),
    sa.Column("script_ready_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("audio_path", sa.String(), nullable=True),
    sa.Column("audio_ready_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("audio_duration_seconds", sa.Integer(), nullable=True),
    sa.Column("audio_deleted_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("tts_provider", sa.String(), nullable=True),
    sa.Column("script_characters", sa.Integer(), nullable=True),
    sa.Column("tts_characters", sa.Integer(), nullable=True),
    sa.Column("script_input_tokens", sa.Integer(), nullable=True),
    sa.Column("script_output_tokens", sa.Integer(), nullable=True),
    sa.Column("script_cost_usd", sa.Numeric(12, 6), nullable=True),
    sa.Column("tts_cost_usd", sa.Numeric(12, 6), nullable=True),
    sa.Column("failure_stage", sa.String(), nullable=True),
    sa.Column("failure_reason", sa.Text(), nullable=True),
    sa.Column("user_completed", sa.Boolean(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("job_id"),
    sa.UniqueConstraint("user_id", "local_date", name="ux_jobs_user_local_date"),
  )
  op.create_index(op.f("ix_jobs_user_id"), "jobs", ["user_id"], unique=False)
  op.create_index("ix_jobs_lease_queue", "jobs", ["status", "priority", "created_at"], unique=False)
  op.create_index("ix_jobs_created_audio", "jobs", ["created_at"], unique=False, postgresql_where=sa.text("audio_path IS NOT NULL"))

  op.create_table(
    "audio_segments",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("segment_index", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("script_text", sa.Text(), nullable=False),
    sa.Column("audio_path", sa.String(), nullable=True),
    sa.Column("attempts", sa.Integer(), nullable=False),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("characters", sa.Integer(), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["jobs.job_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("job_id", "segment_index", name="ux_audio_segments_job_index"),
  )
  op.create_index(op.f("ix_audio_segments_job_id"), "audio_segments", ["job_id"], unique=False)

  op.create_table(
    "content_cache",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("content_type", sa.String(), nullable=False),
    sa.Column("selector", sa.String(), nullable=False),
    sa.Column("source", sa.String(), nullable=False),
    sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_content_cache_key_fetched", "content_cache", ["content_type", "selector", "source", "fetched_at"], unique=False)
  op.create_index(op.f("ix_content_cache_expires_at"), "content_cache", ["expires_at"], unique=False)

  op.create_table(
    "content_fetch_log",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("source", sa.String(), nullable=False),
    sa.Column("content_type", sa.String(), nullable=False),
    sa.Column("selector", sa.String(), nullable=False),
    sa.Column("outcome", sa.String(), nullable=False),
    sa.Column("item_count", sa.Integer(), nullable=False),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("cached_age_hours", sa.Float(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_content_fetch_log_source"), "content_fetch_log", ["source"], unique=False)

  op.create_table(
    "maintenance_markers",
    sa.Column("task", sa.String(), nullable=False),
    sa.Column("last_success_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("claimed_until", sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint("task"),
  )

  op.create_table(
    "maintenance_runs",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("task", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("finished_at", sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_maintenance_runs_task"), "maintenance_runs", ["task"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_maintenance_runs_task"), table_name="maintenance_runs")
  op.drop_table("maintenance_runs")
  op.drop_table("maintenance_markers")
  op.drop_index(op.f("ix_content_fetch_log_source"), table_name="content_fetch_log")
  op.drop_table("content_fetch_log")
  op.drop_index(op.f("ix_content_cache_expires_at"), table_name="content_cache")
  op.drop_index("ix_content_cache_key_fetched", table_name="content_cache")
  op.drop_table("content_cache")
  op.drop_index(op.f("ix_audio_segments_job_id"), table_name="audio_segments")
  op.drop_table("audio_segments")
  op.drop_index("ix_jobs_created_audio", table_name="jobs")
  op.drop_index("ix_jobs_lease_queue", table_name="jobs")
  op.drop_index(op.f("ix_jobs_user_id"), table_name="jobs")
  op.drop_table("jobs")
