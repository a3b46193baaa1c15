from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from daystart.core.database import Base


class Job(Base):
  __tablename__ = "jobs"
  __table_args__ = (
    UniqueConstraint("user_id", "local_date", name="ux_jobs_user_local_date"),
    Index("ix_jobs_lease_queue", "status", "priority", "created_at"),
    Index("ix_jobs_created_audio", "created_at", postgresql_where=text("audio_path IS NOT NULL")),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  local_date: Mapped[str] = mapped_column(String(10), nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  priority: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
  scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  process_not_before: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  latest_completion_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  preferences: Mapped[dict] = mapped_column(JSONB, nullable=False)
  is_welcome: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  segmented: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  segment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
  segments_ready: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  segment_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  script_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  audio_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  lease_owner: Mapped[str | None] = mapped_column(String, nullable=True)
  lease_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  script: Mapped[str | None] = mapped_column(Text, nullable=True)
  script_ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  audio_path: Mapped[str | None] = mapped_column(String, nullable=True)
  audio_ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  audio_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
  audio_deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  tts_provider: Mapped[str | None] = mapped_column(String, nullable=True)
  script_characters: Mapped[int | None] = mapped_column(Integer, nullable=True)
  tts_characters: Mapped[int | None] = mapped_column(Integer, nullable=True)
  script_input_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  script_output_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  script_cost_usd: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
  tts_cost_usd: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
  failure_stage: Mapped[str | None] = mapped_column(String, nullable=True)
  failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  user_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AudioSegment(Base):
  __tablename__ = "audio_segments"
  __table_args__ = (UniqueConstraint("job_id", "segment_index", name="ux_audio_segments_job_index"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  segment_index: Mapped[int] = mapped_column(Integer, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  script_text: Mapped[str] = mapped_column(Text, nullable=False)
  audio_path: Mapped[str | None] = mapped_column(String, nullable=True)
  attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  characters: Mapped[int | None] = mapped_column(Integer, nullable=True)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
