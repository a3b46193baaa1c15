"""Postgres-backed repository for briefing jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Select, and_, delete, exists, or_, select, tuple_, update
from sqlalchemy.exc import IntegrityError

from daystart.core.database import get_session_factory
from daystart.jobs.models import AudioSegmentRecord, JobPreferences, JobRecord, JobStatus
from daystart.jobs.state import LEASE_TARGET, OPEN_STATUSES, ensure_transition, stage_for
from daystart.schema.jobs import AudioSegment, Job
from daystart.storage.jobs_repo import JobConflictError, JobsRepository

_MISSED_REASON = "Briefing could not be completed before its delivery deadline."


def _lease_free(now: datetime) -> Any:
  return or_(Job.lease_owner.is_(None), Job.lease_until.is_(None), Job.lease_until <= now)


def _eligible(now: datetime) -> Any:
  """Rows a worker may lease at the given instant."""
  return and_(
    Job.status.in_(tuple(LEASE_TARGET)),
    _lease_free(now),
    Job.process_not_before <= now,
    or_(Job.next_attempt_at.is_(None), Job.next_attempt_at <= now),
    Job.latest_completion_at > now,
  )


def build_lease_query(now: datetime, limit: int) -> Select:
  """Select lease candidates in priority-then-FIFO order, skipping rows other workers hold locked."""
  return select(Job).where(_eligible(now)).order_by(Job.priority.desc(), Job.created_at.asc()).limit(limit).with_for_update(skip_locked=True)


def _column_values(changes: dict[str, Any]) -> dict[str, Any]:
  values = dict(changes)
  preferences = values.get("preferences")
  if isinstance(preferences, JobPreferences):
    values["preferences"] = preferences.to_dict()
  return values


class PostgresJobsRepository(JobsRepository):
  """Persist jobs and audio segments to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> JobRecord:
    async with self._session_factory() as session:
      row = Job(
        job_id=record.job_id,
        user_id=record.user_id,
        local_date=record.local_date,
        status=record.status,
        priority=record.priority,
        scheduled_at=record.scheduled_at,
        process_not_before=record.process_not_before,
        latest_completion_at=record.latest_completion_at,
        preferences=record.preferences.to_dict(),
        is_welcome=record.is_welcome,
        segmented=record.segmented,
        segment_count=record.segment_count,
        created_at=record.created_at,
        updated_at=record.updated_at,
      )
      session.add(row)
      try:
        await session.commit()
      except IntegrityError as exc:
        await session.rollback()
        raise JobConflictError(f"Job already exists for user {record.user_id} on {record.local_date}") from exc
      return self._model_to_record(row)

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def get_job_for_date(self, user_id: str, local_date: str) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = select(Job).where(Job.user_id == user_id, Job.local_date == local_date).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_unleased(self, job_id: str, *, now: datetime, changes: dict[str, Any]) -> JobRecord | None:
    async with self._session_factory() as session:
      values = _column_values(changes)
      values["updated_at"] = now
      stmt = update(Job).where(Job.job_id == job_id, _lease_free(now)).values(**values).returning(Job).execution_options(synchronize_session=False)
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def mark_missed(self, *, now: datetime) -> list[str]:
    async with self._session_factory() as session:
      stmt = (
        update(Job)
        .where(Job.status.in_(tuple(OPEN_STATUSES)), Job.latest_completion_at <= now, _lease_free(now))
        .values(status="failed_missed", failure_stage="deadline", failure_reason=_MISSED_REASON, lease_owner=None, lease_until=None, updated_at=now)
        .returning(Job.job_id)
        .execution_options(synchronize_session=False)
      )
      job_ids = [str(job_id) for job_id in (await session.execute(stmt)).scalars().all()]
      await session.commit()
      return job_ids

  async def lease_jobs(self, *, worker_id: str, now: datetime, limit: int, lease_seconds: int) -> list[JobRecord]:
    async with self._session_factory() as session:
      rows = (await session.execute(build_lease_query(now, limit))).scalars().all()
      # Rows stay locked until commit, so the lease write is atomic with the read.
      for row in rows:
        self._apply_lease(row, worker_id=worker_id, now=now, lease_seconds=lease_seconds)
      await session.commit()
      return [self._model_to_record(row) for row in rows]

  async def lease_job(self, job_id: str, *, worker_id: str, now: datetime, lease_seconds: int) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = select(Job).where(Job.job_id == job_id, _eligible(now)).with_for_update(skip_locked=True)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      self._apply_lease(row, worker_id=worker_id, now=now, lease_seconds=lease_seconds)
      await session.commit()
      return self._model_to_record(row)

  async def transition(self, job_id: str, *, worker_id: str, from_status: JobStatus, to_status: JobStatus, now: datetime, changes: dict[str, Any] | None = None) -> JobRecord | None:
    ensure_transition(from_status, to_status)
    async with self._session_factory() as session:
      values = _column_values(changes or {})
      values.update(status=to_status, lease_owner=None, lease_until=None, updated_at=now)
      stmt = update(Job).where(Job.job_id == job_id, Job.status == from_status, Job.lease_owner == worker_id).values(**values).returning(Job).execution_options(synchronize_session=False)
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def list_segments(self, job_id: str) -> list[AudioSegmentRecord]:
    async with self._session_factory() as session:
      stmt = select(AudioSegment).where(AudioSegment.job_id == job_id).order_by(AudioSegment.segment_index.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._segment_to_record(row) for row in rows]

  async def get_segment(self, job_id: str, segment_index: int) -> AudioSegmentRecord | None:
    async with self._session_factory() as session:
      row = await self._get_segment_row(session, job_id, segment_index)
      if row is None:
        return None
      return self._segment_to_record(row)

  async def ensure_segments(self, job_id: str, slices: list[str]) -> list[AudioSegmentRecord]:
    async with self._session_factory() as session:
      stmt = select(AudioSegment).where(AudioSegment.job_id == job_id)
      existing = {row.segment_index: row for row in (await session.execute(stmt)).scalars().all()}
      for index, text in enumerate(slices):
        if index not in existing:
          row = AudioSegment(job_id=job_id, segment_index=index, status="queued", script_text=text, attempts=0)
          session.add(row)
          existing[index] = row
      await session.commit()
      return [self._segment_to_record(existing[index]) for index in sorted(existing)]

  async def update_segment(self, job_id: str, segment_index: int, **changes: Any) -> AudioSegmentRecord | None:
    async with self._session_factory() as session:
      row = await self._get_segment_row(session, job_id, segment_index)
      if row is None:
        return None
      for key, value in changes.items():
        setattr(row, key, value)
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._segment_to_record(row)

  async def delete_segments(self, job_id: str) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(AudioSegment).where(AudioSegment.job_id == job_id))
      await session.commit()

  async def list_expired_artifacts(self, *, created_before: datetime, limit: int, after: tuple[datetime, str] | None = None) -> list[JobRecord]:
    async with self._session_factory() as session:
      has_segment_audio = exists(select(AudioSegment.id).where(AudioSegment.job_id == Job.job_id, AudioSegment.audio_path.is_not(None)))
      stmt = select(Job).where(Job.created_at < created_before, or_(Job.audio_path.is_not(None), has_segment_audio))
      if after is not None:
        stmt = stmt.where(tuple_(Job.created_at, Job.job_id) > tuple_(*after))
      stmt = stmt.order_by(Job.created_at.asc(), Job.job_id.asc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def mark_artifacts_deleted(self, job_id: str, *, now: datetime) -> None:
    async with self._session_factory() as session:
      await session.execute(update(Job).where(Job.job_id == job_id).values(audio_path=None, audio_deleted_at=now, updated_at=now))
      await session.execute(update(AudioSegment).where(AudioSegment.job_id == job_id).values(audio_path=None))
      await session.commit()

  async def existing_job_ids(self, job_ids: list[str]) -> set[str]:
    if not job_ids:
      return set()
    async with self._session_factory() as session:
      stmt = select(Job.job_id).where(Job.job_id.in_(job_ids))
      return {str(job_id) for job_id in (await session.execute(stmt)).scalars().all()}

  async def upcoming_stock_symbols(self, *, now: datetime, horizon_hours: int) -> set[str]:
    async with self._session_factory() as session:
      stmt = select(Job.preferences).where(Job.status.in_(tuple(OPEN_STATUSES)), Job.scheduled_at <= now + timedelta(hours=horizon_hours))
      symbols: set[str] = set()
      for preferences in (await session.execute(stmt)).scalars().all():
        if preferences.get("include_stocks"):
          symbols.update(preferences.get("stock_symbols") or [])
      return symbols

  async def _get_segment_row(self, session: Any, job_id: str, segment_index: int) -> AudioSegment | None:
    stmt = select(AudioSegment).where(AudioSegment.job_id == job_id, AudioSegment.segment_index == segment_index).limit(1)
    return (await session.execute(stmt)).scalar_one_or_none()

  def _apply_lease(self, row: Job, *, worker_id: str, now: datetime, lease_seconds: int) -> None:
    target = LEASE_TARGET[row.status]
    if target != row.status:
      ensure_transition(row.status, target)
    # Every lease of a stage counts as an attempt, including recovery from a crashed worker.
    if stage_for(target) == "script":
      row.script_attempts = (row.script_attempts or 0) + 1
    else:
      row.audio_attempts = (row.audio_attempts or 0) + 1
    row.status = target
    row.lease_owner = worker_id
    row.lease_until = now + timedelta(seconds=lease_seconds)
    row.next_attempt_at = None
    row.updated_at = now

  def _model_to_record(self, row: Job) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      user_id=row.user_id,
      local_date=row.local_date,
      status=row.status,  # type: ignore[arg-type]
      priority=row.priority,
      scheduled_at=row.scheduled_at,
      process_not_before=row.process_not_before,
      latest_completion_at=row.latest_completion_at,
      preferences=JobPreferences.from_dict(row.preferences),
      created_at=row.created_at,
      updated_at=row.updated_at,
      is_welcome=row.is_welcome,
      segmented=row.segmented,
      segment_count=row.segment_count,
      segments_ready=row.segments_ready or 0,
      segment_fallback=row.segment_fallback,
      script_attempts=row.script_attempts or 0,
      audio_attempts=row.audio_attempts or 0,
      next_attempt_at=row.next_attempt_at,
      lease_owner=row.lease_owner,
      lease_until=row.lease_until,
      script=row.script,
      script_ready_at=row.script_ready_at,
      audio_path=row.audio_path,
      audio_ready_at=row.audio_ready_at,
      audio_duration_seconds=row.audio_duration_seconds,
      audio_deleted_at=row.audio_deleted_at,
      tts_provider=row.tts_provider,
      script_characters=row.script_characters,
      tts_characters=row.tts_characters,
      script_input_tokens=row.script_input_tokens,
      script_output_tokens=row.script_output_tokens,
      script_cost_usd=row.script_cost_usd,
      tts_cost_usd=row.tts_cost_usd,
      failure_stage=row.failure_stage,  # type: ignore[arg-type]
      failure_reason=row.failure_reason,
      user_completed=row.user_completed,
    )

  def _segment_to_record(self, row: AudioSegment) -> AudioSegmentRecord:
    return AudioSegmentRecord(
      job_id=row.job_id,
      segment_index=row.segment_index,
      status=row.status,  # type: ignore[arg-type]
      script_text=row.script_text,
      audio_path=row.audio_path,
      attempts=row.attempts or 0,
      error=row.error,
      characters=row.characters,
      updated_at=row.updated_at,
    )
