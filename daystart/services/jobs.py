"""Client-facing job operations: create or update, status, segments and cancellation."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from fastapi import HTTPException, status

from daystart.api.models import CreateJobRequest, CreateJobResponse, JobStatusResponse, SegmentResponse, SegmentStatus
from daystart.config import Settings
from daystart.jobs.models import DEFAULT_SPORTS, WELCOME_DURATION_SECONDS, JobPreferences, JobRecord
from daystart.jobs.priority import compute_priority
from daystart.jobs.state import can_transition, client_status
from daystart.services.storage_client import ArtifactStore
from daystart.storage.jobs_repo import JobConflictError, JobsRepository
from daystart.utils.ids import generate_job_id
from daystart.utils.time import format_instant, local_date_for, parse_instant, utc_now

logger = logging.getLogger(__name__)

_READY_ESTIMATE = timedelta(seconds=90)
# Ended without audio; a new request for the same date starts over.
_REQUEUE_STATUSES = frozenset({"failed", "failed_missed", "cancelled"})

# Everything a forced reset clears so the job regenerates from scratch.
_RESET_OUTPUTS: dict[str, Any] = {
  "status": "queued",
  "script": None,
  "script_ready_at": None,
  "audio_path": None,
  "audio_ready_at": None,
  "audio_duration_seconds": None,
  "audio_deleted_at": None,
  "tts_provider": None,
  "script_characters": None,
  "tts_characters": None,
  "script_input_tokens": None,
  "script_output_tokens": None,
  "script_cost_usd": None,
  "tts_cost_usd": None,
  "script_attempts": 0,
  "audio_attempts": 0,
  "next_attempt_at": None,
  "segments_ready": 0,
  "segment_fallback": False,
  "failure_stage": None,
  "failure_reason": None,
  "user_completed": False,
}


def _preferences_from_request(request: CreateJobRequest, *, is_welcome: bool) -> JobPreferences:
  return JobPreferences(
    timezone=request.timezone,
    voice=request.voice,
    duration_seconds=WELCOME_DURATION_SECONDS if is_welcome else request.duration_seconds,
    locale=request.locale,
    preferred_name=request.preferred_name,
    location=request.location,
    include_news=request.include_news,
    include_sports=request.include_sports,
    include_stocks=request.include_stocks,
    include_weather=request.include_weather,
    include_calendar=request.include_calendar,
    include_quotes=request.include_quotes,
    stock_symbols=tuple(request.stock_symbols),
    selected_sports=tuple(request.selected_sports) if request.selected_sports is not None else DEFAULT_SPORTS,
    quote_style=request.quote_style,
    calendar_events=tuple(request.calendar_events),
    weather=request.weather,
  )


def _schedule(request: CreateJobRequest, settings: Settings, *, now: datetime, is_welcome: bool) -> dict[str, Any]:
  """Resolve NOW and derive priority plus the processing window."""
  if request.scheduled_at.upper() == "NOW":
    scheduled_at, immediate = now, True
  else:
    try:
      scheduled_at = parse_instant(request.scheduled_at)
    except ValueError as exc:
      raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="scheduled_at must be an ISO-8601 instant or NOW") from exc
    immediate = False

  if is_welcome or immediate:
    process_not_before = now
    latest_completion_at = max(scheduled_at, now) + timedelta(minutes=settings.completion_grace_minutes)
  else:
    process_not_before = scheduled_at - timedelta(minutes=settings.processing_lead_minutes)
    latest_completion_at = scheduled_at + timedelta(minutes=settings.completion_grace_minutes)
  return {
    "scheduled_at": scheduled_at,
    "process_not_before": process_not_before,
    "latest_completion_at": latest_completion_at,
    "priority": compute_priority(scheduled_at=scheduled_at, now=now, is_welcome=is_welcome or immediate),
  }


def estimated_ready_time(job: JobRecord, now: datetime) -> datetime:
  if job.status == "ready" and job.audio_ready_at is not None:
    return job.audio_ready_at
  return max(now, job.process_not_before) + _READY_ESTIMATE


def _create_response(job: JobRecord, *, now: datetime, created: bool) -> CreateJobResponse:
  return CreateJobResponse(
    job_id=job.job_id,
    status=client_status(job.status),
    local_date=job.local_date,
    priority=job.priority,
    estimated_ready_time=format_instant(estimated_ready_time(job, now)) or "",
    created=created,
  )


async def create_job(request: CreateJobRequest, *, user_id: str, settings: Settings, repo: JobsRepository, store: ArtifactStore, now: datetime | None = None) -> CreateJobResponse:
  """Idempotent upsert of the job for (user, local date)."""
  now = now or utc_now()
  local_date = local_date_for(now, request.timezone).isoformat() if request.local_date == "TODAY" else request.local_date

  existing = await repo.get_job_for_date(user_id, local_date)
  if existing is None:
    is_welcome = request.is_welcome
    record = JobRecord(
      job_id=generate_job_id(),
      user_id=user_id,
      local_date=local_date,
      status="queued",
      preferences=_preferences_from_request(request, is_welcome=is_welcome),
      created_at=now,
      updated_at=now,
      is_welcome=is_welcome,
      segmented=request.segmented,
      segment_count=request.segment_count,
      **_schedule(request, settings, now=now, is_welcome=is_welcome),
    )
    try:
      created = await repo.create_job(record)
    except JobConflictError:
      # A concurrent request created the row first; fall through to the update path.
      existing = await repo.get_job_for_date(user_id, local_date)
      if existing is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job creation conflicted; retry the request") from None
    else:
      logger.info("Created job %s for %s on %s (priority %s)", created.job_id, user_id, local_date, created.priority)
      return _create_response(created, now=now, created=True)

  return await _update_existing(existing, request, settings=settings, repo=repo, store=store, now=now)


async def _update_existing(existing: JobRecord, request: CreateJobRequest, *, settings: Settings, repo: JobsRepository, store: ArtifactStore, now: datetime) -> CreateJobResponse:
  is_welcome = existing.is_welcome or request.is_welcome
  if existing.lease_held(now):
    if request.force_update:
      raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is being processed; retry after it finishes")
    return _create_response(existing, now=now, created=False)

  changes: dict[str, Any]
  if request.force_update or existing.status in _REQUEUE_STATUSES:
    await _discard_artifacts(existing, repo=repo, store=store)
    changes = {
      **_RESET_OUTPUTS,
      **_schedule(request, settings, now=now, is_welcome=is_welcome),
      "preferences": _preferences_from_request(request, is_welcome=is_welcome),
      "is_welcome": is_welcome,
      "segmented": request.segmented,
      "segment_count": request.segment_count,
    }
    logger.info("Re-queueing job %s from %s", existing.job_id, existing.status)
  elif existing.status == "ready":
    if is_welcome == existing.is_welcome:
      return _create_response(existing, now=now, created=False)
    changes = {"is_welcome": True}
  elif existing.status == "queued":
    changes = {
      **_schedule(request, settings, now=now, is_welcome=is_welcome),
      "preferences": _preferences_from_request(request, is_welcome=is_welcome),
      "is_welcome": is_welcome,
      "segmented": request.segmented,
      "segment_count": request.segment_count,
    }
  else:
    # Generation already started; inputs stay as they were and only the schedule moves.
    changes = {**_schedule(request, settings, now=now, is_welcome=is_welcome), "is_welcome": is_welcome}

  updated = await repo.update_unleased(existing.job_id, now=now, changes=changes)
  if updated is None:
    current = await repo.get_job(existing.job_id) or existing
    return _create_response(current, now=now, created=False)
  return _create_response(updated, now=now, created=False)


async def _discard_artifacts(job: JobRecord, *, repo: JobsRepository, store: ArtifactStore) -> None:
  paths = [job.audio_path] if job.audio_path else []
  paths.extend(segment.audio_path for segment in await repo.list_segments(job.job_id) if segment.audio_path)
  for path in paths:
    try:
      await store.delete(path)
    except Exception as exc:  # noqa: BLE001
      # The job still owns this name, so cleanup will not find it; regenerated audio in the same format overwrites it.
      logger.warning("Could not delete %s while resetting job %s: %s", path, job.job_id, exc)
  await repo.delete_segments(job.job_id)


async def _owned_job(job_id: str, user_id: str, repo: JobsRepository) -> JobRecord:
  job = await repo.get_job(job_id)
  if job is None or job.user_id != user_id:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
  return job


async def get_job_status(job_id: str, *, user_id: str, settings: Settings, repo: JobsRepository, store: ArtifactStore, mark_completed: bool = False, now: datetime | None = None) -> JobStatusResponse:
  now = now or utc_now()
  job = await _owned_job(job_id, user_id, repo)
  if mark_completed and not job.user_completed:
    job = await repo.update_unleased(job.job_id, now=now, changes={"user_completed": True}) or job

  ttl = settings.signed_url_ttl_seconds
  audio_url = None
  segments: list[SegmentStatus] = []
  if job.status == "ready" and job.audio_deleted_at is None:
    if job.audio_path:
      audio_url = await store.generate_signed_url(job.audio_path, ttl_seconds=ttl)
  if job.segmented:
    for segment in await repo.list_segments(job.job_id):
      url = None
      if segment.status == "ready" and segment.audio_path and job.audio_deleted_at is None:
        url = await store.generate_signed_url(segment.audio_path, ttl_seconds=ttl)
      segments.append(SegmentStatus(index=segment.segment_index, status=segment.status, audio_url=url))

  return JobStatusResponse(
    job_id=job.job_id,
    status=client_status(job.status),
    local_date=job.local_date,
    scheduled_at=format_instant(job.scheduled_at) or "",
    audio_url=audio_url,
    audio_duration_seconds=job.audio_duration_seconds if job.status == "ready" else None,
    failure_reason=job.failure_reason if job.status in ("failed", "failed_missed") else None,
    segmented=job.segmented,
    segment_fallback=job.segment_fallback,
    segments=segments,
    user_completed=job.user_completed,
  )


async def get_segment(job_id: str, index: int, *, user_id: str, settings: Settings, repo: JobsRepository, store: ArtifactStore) -> SegmentResponse:
  """Return a segment's URL only once it is ready."""
  await _owned_job(job_id, user_id, repo)
  segment = await repo.get_segment(job_id, index)
  if segment is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Segment not found")
  url = None
  if segment.status == "ready" and segment.audio_path:
    url = await store.generate_signed_url(segment.audio_path, ttl_seconds=settings.signed_url_ttl_seconds)
  return SegmentResponse(job_id=job_id, index=index, status=segment.status, audio_url=url)


async def cancel_job(job_id: str, *, user_id: str, settings: Settings, repo: JobsRepository, store: ArtifactStore, now: datetime | None = None) -> JobStatusResponse:
  """Cancel a job that is waiting between stages."""
  now = now or utc_now()
  job = await _owned_job(job_id, user_id, repo)
  if job.status == "cancelled":
    return await get_job_status(job_id, user_id=user_id, settings=settings, repo=repo, store=store, now=now)
  if not can_transition(job.status, "cancelled") or job.lease_held(now):
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Job cannot be cancelled while {client_status(job.status)}")
  updated = await repo.update_unleased(job_id, now=now, changes={"status": "cancelled", "next_attempt_at": None})
  if updated is None:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is being processed")
  logger.info("Cancelled job %s", job_id)
  return await get_job_status(job_id, user_id=user_id, settings=settings, repo=repo, store=store, now=now)
