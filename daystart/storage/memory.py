"""In-process repositories for local development and tests.

They follow the Postgres repositories' semantics, with one asyncio.Lock standing in for row locks so
lease acquisition and conditional updates stay atomic across concurrent coroutines.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from daystart.content.models import ContentEntry, FetchLogRecord
from daystart.jobs.models import AudioSegmentRecord, JobRecord, JobStatus
from daystart.jobs.state import LEASE_TARGET, OPEN_STATUSES, ensure_transition, stage_for
from daystart.storage.content_repo import ContentRepository
from daystart.storage.jobs_repo import JobConflictError, JobsRepository
from daystart.storage.maintenance_repo import MaintenanceMarker, MaintenanceRepository, MaintenanceRunRecord

_MISSED_REASON = "Briefing could not be completed before its delivery deadline."


def _lease_free(job: JobRecord, now: datetime) -> bool:
  return job.lease_owner is None or job.lease_until is None or job.lease_until <= now


def _eligible(job: JobRecord, now: datetime) -> bool:
  return (
    job.status in LEASE_TARGET
    and _lease_free(job, now)
    and job.process_not_before <= now
    and (job.next_attempt_at is None or job.next_attempt_at <= now)
    and job.latest_completion_at > now
  )


class InMemoryJobsRepository(JobsRepository):
  """Dictionary-backed jobs store."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self._segments: dict[tuple[str, int], AudioSegmentRecord] = {}
    self._lock = asyncio.Lock()

  async def create_job(self, record: JobRecord) -> JobRecord:
    async with self._lock:
      for job in self._jobs.values():
        if job.user_id == record.user_id and job.local_date == record.local_date:
          raise JobConflictError(f"Job already exists for user {record.user_id} on {record.local_date}")
      self._jobs[record.job_id] = replace(record)
      return replace(record)

  async def get_job(self, job_id: str) -> JobRecord | None:
    job = self._jobs.get(job_id)
    return replace(job) if job else None

  async def get_job_for_date(self, user_id: str, local_date: str) -> JobRecord | None:
    for job in self._jobs.values():
      if job.user_id == user_id and job.local_date == local_date:
        return replace(job)
    return None

  async def update_unleased(self, job_id: str, *, now: datetime, changes: dict[str, Any]) -> JobRecord | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or not _lease_free(job, now):
        return None
      updated = replace(job, **changes, updated_at=now)
      self._jobs[job_id] = updated
      return replace(updated)

  async def mark_missed(self, *, now: datetime) -> list[str]:
    async with self._lock:
      missed: list[str] = []
      for job_id, job in self._jobs.items():
        if job.status in OPEN_STATUSES and job.latest_completion_at <= now and _lease_free(job, now):
          self._jobs[job_id] = replace(job, status="failed_missed", failure_stage="deadline", failure_reason=_MISSED_REASON, lease_owner=None, lease_until=None, updated_at=now)
          missed.append(job_id)
      return missed

  async def lease_jobs(self, *, worker_id: str, now: datetime, limit: int, lease_seconds: int) -> list[JobRecord]:
    async with self._lock:
      candidates = sorted((job for job in self._jobs.values() if _eligible(job, now)), key=lambda job: (-job.priority, job.created_at))
      return [self._apply_lease(job, worker_id=worker_id, now=now, lease_seconds=lease_seconds) for job in candidates[:limit]]

  async def lease_job(self, job_id: str, *, worker_id: str, now: datetime, lease_seconds: int) -> JobRecord | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or not _eligible(job, now):
        return None
      return self._apply_lease(job, worker_id=worker_id, now=now, lease_seconds=lease_seconds)

  async def transition(self, job_id: str, *, worker_id: str, from_status: JobStatus, to_status: JobStatus, now: datetime, changes: dict[str, Any] | None = None) -> JobRecord | None:
    ensure_transition(from_status, to_status)
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or job.status != from_status or job.lease_owner != worker_id:
        return None
      updated = replace(job, **(changes or {}), status=to_status, lease_owner=None, lease_until=None, updated_at=now)
      self._jobs[job_id] = updated
      return replace(updated)

  async def list_segments(self, job_id: str) -> list[AudioSegmentRecord]:
    segments = [segment for (owner, _), segment in self._segments.items() if owner == job_id]
    return [replace(segment) for segment in sorted(segments, key=lambda segment: segment.segment_index)]

  async def get_segment(self, job_id: str, segment_index: int) -> AudioSegmentRecord | None:
    segment = self._segments.get((job_id, segment_index))
    return replace(segment) if segment else None

  async def ensure_segments(self, job_id: str, slices: list[str]) -> list[AudioSegmentRecord]:
    async with self._lock:
      for index, text in enumerate(slices):
        self._segments.setdefault((job_id, index), AudioSegmentRecord(job_id=job_id, segment_index=index, status="queued", script_text=text))
    return await self.list_segments(job_id)

  async def update_segment(self, job_id: str, segment_index: int, **changes: Any) -> AudioSegmentRecord | None:
    async with self._lock:
      segment = self._segments.get((job_id, segment_index))
      if segment is None:
        return None
      updated = replace(segment, **changes)
      self._segments[(job_id, segment_index)] = updated
      return replace(updated)

  async def delete_segments(self, job_id: str) -> None:
    async with self._lock:
      for key in [key for key in self._segments if key[0] == job_id]:
        del self._segments[key]

  async def list_expired_artifacts(self, *, created_before: datetime, limit: int, after: tuple[datetime, str] | None = None) -> list[JobRecord]:
    expired = []
    for job in sorted(self._jobs.values(), key=lambda job: (job.created_at, job.job_id)):
      if after is not None and (job.created_at, job.job_id) <= after:
        continue
      has_segment_audio = any(segment.audio_path for (owner, _), segment in self._segments.items() if owner == job.job_id)
      if job.created_at < created_before and (job.audio_path or has_segment_audio):
        expired.append(replace(job))
    return expired[:limit]

  async def mark_artifacts_deleted(self, job_id: str, *, now: datetime) -> None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is not None:
        self._jobs[job_id] = replace(job, audio_path=None, audio_deleted_at=now, updated_at=now)
      for key, segment in list(self._segments.items()):
        if key[0] == job_id:
          self._segments[key] = replace(segment, audio_path=None)

  async def existing_job_ids(self, job_ids: list[str]) -> set[str]:
    return {job_id for job_id in job_ids if job_id in self._jobs}

  async def upcoming_stock_symbols(self, *, now: datetime, horizon_hours: int) -> set[str]:
    horizon = now + timedelta(hours=horizon_hours)
    symbols: set[str] = set()
    for job in self._jobs.values():
      if job.status in OPEN_STATUSES and job.scheduled_at <= horizon and job.preferences.include_stocks:
        symbols.update(job.preferences.stock_symbols)
    return symbols

  def _apply_lease(self, job: JobRecord, *, worker_id: str, now: datetime, lease_seconds: int) -> JobRecord:
    target = LEASE_TARGET[job.status]
    if target != job.status:
      ensure_transition(job.status, target)
    attempts: dict[str, int] = {}
    if stage_for(target) == "script":
      attempts["script_attempts"] = job.script_attempts + 1
    else:
      attempts["audio_attempts"] = job.audio_attempts + 1
    leased = replace(job, **attempts, status=target, lease_owner=worker_id, lease_until=now + timedelta(seconds=lease_seconds), next_attempt_at=None, updated_at=now)
    self._jobs[job.job_id] = leased
    return replace(leased)


class InMemoryContentRepository(ContentRepository):
  """List-backed content cache."""

  def __init__(self) -> None:
    self._entries: list[ContentEntry] = []
    self.fetch_log: list[FetchLogRecord] = []

  async def save_entry(self, entry: ContentEntry) -> ContentEntry:
    saved = replace(entry, entry_id=len(self._entries) + 1)
    self._entries.append(saved)
    return saved

  async def latest_entries(self, content_type: str, selector: str) -> list[ContentEntry]:
    newest: dict[str, ContentEntry] = {}
    for entry in self._entries:
      if entry.content_type != content_type or entry.selector != selector:
        continue
      current = newest.get(entry.source)
      if current is None or entry.fetched_at > current.fetched_at:
        newest[entry.source] = entry
    return [newest[source] for source in sorted(newest)]

  async def purge_fetched_before(self, cutoff: datetime) -> int:
    kept = [entry for entry in self._entries if entry.fetched_at >= cutoff]
    purged = len(self._entries) - len(kept)
    self._entries = kept
    return purged

  async def record_fetch(self, record: FetchLogRecord) -> None:
    self.fetch_log.append(record)


class InMemoryMaintenanceRepository(MaintenanceRepository):
  """Dictionary-backed maintenance markers."""

  def __init__(self) -> None:
    self._markers: dict[str, MaintenanceMarker] = {}
    self.runs: list[MaintenanceRunRecord] = []
    self._lock = asyncio.Lock()

  async def try_claim(self, task: str, *, now: datetime, min_interval_seconds: int, claim_seconds: int) -> bool:
    async with self._lock:
      marker = self._markers.get(task) or MaintenanceMarker(task=task, last_success_at=None, claimed_until=None)
      if marker.last_success_at is not None and marker.last_success_at > now - timedelta(seconds=min_interval_seconds):
        return False
      if marker.claimed_until is not None and marker.claimed_until > now:
        return False
      self._markers[task] = replace(marker, claimed_until=now + timedelta(seconds=claim_seconds))
      return True

  async def release(self, task: str, *, now: datetime, success: bool) -> None:
    async with self._lock:
      marker = self._markers.get(task)
      if marker is None:
        return
      self._markers[task] = replace(marker, claimed_until=None, last_success_at=now if success else marker.last_success_at)

  async def get_marker(self, task: str) -> MaintenanceMarker | None:
    return self._markers.get(task)

  async def record_run(self, run: MaintenanceRunRecord) -> None:
    self.runs.append(run)
