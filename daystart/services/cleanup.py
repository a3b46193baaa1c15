"""Retention sweeper for stored briefing audio."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Literal

from daystart.config import Settings
from daystart.services.storage_client import ArtifactStore, job_id_from_object_name
from daystart.storage.jobs_repo import JobsRepository
from daystart.storage.maintenance_repo import MaintenanceRepository, MaintenanceRunRecord
from daystart.utils.time import utc_now

logger = logging.getLogger(__name__)

CleanupMode = Literal["fast", "deep", "both"]

FAST_TASK = "cleanup_fast"
DEEP_TASK = "cleanup_deep"
_CLAIM_SECONDS = 1800
_ID_CHUNK = 500


@dataclass
class CleanupPassResult:
  mode: str
  status: str = "completed"
  jobs_processed: int = 0
  objects_deleted: int = 0
  objects_missing: int = 0
  errors: list[str] = field(default_factory=list)


class CleanupService:
  """Delete expired and orphaned audio objects under persisted rate limits."""

  def __init__(self, *, jobs_repo: JobsRepository, maintenance_repo: MaintenanceRepository, store: ArtifactStore, settings: Settings, clock: Callable[[], datetime] = utc_now) -> None:
    self._jobs_repo = jobs_repo
    self._maintenance_repo = maintenance_repo
    self._store = store
    self._settings = settings
    self._clock = clock

  async def run(self, mode: CleanupMode = "fast", *, retention_days: int | None = None) -> list[CleanupPassResult]:
    results = []
    if mode in ("fast", "both"):
      results.append(await self.run_fast(retention_days=retention_days))
    if mode in ("deep", "both"):
      results.append(await self.run_deep())
    return results

  async def run_fast(self, *, retention_days: int | None = None) -> CleanupPassResult:
    """Remove artifacts of jobs created before the retention window."""
    now = self._clock()
    days = max(1, retention_days or self._settings.cleanup_retention_days)
    result = CleanupPassResult(mode="fast")
    if not await self._claim(FAST_TASK, now, self._settings.cleanup_fast_min_interval_hours):
      result.status = "skipped"
      return result

    cutoff = now - timedelta(days=days)
    cursor: tuple[datetime, str] | None = None
    try:
      while True:
        batch = await self._jobs_repo.list_expired_artifacts(created_before=cutoff, limit=self._settings.cleanup_batch_size, after=cursor)
        if not batch:
          break
        # Jobs whose deletes fail stay behind the cursor until the next pass.
        cursor = (batch[-1].created_at, batch[-1].job_id)
        for job in batch:
          paths = [job.audio_path] if job.audio_path else []
          paths.extend(segment.audio_path for segment in await self._jobs_repo.list_segments(job.job_id) if segment.audio_path)
          if await self._delete_paths(paths, result):
            # Paths are only cleared once every object is gone, so failures are retried next pass.
            await self._jobs_repo.mark_artifacts_deleted(job.job_id, now=now)
            result.jobs_processed += 1
    finally:
      await self._complete(FAST_TASK, now, result, details={"retention_days": days, "cutoff": cutoff.isoformat()})
    return result

  async def run_deep(self) -> CleanupPassResult:
    """Remove stored objects whose job record no longer exists."""
    now = self._clock()
    result = CleanupPassResult(mode="deep")
    if not await self._claim(DEEP_TASK, now, self._settings.cleanup_deep_min_interval_hours):
      result.status = "skipped"
      return result

    try:
      objects = await self._store.list_objects()
      by_job: dict[str, list[str]] = {}
      for name in objects:
        job_id = job_id_from_object_name(name)
        # Objects that do not follow the naming layout are never touched.
        if job_id:
          by_job.setdefault(job_id, []).append(name)
      job_ids = sorted(by_job)
      existing: set[str] = set()
      for start in range(0, len(job_ids), _ID_CHUNK):
        existing |= await self._jobs_repo.existing_job_ids(job_ids[start : start + _ID_CHUNK])
      orphans = [name for job_id in job_ids if job_id not in existing for name in by_job[job_id]]
      result.jobs_processed = len([job_id for job_id in job_ids if job_id not in existing])
      await self._delete_paths(orphans, result)
    finally:
      await self._complete(DEEP_TASK, now, result, details={"scanned_jobs": result.jobs_processed})
    return result

  async def _delete_paths(self, paths: list[str], result: CleanupPassResult) -> bool:
    ok = True
    for path in paths:
      try:
        deleted = await self._store.delete(path)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to delete %s: %s", path, exc)
        result.errors.append(f"{path}: {exc}")
        ok = False
        continue
      if deleted:
        result.objects_deleted += 1
      else:
        # Missing objects count as deleted.
        result.objects_missing += 1
    return ok

  async def _claim(self, task: str, now: datetime, min_interval_hours: int) -> bool:
    claimed = await self._maintenance_repo.try_claim(task, now=now, min_interval_seconds=min_interval_hours * 3600, claim_seconds=_CLAIM_SECONDS)
    if not claimed:
      logger.info("Skipping %s: ran within the last %s hours", task, min_interval_hours)
    return claimed

  async def _complete(self, task: str, started_at: datetime, result: CleanupPassResult, *, details: dict) -> None:
    success = not result.errors
    if result.status == "completed" and not success:
      result.status = "partial"
    finished = self._clock()
    await self._maintenance_repo.release(task, now=started_at, success=success)
    await self._maintenance_repo.record_run(MaintenanceRunRecord(task=task, started_at=started_at, finished_at=finished, status=result.status, details={**asdict(result), **details}))
    logger.info("Cleanup %s %s: %s jobs, %s deleted, %s missing, %s errors", result.mode, result.status, result.jobs_processed, result.objects_deleted, result.objects_missing, len(result.errors))
