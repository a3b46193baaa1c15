"""Storage interfaces for briefing jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from daystart.jobs.models import AudioSegmentRecord, JobRecord, JobStatus


class JobConflictError(RuntimeError):
  """Raised when a job for the same (user, local date) already exists."""


class JobsRepository(Protocol):
  """Repository contract for job persistence and leasing."""

  async def create_job(self, record: JobRecord) -> JobRecord:
    """Persist a new job; raise JobConflictError when (user, date) already exists."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def get_job_for_date(self, user_id: str, local_date: str) -> JobRecord | None:
    """Fetch the job for a user's local date."""

  async def update_unleased(self, job_id: str, *, now: datetime, changes: dict[str, Any]) -> JobRecord | None:
    """Apply client-side changes when no unexpired lease is held; None otherwise."""

  async def mark_missed(self, *, now: datetime) -> list[str]:
    """Move open, unleased jobs past their completion deadline to failed_missed."""

  async def lease_jobs(self, *, worker_id: str, now: datetime, limit: int, lease_seconds: int) -> list[JobRecord]:
    """Atomically lease up to limit eligible jobs in priority-then-FIFO order."""

  async def lease_job(self, job_id: str, *, worker_id: str, now: datetime, lease_seconds: int) -> JobRecord | None:
    """Atomically lease one specific job if it is eligible."""

  async def transition(self, job_id: str, *, worker_id: str, from_status: JobStatus, to_status: JobStatus, now: datetime, changes: dict[str, Any] | None = None) -> JobRecord | None:
    """Move a leased job along one state machine edge and release the lease; None when the lease was lost."""

  async def list_segments(self, job_id: str) -> list[AudioSegmentRecord]:
    """Return a job's segments ordered by index."""

  async def get_segment(self, job_id: str, segment_index: int) -> AudioSegmentRecord | None:
    """Fetch one segment."""

  async def ensure_segments(self, job_id: str, slices: list[str]) -> list[AudioSegmentRecord]:
    """Create missing segments for the given script slices and return all of them."""

  async def update_segment(self, job_id: str, segment_index: int, **changes: Any) -> AudioSegmentRecord | None:
    """Apply partial updates to a segment."""

  async def delete_segments(self, job_id: str) -> None:
    """Remove every segment of a job."""

  async def list_expired_artifacts(self, *, created_before: datetime, limit: int, after: tuple[datetime, str] | None = None) -> list[JobRecord]:
    """Return jobs created before the cutoff that still reference stored audio, ordered by (created_at, job_id) and starting past after."""

  async def mark_artifacts_deleted(self, job_id: str, *, now: datetime) -> None:
    """Clear audio references of a job and its segments."""

  async def existing_job_ids(self, job_ids: list[str]) -> set[str]:
    """Return the subset of ids that have a job record."""

  async def upcoming_stock_symbols(self, *, now: datetime, horizon_hours: int) -> set[str]:
    """Return stock symbols requested by open jobs scheduled within the horizon."""
