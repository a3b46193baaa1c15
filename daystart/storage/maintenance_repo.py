"""Storage interface for persisted maintenance markers and run history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True)
class MaintenanceMarker:
  """Persisted rate-limit state of one maintenance task."""

  task: str
  last_success_at: datetime | None
  claimed_until: datetime | None


@dataclass
class MaintenanceRunRecord:
  """History row for one refresh or cleanup run."""

  task: str
  started_at: datetime
  finished_at: datetime
  status: str
  details: dict[str, Any] = field(default_factory=dict)


class MaintenanceRepository(Protocol):
  """Repository contract for cooldown markers."""

  async def try_claim(self, task: str, *, now: datetime, min_interval_seconds: int, claim_seconds: int) -> bool:
    """Claim a task when its last success is older than the interval and no live claim exists."""

  async def release(self, task: str, *, now: datetime, success: bool) -> None:
    """Drop the claim; record now as the last success when success is True."""

  async def get_marker(self, task: str) -> MaintenanceMarker | None:
    """Return the marker row for a task."""

  async def record_run(self, run: MaintenanceRunRecord) -> None:
    """Append a run history row."""
