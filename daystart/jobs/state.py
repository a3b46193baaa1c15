"""Job state machine edges."""

from __future__ import annotations

from typing import Final

from daystart.jobs.models import JobStatus

TERMINAL_STATUSES: Final[frozenset[str]] = frozenset({"ready", "failed", "failed_missed", "cancelled"})
PROCESSING_STATUSES: Final[frozenset[str]] = frozenset({"script_processing", "audio_processing"})
LEASABLE_STATUSES: Final[frozenset[str]] = frozenset({"queued", "script_ready"})
# Statuses that can still miss their completion deadline.
OPEN_STATUSES: Final[frozenset[str]] = frozenset({"queued", "script_processing", "script_ready", "audio_processing"})

# Worker-driven edges. Retries return a job to the status that precedes its stage.
TRANSITIONS: Final[dict[str, frozenset[str]]] = {
  "queued": frozenset({"script_processing", "failed_missed", "cancelled"}),
  "script_processing": frozenset({"script_ready", "queued", "failed", "failed_missed"}),
  "script_ready": frozenset({"audio_processing", "failed_missed", "cancelled"}),
  "audio_processing": frozenset({"ready", "script_ready", "failed", "failed_missed"}),
  "ready": frozenset(),
  "failed": frozenset(),
  "failed_missed": frozenset(),
  "cancelled": frozenset(),
}

# Status entered when a lease is taken on a job in the given status.
LEASE_TARGET: Final[dict[str, JobStatus]] = {
  "queued": "script_processing",
  "script_ready": "audio_processing",
  "script_processing": "script_processing",
  "audio_processing": "audio_processing",
}


class InvalidTransitionError(ValueError):
  """Raised when a status change is not an edge of the state machine."""

  def __init__(self, current: str, target: str) -> None:
    super().__init__(f"Invalid job transition {current} -> {target}")
    self.current = current
    self.target = target


def can_transition(current: str, target: str) -> bool:
  return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
  """Raise InvalidTransitionError unless current -> target is allowed."""
  if not can_transition(current, target):
    raise InvalidTransitionError(current, target)


def is_terminal(status: str) -> bool:
  return status in TERMINAL_STATUSES


def client_status(status: str) -> str:
  """Collapse internal pipeline states into the documented client-facing values."""
  if status in {"script_processing", "script_ready", "audio_processing"}:
    return "processing"
  return status


def stage_for(status: str) -> str:
  """Return the generation stage a processing status belongs to."""
  if status == "script_processing":
    return "script"
  if status == "audio_processing":
    return "audio"
  raise ValueError(f"Status {status} is not a processing state")
