"""Priority bands for the job queue."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Final

PRIORITY_WELCOME: Final[int] = 100
PRIORITY_URGENT: Final[int] = 75
PRIORITY_REGULAR: Final[int] = 50
PRIORITY_BACKGROUND: Final[int] = 25

_IMMEDIATE_WINDOW = timedelta(minutes=1)
_URGENT_WINDOW = timedelta(hours=4)
_REGULAR_WINDOW = timedelta(hours=24)


def compute_priority(*, scheduled_at: datetime, now: datetime, is_welcome: bool = False) -> int:
  """Map a job's schedule onto one of the four priority bands.

  Welcome jobs and jobs due within a minute are immediate. Overdue jobs and jobs due within
  four hours are same-day urgent, anything within a day is regular, the rest is background.
  """
  if is_welcome:
    return PRIORITY_WELCOME

  until_due = scheduled_at - now
  if abs(until_due) <= _IMMEDIATE_WINDOW:
    return PRIORITY_WELCOME
  if until_due < _URGENT_WINDOW:
    return PRIORITY_URGENT
  if until_due < _REGULAR_WINDOW:
    return PRIORITY_REGULAR
  return PRIORITY_BACKGROUND
