"""Retry delays between stage attempts."""

from __future__ import annotations

from datetime import datetime, timedelta

from daystart.config import Settings


def retry_delay_seconds(attempt: int, *, base_seconds: int, factor: int) -> int:
  """Geometric delay after the given (1-based) failed attempt."""
  if attempt < 1:
    raise ValueError("attempt must be >= 1")
  return base_seconds * factor ** (attempt - 1)


def next_attempt_at(attempt: int, *, now: datetime, settings: Settings) -> datetime:
  return now + timedelta(seconds=retry_delay_seconds(attempt, base_seconds=settings.retry_base_seconds, factor=settings.retry_factor))
