"""Time helpers shared by scheduling code."""

from __future__ import annotations

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
  return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
  """Attach UTC to naive datetimes and convert aware ones."""
  if value.tzinfo is None:
    return value.replace(tzinfo=UTC)
  return value.astimezone(UTC)


def parse_instant(raw: str) -> datetime:
  """Parse an ISO-8601 instant, accepting a trailing Z."""
  parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
  return ensure_utc(parsed)


def format_instant(value: datetime | None) -> str | None:
  if value is None:
    return None
  return ensure_utc(value).strftime(_DATE_FORMAT)


def resolve_timezone(name: str) -> ZoneInfo:
  """Return the zone for an IANA name, raising ValueError for unknown names."""
  try:
    return ZoneInfo(name)
  except (ZoneInfoNotFoundError, ValueError) as exc:
    raise ValueError(f"Unknown timezone: {name}") from exc


def local_date_for(instant: datetime, timezone_name: str) -> date:
  """Return the calendar date of an instant in the given timezone."""
  return ensure_utc(instant).astimezone(resolve_timezone(timezone_name)).date()


def hours_between(earlier: datetime, later: datetime) -> float:
  return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 3600
