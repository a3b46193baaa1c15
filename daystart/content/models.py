"""Content cache domain types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Final, Literal

ContentType = Literal["news", "sports", "stocks", "weather", "calendar"]
Freshness = Literal["fresh", "stale", "absent"]
FetchOutcome = Literal["success", "failed_used_cache", "failed_no_cache"]

CONTENT_TYPES: Final[tuple[str, ...]] = ("news", "sports", "stocks", "weather", "calendar")

# Volatile content expires quickly, roundups slowly.
CONTENT_TTL: Final[dict[str, timedelta]] = {
  "stocks": timedelta(hours=2),
  "sports": timedelta(hours=4),
  "weather": timedelta(hours=3),
  "news": timedelta(hours=12),
  "calendar": timedelta(hours=12),
}


@dataclass(frozen=True)
class ContentEntry:
  """One successful fetch of one source for one (type, selector) key."""

  content_type: str
  selector: str
  source: str
  payload: list[dict[str, Any]]
  fetched_at: datetime
  expires_at: datetime
  entry_id: int | None = None

  def is_expired(self, now: datetime) -> bool:
    return self.expires_at <= now


@dataclass(frozen=True)
class ContentLookup:
  """Result of a cache read, carrying freshness so callers can annotate stale data."""

  content_type: str
  selector: str
  freshness: Freshness
  payload: list[dict[str, Any]]
  fetched_at: datetime | None = None
  age_hours: float | None = None
  sources: tuple[str, ...] = ()

  @property
  def is_absent(self) -> bool:
    return self.freshness == "absent"

  @property
  def is_stale(self) -> bool:
    return self.freshness == "stale"


@dataclass(frozen=True)
class FetchLogRecord:
  """Outcome of a single source fetch during a refresh cycle."""

  source: str
  content_type: str
  selector: str
  outcome: FetchOutcome
  item_count: int
  created_at: datetime
  error: str | None = None
  cached_age_hours: float | None = None


def absent(content_type: str, selector: str) -> ContentLookup:
  return ContentLookup(content_type=content_type, selector=selector, freshness="absent", payload=[])
