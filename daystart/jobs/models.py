"""Domain models for briefing generation jobs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

JobStatus = Literal["queued", "script_processing", "script_ready", "audio_processing", "ready", "failed", "failed_missed", "cancelled"]
JobStage = Literal["script", "audio", "deadline"]
SegmentStatus = Literal["queued", "processing", "ready", "failed"]

DEFAULT_SPORTS: tuple[str, ...] = ("MLB", "NHL", "NBA", "NFL", "NCAAF")
WELCOME_DURATION_SECONDS = 60


@dataclass(frozen=True)
class JobPreferences:
  """Generation inputs captured when the job is created."""

  timezone: str
  voice: str = "voice1"
  duration_seconds: int = 180
  locale: str = "en-US"
  preferred_name: str | None = None
  location: dict[str, Any] | None = None
  include_news: bool = True
  include_sports: bool = True
  include_stocks: bool = True
  include_weather: bool = True
  include_calendar: bool = False
  include_quotes: bool = True
  stock_symbols: tuple[str, ...] = ()
  selected_sports: tuple[str, ...] = DEFAULT_SPORTS
  quote_style: str | None = None
  calendar_events: tuple[str, ...] = ()
  weather: dict[str, Any] | None = None

  def to_dict(self) -> dict[str, Any]:
    payload = asdict(self)
    # JSON columns store lists, not tuples.
    for key in ("stock_symbols", "selected_sports", "calendar_events"):
      payload[key] = list(payload[key])
    return payload

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> JobPreferences:
    known = {key: value for key, value in payload.items() if key in cls.__dataclass_fields__}
    for key in ("stock_symbols", "selected_sports", "calendar_events"):
      if key in known and known[key] is not None:
        known[key] = tuple(known[key])
    return cls(**known)

  def enabled_categories(self) -> list[str]:
    flags = {
      "weather": self.include_weather,
      "calendar": self.include_calendar,
      "news": self.include_news,
      "sports": self.include_sports,
      "stocks": self.include_stocks,
      "quotes": self.include_quotes,
    }
    return [name for name, enabled in flags.items() if enabled]


@dataclass
class JobRecord:
  """Represents one user's briefing for one local date."""

  job_id: str
  user_id: str
  local_date: str
  status: JobStatus
  priority: int
  scheduled_at: datetime
  process_not_before: datetime
  latest_completion_at: datetime
  preferences: JobPreferences
  created_at: datetime
  updated_at: datetime
  is_welcome: bool = False
  segmented: bool = False
  segment_count: int | None = None
  segments_ready: int = 0
  segment_fallback: bool = False
  script_attempts: int = 0
  audio_attempts: int = 0
  next_attempt_at: datetime | None = None
  lease_owner: str | None = None
  lease_until: datetime | None = None
  script: str | None = None
  script_ready_at: datetime | None = None
  audio_path: str | None = None
  audio_ready_at: datetime | None = None
  audio_duration_seconds: int | None = None
  audio_deleted_at: datetime | None = None
  tts_provider: str | None = None
  script_characters: int | None = None
  tts_characters: int | None = None
  script_input_tokens: int | None = None
  script_output_tokens: int | None = None
  script_cost_usd: Decimal | None = None
  tts_cost_usd: Decimal | None = None
  failure_stage: JobStage | None = None
  failure_reason: str | None = None
  user_completed: bool = False

  def lease_held(self, now: datetime) -> bool:
    """Return True when an unexpired lease exists."""
    return self.lease_owner is not None and self.lease_until is not None and self.lease_until > now


@dataclass
class AudioSegmentRecord:
  """One independently synthesized slice of a segmented briefing."""

  job_id: str
  segment_index: int
  status: SegmentStatus
  script_text: str
  audio_path: str | None = None
  attempts: int = 0
  error: str | None = None
  characters: int | None = None
  updated_at: datetime | None = None


@dataclass
class TickResult:
  """Summary of one scheduler tick."""

  worker_id: str
  missed: list[str] = field(default_factory=list)
  leased: list[str] = field(default_factory=list)
  completed: list[str] = field(default_factory=list)
  retried: list[str] = field(default_factory=list)
  failed: list[str] = field(default_factory=list)
