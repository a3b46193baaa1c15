from __future__ import annotations

import re
from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from daystart.ai.text import sanitize_name
from daystart.utils.time import resolve_timezone

STOCK_SYMBOL_PATTERN = re.compile(r"^[A-Z0-9\-\.\$\=\^]{1,16}$")
MAX_STOCK_SYMBOLS = 10
_LOCAL_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

VoiceOption = Literal["voice1", "voice2", "voice3"]
_VOICE_ALIASES = {"grace": "voice1", "rachel": "voice2", "matthew": "voice3"}


class CreateJobRequest(BaseModel):
  """Create or update the briefing for one local date."""

  local_date: StrictStr = Field(description="Local date YYYY-MM-DD, or TODAY in the request timezone.", examples=["2026-10-19", "TODAY"])
  scheduled_at: StrictStr = Field(description="ISO-8601 instant the listener wants the briefing, or NOW.", examples=["2026-10-19T12:30:00Z", "NOW"])
  timezone: StrictStr = Field(min_length=1, max_length=64, examples=["America/New_York"])
  voice: VoiceOption = "voice1"
  duration_seconds: int = Field(default=180, ge=60, le=900)
  locale: StrictStr = Field(default="en-US", max_length=16)
  preferred_name: StrictStr | None = Field(default=None, max_length=200)
  location: dict[str, Any] | None = None
  weather: dict[str, Any] | None = None
  calendar_events: list[StrictStr] = Field(default_factory=list, max_length=20)
  include_news: StrictBool = True
  include_sports: StrictBool = True
  include_stocks: StrictBool = True
  include_weather: StrictBool = True
  include_calendar: StrictBool = False
  include_quotes: StrictBool = True
  stock_symbols: list[StrictStr] = Field(default_factory=list)
  selected_sports: list[StrictStr] | None = None
  quote_style: StrictStr | None = Field(default=None, max_length=40)
  segmented: StrictBool = False
  segment_count: int | None = Field(default=None, ge=2, le=8)
  is_welcome: StrictBool = False
  force_update: StrictBool = False
  model_config = ConfigDict(extra="forbid")

  @field_validator("local_date")
  @classmethod
  def validate_local_date(cls, value: str) -> str:
    if value.upper() == "TODAY":
      return "TODAY"
    if not _LOCAL_DATE_PATTERN.match(value):
      raise ValueError("local_date must be YYYY-MM-DD or TODAY")
    try:
      date.fromisoformat(value)
    except ValueError as exc:
      raise ValueError(f"local_date {value} is not a calendar date") from exc
    return value

  @field_validator("timezone")
  @classmethod
  def validate_timezone(cls, value: str) -> str:
    resolve_timezone(value)
    return value

  @field_validator("voice", mode="before")
  @classmethod
  def normalize_voice(cls, value: Any) -> Any:
    if isinstance(value, str):
      lowered = value.strip().lower()
      return _VOICE_ALIASES.get(lowered, lowered)
    return value

  @field_validator("preferred_name")
  @classmethod
  def clean_name(cls, value: str | None) -> str | None:
    return sanitize_name(value)

  @field_validator("stock_symbols")
  @classmethod
  def validate_symbols(cls, value: list[str]) -> list[str]:
    symbols: list[str] = []
    for raw in value:
      symbol = raw.strip().upper()
      if not STOCK_SYMBOL_PATTERN.match(symbol):
        raise ValueError(f"Invalid stock symbol: {raw!r}")
      if symbol not in symbols:
        symbols.append(symbol)
    if len(symbols) > MAX_STOCK_SYMBOLS:
      raise ValueError(f"At most {MAX_STOCK_SYMBOLS} stock symbols are allowed")
    return symbols

  @field_validator("selected_sports")
  @classmethod
  def normalize_sports(cls, value: list[str] | None) -> list[str] | None:
    if value is None:
      return None
    return [league.strip().upper() for league in value if league.strip()]


class CreateJobResponse(BaseModel):
  job_id: str
  status: str
  local_date: str
  priority: int
  estimated_ready_time: str
  created: bool


class SegmentStatus(BaseModel):
  index: int
  status: str
  audio_url: str | None = None


class JobStatusResponse(BaseModel):
  """Client-visible job state; internal pipeline states collapse to processing."""

  job_id: str
  status: str
  local_date: str
  scheduled_at: str
  audio_url: str | None = None
  audio_duration_seconds: int | None = None
  failure_reason: str | None = None
  segmented: bool = False
  segment_fallback: bool = False
  segments: list[SegmentStatus] = Field(default_factory=list)
  user_completed: bool = False


class SegmentResponse(BaseModel):
  job_id: str
  index: int
  status: str
  audio_url: str | None = None


class TickResponse(BaseModel):
  worker_id: str
  missed: list[str]
  leased: list[str]
  completed: list[str]
  retried: list[str]
  failed: list[str]


class FetchSummary(BaseModel):
  source: str
  content_type: str
  selector: str
  outcome: str
  item_count: int
  error: str | None = None
  cached_age_hours: float | None = None


class RefreshResponse(BaseModel):
  started_at: str
  finished_at: str
  succeeded: int
  failed: int
  purged: int
  freshness: dict[str, str]
  fetches: list[FetchSummary]


class CleanupRequest(BaseModel):
  mode: Literal["fast", "deep", "both"] = "fast"
  retention_days: int | None = Field(default=None, ge=1, le=365)
  model_config = ConfigDict(extra="forbid")


class CleanupPass(BaseModel):
  mode: str
  status: str
  jobs_processed: int
  objects_deleted: int
  objects_missing: int
  errors: list[str]


class CleanupResponse(BaseModel):
  passes: list[CleanupPass]
