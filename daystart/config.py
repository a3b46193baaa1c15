"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from daystart.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_STORAGE_BACKENDS = {"postgres", "memory"}
_SCRIPT_PROVIDERS = {"openai", "gemini"}
_SPEECH_PROVIDERS = {"elevenlabs", "openai", "gemini"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the DayStart engine."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  storage_backend: str
  pg_dsn: str | None
  pg_connect_timeout: int
  gcp_project_id: str | None
  gcs_storage_host: str | None
  audio_bucket: str
  signed_url_ttl_seconds: int
  task_secret: str | None
  worker_batch_size: int
  lease_seconds: int
  max_stage_attempts: int
  retry_base_seconds: int
  retry_factor: int
  processing_lead_minutes: int
  completion_grace_minutes: int
  script_timeout_seconds: int
  tts_timeout_seconds: int
  words_per_minute: int
  min_script_chars: int
  script_provider: str
  script_model: str | None
  speech_providers: tuple[str, ...]
  openai_api_key: str | None
  gemini_api_key: str | None
  elevenlabs_api_key: str | None
  segmented_audio_enabled: bool
  segment_max_concurrency: int
  content_refresh_cooldown_seconds: int
  content_stale_retention_hours: int
  newsapi_key: str | None
  gnews_key: str | None
  market_symbols: tuple[str, ...]
  news_regions: tuple[str, ...]
  sports_leagues: tuple[str, ...]
  cleanup_retention_days: int
  cleanup_fast_min_interval_hours: int
  cleanup_deep_min_interval_hours: int
  cleanup_batch_size: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _parse_int(name: str, default: int, *, minimum: int = 1) -> int:
  """Read an integer env var and enforce a lower bound."""
  raw = os.getenv(name)
  if raw is None or not raw.strip():
    return default
  try:
    value = int(raw.strip())
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer.") from exc
  if value < minimum:
    raise ValueError(f"{name} must be >= {minimum}.")
  return value


def _parse_csv(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
  if raw is None:
    return default
  return tuple(item.strip() for item in raw.split(",") if item.strip())


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  origins = _parse_csv(raw, ("http://localhost:8081",))

  if not origins:
    raise ValueError("DAYSTART_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("DAYSTART_ALLOWED_ORIGINS must not include wildcard origins.")

  return origins


def _parse_choice(name: str, default: str, choices: set[str]) -> str:
  value = (os.getenv(name) or default).strip().lower()
  if value not in choices:
    raise ValueError(f"{name} must be one of: {', '.join(sorted(choices))}.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("DAYSTART_ENV", "development").lower()
  debug = _parse_bool(os.getenv("DAYSTART_DEBUG"))

  speech_providers = tuple(name.lower() for name in _parse_csv(os.getenv("DAYSTART_SPEECH_PROVIDERS"), ("elevenlabs", "openai")))
  if not speech_providers:
    raise ValueError("DAYSTART_SPEECH_PROVIDERS must list at least one provider.")
  unknown = [name for name in speech_providers if name not in _SPEECH_PROVIDERS]
  if unknown:
    raise ValueError(f"DAYSTART_SPEECH_PROVIDERS has unknown providers: {', '.join(unknown)}.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("DAYSTART_ALLOWED_ORIGINS")),
    log_max_bytes=_parse_int("DAYSTART_LOG_MAX_BYTES", 5242880),  # 5MB default
    log_backup_count=_parse_int("DAYSTART_LOG_BACKUP_COUNT", 10, minimum=0),
    log_http_4xx=_parse_bool(os.getenv("DAYSTART_LOG_HTTP_4XX")),
    storage_backend=_parse_choice("DAYSTART_STORAGE_BACKEND", "postgres", _STORAGE_BACKENDS),
    pg_dsn=_optional_str(os.getenv("DAYSTART_PG_DSN")),
    pg_connect_timeout=_parse_int("DAYSTART_PG_CONNECT_TIMEOUT", 10),
    gcp_project_id=_optional_str(os.getenv("DAYSTART_GCP_PROJECT_ID")),
    gcs_storage_host=_optional_str(os.getenv("DAYSTART_GCS_STORAGE_HOST")),
    audio_bucket=(os.getenv("DAYSTART_AUDIO_BUCKET") or "daystart-audio").strip(),
    signed_url_ttl_seconds=_parse_int("DAYSTART_SIGNED_URL_TTL_SECONDS", 1800),
    task_secret=_optional_str(os.getenv("DAYSTART_TASK_SECRET")),
    worker_batch_size=_parse_int("DAYSTART_WORKER_BATCH_SIZE", 5),
    lease_seconds=_parse_int("DAYSTART_LEASE_SECONDS", 900),
    max_stage_attempts=_parse_int("DAYSTART_MAX_STAGE_ATTEMPTS", 3),
    retry_base_seconds=_parse_int("DAYSTART_RETRY_BASE_SECONDS", 30),
    retry_factor=_parse_int("DAYSTART_RETRY_FACTOR", 4),
    processing_lead_minutes=_parse_int("DAYSTART_PROCESSING_LEAD_MINUTES", 45, minimum=0),
    completion_grace_minutes=_parse_int("DAYSTART_COMPLETION_GRACE_MINUTES", 120),
    script_timeout_seconds=_parse_int("DAYSTART_SCRIPT_TIMEOUT_SECONDS", 90),
    tts_timeout_seconds=_parse_int("DAYSTART_TTS_TIMEOUT_SECONDS", 120),
    words_per_minute=_parse_int("DAYSTART_WORDS_PER_MINUTE", 145),
    min_script_chars=_parse_int("DAYSTART_MIN_SCRIPT_CHARS", 800),
    script_provider=_parse_choice("DAYSTART_SCRIPT_PROVIDER", "openai", _SCRIPT_PROVIDERS),
    script_model=_optional_str(os.getenv("DAYSTART_SCRIPT_MODEL")),
    speech_providers=speech_providers,
    openai_api_key=_optional_str(os.getenv("DAYSTART_OPENAI_API_KEY")),
    gemini_api_key=_optional_str(os.getenv("DAYSTART_GEMINI_API_KEY")),
    elevenlabs_api_key=_optional_str(os.getenv("DAYSTART_ELEVENLABS_API_KEY")),
    segmented_audio_enabled=_parse_bool(os.getenv("DAYSTART_SEGMENTED_AUDIO_ENABLED")),
    segment_max_concurrency=_parse_int("DAYSTART_SEGMENT_MAX_CONCURRENCY", 3),
    content_refresh_cooldown_seconds=_parse_int("DAYSTART_CONTENT_REFRESH_COOLDOWN_SECONDS", 1800, minimum=0),
    content_stale_retention_hours=_parse_int("DAYSTART_CONTENT_STALE_RETENTION_HOURS", 72),
    newsapi_key=_optional_str(os.getenv("DAYSTART_NEWSAPI_KEY")),
    gnews_key=_optional_str(os.getenv("DAYSTART_GNEWS_KEY")),
    market_symbols=_parse_csv(os.getenv("DAYSTART_MARKET_SYMBOLS"), ("^GSPC", "^DJI", "^IXIC")),
    news_regions=_parse_csv(os.getenv("DAYSTART_NEWS_REGIONS"), ("us",)),
    sports_leagues=_parse_csv(os.getenv("DAYSTART_SPORTS_LEAGUES"), ("MLB", "NHL", "NBA", "NFL", "NCAAF")),
    cleanup_retention_days=_parse_int("DAYSTART_CLEANUP_RETENTION_DAYS", 10),
    cleanup_fast_min_interval_hours=_parse_int("DAYSTART_CLEANUP_FAST_MIN_INTERVAL_HOURS", 20, minimum=0),
    cleanup_deep_min_interval_hours=_parse_int("DAYSTART_CLEANUP_DEEP_MIN_INTERVAL_HOURS", 168, minimum=0),
    cleanup_batch_size=_parse_int("DAYSTART_CLEANUP_BATCH_SIZE", 50),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load the database subset without validating the full service config."""

  return DatabaseSettings(debug=_parse_bool(os.getenv("DAYSTART_DEBUG")), pg_dsn=_optional_str(os.getenv("DAYSTART_PG_DSN")), pg_connect_timeout=_parse_int("DAYSTART_PG_CONNECT_TIMEOUT", 10))
