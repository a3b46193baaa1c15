"""Shared fixtures: every test runs against the in-memory backend."""

from __future__ import annotations

import os

os.environ.setdefault("DAYSTART_STORAGE_BACKEND", "memory")
os.environ.setdefault("DAYSTART_TASK_SECRET", "test-task-secret")

from dataclasses import replace  # noqa: E402
from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402

from daystart.config import Settings, get_settings  # noqa: E402
from daystart.services.storage_client import InMemoryArtifactStore, reset_memory_store  # noqa: E402
from daystart.storage.factory import reset_memory_repos  # noqa: E402
from daystart.storage.memory import InMemoryContentRepository, InMemoryJobsRepository, InMemoryMaintenanceRepository  # noqa: E402

from tests.fakes import TASK_SECRET  # noqa: E402

NOW = datetime(2026, 10, 19, 11, 0, tzinfo=UTC)


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_memory_state():
  reset_memory_repos()
  reset_memory_store()
  yield
  reset_memory_repos()
  reset_memory_store()


@pytest.fixture
def settings() -> Settings:
  return replace(
    get_settings(),
    storage_backend="memory",
    task_secret=TASK_SECRET,
    market_symbols=("^GSPC",),
    news_regions=("us",),
    sports_leagues=("NBA", "NFL"),
    segmented_audio_enabled=False,
    signed_url_ttl_seconds=1800,
    max_stage_attempts=3,
    retry_base_seconds=30,
    retry_factor=4,
    processing_lead_minutes=45,
    completion_grace_minutes=120,
    script_timeout_seconds=90,
    tts_timeout_seconds=120,
    words_per_minute=145,
    min_script_chars=800,
    content_refresh_cooldown_seconds=1800,
    content_stale_retention_hours=72,
    cleanup_retention_days=10,
    cleanup_fast_min_interval_hours=20,
    cleanup_deep_min_interval_hours=168,
    cleanup_batch_size=50,
    worker_batch_size=5,
    lease_seconds=900,
  )


@pytest.fixture
def now() -> datetime:
  return NOW


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@pytest.fixture
def content_repo() -> InMemoryContentRepository:
  return InMemoryContentRepository()


@pytest.fixture
def maintenance_repo() -> InMemoryMaintenanceRepository:
  return InMemoryMaintenanceRepository()


@pytest.fixture
def store() -> InMemoryArtifactStore:
  return InMemoryArtifactStore()
