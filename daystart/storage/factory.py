from __future__ import annotations

from functools import lru_cache

from daystart.config import Settings
from daystart.storage.content_repo import ContentRepository
from daystart.storage.jobs_repo import JobsRepository
from daystart.storage.maintenance_repo import MaintenanceRepository
from daystart.storage.memory import InMemoryContentRepository, InMemoryJobsRepository, InMemoryMaintenanceRepository
from daystart.storage.postgres_content_repo import PostgresContentRepository
from daystart.storage.postgres_jobs_repo import PostgresJobsRepository
from daystart.storage.postgres_maintenance_repo import PostgresMaintenanceRepository


def _require_dsn(settings: Settings) -> None:
  if not settings.pg_dsn:
    raise ValueError("DAYSTART_PG_DSN must be set to enable Postgres persistence.")


@lru_cache(maxsize=1)
def _memory_jobs_repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@lru_cache(maxsize=1)
def _memory_content_repo() -> InMemoryContentRepository:
  return InMemoryContentRepository()


@lru_cache(maxsize=1)
def _memory_maintenance_repo() -> InMemoryMaintenanceRepository:
  return InMemoryMaintenanceRepository()


def get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""
  if settings.storage_backend == "memory":
    return _memory_jobs_repo()
  _require_dsn(settings)
  return PostgresJobsRepository()


def get_content_repo(settings: Settings) -> ContentRepository:
  """Return the active content cache repository."""
  if settings.storage_backend == "memory":
    return _memory_content_repo()
  _require_dsn(settings)
  return PostgresContentRepository()


def get_maintenance_repo(settings: Settings) -> MaintenanceRepository:
  """Return the active maintenance marker repository."""
  if settings.storage_backend == "memory":
    return _memory_maintenance_repo()
  _require_dsn(settings)
  return PostgresMaintenanceRepository()


def reset_memory_repos() -> None:
  """Drop in-process state so each test starts from an empty store."""
  _memory_jobs_repo.cache_clear()
  _memory_content_repo.cache_clear()
  _memory_maintenance_repo.cache_clear()
