"""Object storage for briefing audio artifacts."""

from __future__ import annotations

import os
from datetime import timedelta
from functools import lru_cache
from typing import Protocol
from urllib.parse import quote, urlparse, urlunparse

from google.api_core.exceptions import NotFound
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from daystart.config import Settings, get_settings


class ArtifactStore(Protocol):
  """Operations the pipeline, status API and sweeper need from object storage."""

  async def upload_audio(self, object_name: str, payload: bytes, content_type: str) -> str:
    """Store audio bytes and return the object name."""

  async def generate_signed_url(self, object_name: str, *, ttl_seconds: int) -> str:
    """Return a short-lived download URL."""

  async def list_objects(self, prefix: str = "") -> list[str]:
    """Return every object name under the prefix."""

  async def delete(self, object_name: str) -> bool:
    """Delete an object; False when it was already gone."""

  async def exists(self, object_name: str) -> bool:
    """Return True when the object exists."""


def audio_object_name(user_id: str, local_date: str, job_id: str, extension: str, *, segment_index: int | None = None) -> str:
  """Object layout `{user_id}/{local_date}/{job_id}[_segNN].{ext}`; the sweeper parses it back."""
  suffix = f"_seg{segment_index:02d}" if segment_index is not None else ""
  return f"{user_id}/{local_date}/{job_id}{suffix}.{extension}"


def job_id_from_object_name(object_name: str) -> str | None:
  parts = object_name.split("/")
  if len(parts) != 3 or not parts[2]:
    return None
  stem = parts[2].rsplit(".", 1)[0]
  return stem.split("_seg", 1)[0] or None


class StorageClient:
  """Thin wrapper over GCS and emulator access for audio upload and signed downloads."""

  def __init__(self, settings: Settings) -> None:
    self._bucket_name = settings.audio_bucket
    self._storage_host = settings.gcs_storage_host
    # Ensure emulator endpoint is visible to the SDK in local development.
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing in emulator mode."""
    # Keep production startup side-effect free; only auto-create in emulator mode.
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def upload_audio(self, object_name: str, payload: bytes, content_type: str) -> str:
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    blob.cache_control = "private, max-age=0"
    blob.content_type = content_type
    await run_in_threadpool(blob.upload_from_string, payload, content_type)
    return object_name

  async def generate_signed_url(self, object_name: str, *, ttl_seconds: int) -> str:
    """Generate a short-lived signed URL; the emulator gets a direct media URL instead."""
    if self._storage_host:
      endpoint = _normalize_emulator_endpoint(self._storage_host)
      return f"{endpoint}/download/storage/v1/b/{self._bucket_name}/o/{quote(object_name, safe='')}?alt=media"
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    expiration = timedelta(seconds=int(ttl_seconds))
    return await run_in_threadpool(blob.generate_signed_url, version="v4", expiration=expiration, method="GET")

  async def list_objects(self, prefix: str = "") -> list[str]:
    def _list() -> list[str]:
      return [blob.name for blob in self._client.list_blobs(self._bucket_name, prefix=prefix or None)]

    return await run_in_threadpool(_list)

  async def delete(self, object_name: str) -> bool:
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    try:
      await run_in_threadpool(blob.delete)
    except NotFound:
      return False
    return True

  async def exists(self, object_name: str) -> bool:
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    return bool(await run_in_threadpool(blob.exists))


class InMemoryArtifactStore:
  """Process-local artifact store for the memory backend and tests."""

  def __init__(self, base_url: str = "memory://daystart-audio") -> None:
    self.objects: dict[str, tuple[bytes, str]] = {}
    self._base_url = base_url

  async def ensure_bucket(self) -> None:
    return None

  async def upload_audio(self, object_name: str, payload: bytes, content_type: str) -> str:
    self.objects[object_name] = (payload, content_type)
    return object_name

  async def generate_signed_url(self, object_name: str, *, ttl_seconds: int) -> str:
    return f"{self._base_url}/{object_name}?ttl={ttl_seconds}"

  async def list_objects(self, prefix: str = "") -> list[str]:
    return sorted(name for name in self.objects if name.startswith(prefix))

  async def delete(self, object_name: str) -> bool:
    return self.objects.pop(object_name, None) is not None

  async def exists(self, object_name: str) -> bool:
    return object_name in self.objects


@lru_cache
def _gcs_store(settings: Settings) -> StorageClient:
  return StorageClient(settings)


@lru_cache
def _memory_store() -> InMemoryArtifactStore:
  return InMemoryArtifactStore()


def build_storage_client(settings: Settings | None = None) -> StorageClient | InMemoryArtifactStore:
  """Create the artifact store matching the storage backend."""
  settings = settings or get_settings()
  if settings.storage_backend == "memory":
    return _memory_store()
  return _gcs_store(settings)


def reset_memory_store() -> None:
  _memory_store.cache_clear()
  _gcs_store.cache_clear()


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
