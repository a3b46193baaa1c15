"""Wiring of repositories, providers and storage into the runnable services."""

from __future__ import annotations

from datetime import timedelta

from daystart.ai.audio_strategies import SegmentedAudioStrategy, SelectingAudioProducer, SingleFileAudioStrategy
from daystart.ai.providers import build_script_model, build_speech_providers
from daystart.ai.providers.base import ScriptModel, SpeechProvider
from daystart.ai.script_generator import ScriptGenerator
from daystart.ai.synthesizer import AudioSynthesizer
from daystart.config import Settings
from daystart.content.cache import ContentCache
from daystart.content.refresh import ContentRefresher, SelectorResolver
from daystart.content.sources import ContentSource, build_sources
from daystart.jobs.worker import JobProcessor
from daystart.services.cleanup import CleanupService
from daystart.services.storage_client import ArtifactStore, build_storage_client
from daystart.storage.content_repo import ContentRepository
from daystart.storage.factory import get_content_repo, get_jobs_repo, get_maintenance_repo
from daystart.storage.jobs_repo import JobsRepository
from daystart.storage.maintenance_repo import MaintenanceRepository


def build_content_cache(settings: Settings, content_repo: ContentRepository | None = None) -> ContentCache:
  return ContentCache(content_repo or get_content_repo(settings), stale_retention=timedelta(hours=settings.content_stale_retention_hours))


def build_audio_producer(settings: Settings, *, jobs_repo: JobsRepository, store: ArtifactStore, speech_providers: list[SpeechProvider] | None = None) -> SelectingAudioProducer:
  synthesizer = AudioSynthesizer(speech_providers or build_speech_providers(settings), timeout_seconds=settings.tts_timeout_seconds)
  single = SingleFileAudioStrategy(synthesizer, store)
  segmented = SegmentedAudioStrategy(synthesizer, store, jobs_repo, fallback=single, max_concurrency=settings.segment_max_concurrency)
  return SelectingAudioProducer(single, segmented, segmented_enabled=settings.segmented_audio_enabled)


def build_job_processor(
  settings: Settings,
  *,
  jobs_repo: JobsRepository | None = None,
  content_repo: ContentRepository | None = None,
  store: ArtifactStore | None = None,
  script_model: ScriptModel | None = None,
  speech_providers: list[SpeechProvider] | None = None,
  worker_id: str | None = None,
) -> JobProcessor:
  """Assemble a JobProcessor; every collaborator can be swapped out."""
  jobs_repo = jobs_repo or get_jobs_repo(settings)
  store = store or build_storage_client(settings)
  generator = ScriptGenerator(script_model or build_script_model(settings), build_content_cache(settings, content_repo), settings)
  producer = build_audio_producer(settings, jobs_repo=jobs_repo, store=store, speech_providers=speech_providers)
  return JobProcessor(jobs_repo=jobs_repo, script_generator=generator, audio_producer=producer, settings=settings, worker_id=worker_id)


def build_content_refresher(
  settings: Settings,
  *,
  sources: list[ContentSource] | None = None,
  content_repo: ContentRepository | None = None,
  maintenance_repo: MaintenanceRepository | None = None,
  jobs_repo: JobsRepository | None = None,
) -> ContentRefresher:
  return ContentRefresher(
    sources=sources if sources is not None else build_sources(settings),
    content_repo=content_repo or get_content_repo(settings),
    maintenance_repo=maintenance_repo or get_maintenance_repo(settings),
    selectors=SelectorResolver(settings, jobs_repo or get_jobs_repo(settings)),
    settings=settings,
  )


def build_cleanup_service(settings: Settings, *, jobs_repo: JobsRepository | None = None, maintenance_repo: MaintenanceRepository | None = None, store: ArtifactStore | None = None) -> CleanupService:
  return CleanupService(
    jobs_repo=jobs_repo or get_jobs_repo(settings),
    maintenance_repo=maintenance_repo or get_maintenance_repo(settings),
    store=store or build_storage_client(settings),
    settings=settings,
  )
