"""Single-file and segmented audio production behind one interface."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Protocol

from daystart.ai.errors import SynthesisError, failure_reason
from daystart.ai.synthesizer import AudioArtifact, AudioSynthesizer, estimate_duration_seconds, tts_cost
from daystart.jobs.models import AudioSegmentRecord, JobRecord
from daystart.services.storage_client import ArtifactStore, audio_object_name
from daystart.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
DEFAULT_SEGMENT_COUNT = 3


@dataclass(frozen=True)
class AudioResult:
  """Outcome of the audio stage; audio_path is None when the job is served as segments."""

  audio_path: str | None
  provider: str | None
  characters: int
  duration_seconds: int
  cost_usd: Decimal
  segmented: bool = False
  segments_ready: int = 0
  segment_fallback: bool = False


class AudioStrategy(Protocol):
  async def produce(self, job: JobRecord) -> AudioResult:
    """Synthesize and store audio for a job whose script is ready."""


def split_script(script: str, count: int) -> list[str]:
  """Split at sentence boundaries into at most count slices of similar length."""
  sentences = [sentence.strip() for sentence in _SENTENCE_BOUNDARY.split(script.strip()) if sentence.strip()]
  if not sentences:
    return []
  count = max(1, min(count, len(sentences)))
  remaining_chars = sum(len(sentence) for sentence in sentences)
  slices: list[str] = []
  current: list[str] = []
  size = 0
  for index, sentence in enumerate(sentences):
    if not current:
      target = remaining_chars / (count - len(slices))
    current.append(sentence)
    size += len(sentence)
    remaining_sentences = len(sentences) - index - 1
    remaining_slices = count - len(slices) - 1
    if remaining_slices <= 0:
      continue
    # Stop where the slice lands closest to its target, keeping one sentence for every slice still to fill.
    next_size = size + len(sentences[index + 1])
    if remaining_sentences == remaining_slices or abs(size - target) <= abs(next_size - target):
      slices.append(" ".join(current))
      remaining_chars -= size
      current, size = [], 0
  if current:
    slices.append(" ".join(current))
  return slices


class SingleFileAudioStrategy:
  """Synthesize the whole script as one artifact."""

  def __init__(self, synthesizer: AudioSynthesizer, store: ArtifactStore) -> None:
    self._synthesizer = synthesizer
    self._store = store

  async def produce(self, job: JobRecord) -> AudioResult:
    if not job.script:
      raise SynthesisError(f"Job {job.job_id} has no script")
    artifact = await self._synthesizer.synthesize(job.script, job.preferences.voice)
    object_name = audio_object_name(job.user_id, job.local_date, job.job_id, artifact.file_extension)
    await self._store.upload_audio(object_name, artifact.data, artifact.content_type)
    logger.info("Stored %s bytes of %s audio for job %s", len(artifact.data), artifact.provider, job.job_id)
    return AudioResult(
      audio_path=object_name,
      provider=artifact.provider,
      characters=artifact.characters,
      duration_seconds=artifact.estimated_duration_seconds,
      cost_usd=artifact.cost_usd,
    )


class SegmentedAudioStrategy:
  """Synthesize sentence-aligned slices concurrently and fall back to one file when any slice fails."""

  def __init__(self, synthesizer: AudioSynthesizer, store: ArtifactStore, jobs_repo: JobsRepository, *, fallback: SingleFileAudioStrategy, max_concurrency: int, segment_attempts: int = 3) -> None:
    self._synthesizer = synthesizer
    self._store = store
    self._jobs_repo = jobs_repo
    self._fallback = fallback
    self._max_concurrency = max(1, max_concurrency)
    self._segment_attempts = max(1, segment_attempts)

  async def produce(self, job: JobRecord) -> AudioResult:
    if not job.script:
      raise SynthesisError(f"Job {job.job_id} has no script")
    slices = split_script(job.script, job.segment_count or DEFAULT_SEGMENT_COUNT)
    segments = await self._jobs_repo.ensure_segments(job.job_id, slices)
    semaphore = asyncio.Semaphore(self._max_concurrency)
    outcomes = await asyncio.gather(*(self._produce_segment(job, segment, semaphore) for segment in segments))

    ready = [(segment, artifact) for segment, artifact in outcomes if segment.status == "ready"]
    failed = [segment for segment, _ in outcomes if segment.status != "ready"]
    if failed:
      logger.warning("Job %s: %s of %s segments failed, synthesizing the full script instead", job.job_id, len(failed), len(segments))
      result = await self._fallback.produce(job)
      return replace(result, segments_ready=len(ready), segment_fallback=True)

    characters = sum(segment.characters or len(segment.script_text) for segment, _ in ready)
    providers = sorted({artifact.provider for _, artifact in ready if artifact is not None})
    return AudioResult(
      audio_path=None,
      provider=",".join(providers) or None,
      characters=characters,
      duration_seconds=estimate_duration_seconds(characters),
      cost_usd=tts_cost(sum(artifact.characters for _, artifact in ready if artifact is not None)),
      segmented=True,
      segments_ready=len(ready),
    )

  async def _produce_segment(self, job: JobRecord, segment: AudioSegmentRecord, semaphore: asyncio.Semaphore) -> tuple[AudioSegmentRecord, AudioArtifact | None]:
    if segment.status == "ready" and segment.audio_path:
      # Ready segments from an earlier attempt are reused.
      return segment, None

    async with semaphore:
      attempts = segment.attempts
      error = "not attempted"
      for _ in range(self._segment_attempts):
        attempts += 1
        await self._jobs_repo.update_segment(job.job_id, segment.segment_index, status="processing", attempts=attempts)
        try:
          artifact = await self._synthesizer.synthesize(segment.script_text, job.preferences.voice)
          object_name = audio_object_name(job.user_id, job.local_date, job.job_id, artifact.file_extension, segment_index=segment.segment_index)
          await self._store.upload_audio(object_name, artifact.data, artifact.content_type)
        except Exception as exc:  # noqa: BLE001
          error = failure_reason(exc)
          logger.warning("Job %s segment %s attempt %s failed: %s", job.job_id, segment.segment_index, attempts, error)
          continue
        updated = await self._jobs_repo.update_segment(job.job_id, segment.segment_index, status="ready", audio_path=object_name, characters=artifact.characters, error=None)
        return updated or replace(segment, status="ready", audio_path=object_name, characters=artifact.characters, attempts=attempts), artifact

    updated = await self._jobs_repo.update_segment(job.job_id, segment.segment_index, status="failed", error=error)
    return updated or replace(segment, status="failed", error=error, attempts=attempts), None


class SelectingAudioProducer:
  """Pick the segmented strategy only when the job asks for it and the feature gate is on."""

  def __init__(self, single: SingleFileAudioStrategy, segmented: SegmentedAudioStrategy | None, *, segmented_enabled: bool) -> None:
    self._single = single
    self._segmented = segmented
    self._segmented_enabled = segmented_enabled

  def strategy_for(self, job: JobRecord) -> AudioStrategy:
    if job.segmented and self._segmented_enabled and self._segmented is not None:
      return self._segmented
    return self._single

  async def produce(self, job: JobRecord) -> AudioResult:
    return await self.strategy_for(job).produce(job)
