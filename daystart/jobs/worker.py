"""Scheduler tick and stage execution for leased briefing jobs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal

from daystart.ai.audio_strategies import SelectingAudioProducer
from daystart.ai.errors import failure_reason
from daystart.ai.script_generator import ScriptGenerator
from daystart.config import Settings
from daystart.jobs.backoff import next_attempt_at
from daystart.jobs.models import JobRecord, JobStatus, TickResult
from daystart.storage.jobs_repo import JobsRepository
from daystart.utils.ids import generate_worker_id
from daystart.utils.time import utc_now

StageOutcome = Literal["ready", "script_ready", "retried", "failed", "failed_missed", "lost", "skipped"]

_RETRY_STATUS: dict[str, JobStatus] = {"script": "queued", "audio": "script_ready"}


class JobProcessor:
  """Leases jobs and drives them through the script and audio stages."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    script_generator: ScriptGenerator,
    audio_producer: SelectingAudioProducer,
    settings: Settings,
    worker_id: str | None = None,
    clock: Callable[[], datetime] = utc_now,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._script_generator = script_generator
    self._audio_producer = audio_producer
    self._settings = settings
    self._clock = clock
    self.worker_id = worker_id or generate_worker_id()
    self._logger = logging.getLogger(__name__)

  async def run_tick(self) -> TickResult:
    """Expire missed jobs, lease a batch and process it in priority-then-FIFO order."""
    result = TickResult(worker_id=self.worker_id)
    now = self._clock()
    result.missed = await self._jobs_repo.mark_missed(now=now)
    if result.missed:
      self._logger.warning("Marked %s job(s) failed_missed: %s", len(result.missed), ", ".join(result.missed))

    leased = await self._jobs_repo.lease_jobs(worker_id=self.worker_id, now=now, limit=self._settings.worker_batch_size, lease_seconds=self._settings.lease_seconds)
    result.leased = [job.job_id for job in leased]
    for job in leased:
      outcome = await self.process_job(job)
      if outcome == "ready":
        result.completed.append(job.job_id)
      elif outcome == "retried":
        result.retried.append(job.job_id)
      elif outcome in ("failed", "failed_missed"):
        result.failed.append(job.job_id)

    self._logger.info("Tick %s: leased=%s completed=%s retried=%s failed=%s missed=%s", self.worker_id, len(result.leased), len(result.completed), len(result.retried), len(result.failed), len(result.missed))
    return result

  async def process_job(self, job: JobRecord) -> StageOutcome:
    """Run the stage matching a leased job, chaining straight into audio after a script succeeds."""
    if job.status == "script_processing":
      outcome, updated = await self._run_script_stage(job)
      if outcome != "script_ready" or updated is None:
        return outcome
      chained = await self._jobs_repo.lease_job(job.job_id, worker_id=self.worker_id, now=self._clock(), lease_seconds=self._settings.lease_seconds)
      if chained is None:
        # Another worker took it, or the deadline passed; the next tick picks it up.
        return "script_ready"
      job = chained

    if job.status == "audio_processing":
      return await self._run_audio_stage(job)

    self._logger.warning("Job %s leased in unexpected status %s", job.job_id, job.status)
    return "skipped"

  async def _run_script_stage(self, job: JobRecord) -> tuple[StageOutcome, JobRecord | None]:
    if job.script_attempts > self._settings.max_stage_attempts:
      return await self._finish(job, "script_processing", "failed", {"failure_stage": "script", "failure_reason": f"script exceeded {self._settings.max_stage_attempts} attempts"}), None

    try:
      result = await self._script_generator.generate(job, now=self._clock())
    except Exception as exc:  # noqa: BLE001
      return await self._handle_stage_failure(job, "script", exc), None

    changes = {
      "script": result.script,
      "script_ready_at": self._clock(),
      "script_characters": result.characters,
      "script_input_tokens": result.input_tokens,
      "script_output_tokens": result.output_tokens,
      "script_cost_usd": result.cost_usd,
      "failure_stage": None,
      "failure_reason": None,
    }
    updated = await self._jobs_repo.transition(job.job_id, worker_id=self.worker_id, from_status="script_processing", to_status="script_ready", now=self._clock(), changes=changes)
    if updated is None:
      self._logger.warning("Lost lease on job %s before storing its script", job.job_id)
      return "lost", None
    self._logger.info("Job %s script ready (%s chars, stale=%s)", job.job_id, result.characters, ",".join(result.stale_categories) or "none")
    return "script_ready", updated

  async def _run_audio_stage(self, job: JobRecord) -> StageOutcome:
    if job.audio_attempts > self._settings.max_stage_attempts:
      return await self._finish(job, "audio_processing", "failed", {"failure_stage": "audio", "failure_reason": f"audio exceeded {self._settings.max_stage_attempts} attempts"})

    try:
      result = await self._audio_producer.produce(job)
    except Exception as exc:  # noqa: BLE001
      return await self._handle_stage_failure(job, "audio", exc)

    changes = {
      "audio_path": result.audio_path,
      "audio_ready_at": self._clock(),
      "audio_duration_seconds": result.duration_seconds,
      "tts_provider": result.provider,
      "tts_characters": result.characters,
      "tts_cost_usd": result.cost_usd,
      "segments_ready": result.segments_ready,
      "segment_fallback": result.segment_fallback,
      "failure_stage": None,
      "failure_reason": None,
    }
    return await self._finish(job, "audio_processing", "ready", changes)

  async def _handle_stage_failure(self, job: JobRecord, stage: str, exc: BaseException) -> StageOutcome:
    """Schedule a retry, or end the job as failed or failed_missed."""
    now = self._clock()
    attempts = job.script_attempts if stage == "script" else job.audio_attempts
    from_status: JobStatus = "script_processing" if stage == "script" else "audio_processing"
    reason = failure_reason(exc)
    self._logger.warning("Job %s %s attempt %s failed: %s", job.job_id, stage, attempts, reason, exc_info=not isinstance(exc, TimeoutError))

    if attempts >= self._settings.max_stage_attempts:
      return await self._finish(job, from_status, "failed", {"failure_stage": stage, "failure_reason": f"{stage} failed after {attempts} attempts: {reason}"})

    retry_at = next_attempt_at(attempts, now=now, settings=self._settings)
    if retry_at >= job.latest_completion_at:
      return await self._finish(job, from_status, "failed_missed", {"failure_stage": "deadline", "failure_reason": f"Deadline passed before {stage} could be retried: {reason}"})

    outcome = await self._finish(job, from_status, _RETRY_STATUS[stage], {"next_attempt_at": retry_at, "failure_reason": reason})
    return "retried" if outcome != "lost" else outcome

  async def _finish(self, job: JobRecord, from_status: JobStatus, to_status: JobStatus, changes: dict[str, Any]) -> StageOutcome:
    updated = await self._jobs_repo.transition(job.job_id, worker_id=self.worker_id, from_status=from_status, to_status=to_status, now=self._clock(), changes=changes)
    if updated is None:
      self._logger.warning("Lost lease on job %s; %s -> %s not applied", job.job_id, from_status, to_status)
      return "lost"
    if to_status == "ready":
      self._logger.info("Job %s ready", job.job_id)
    return to_status  # type: ignore[return-value]
