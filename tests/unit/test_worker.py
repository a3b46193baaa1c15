import asyncio
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from daystart.ai.script_generator import ScriptGenerator
from daystart.jobs.models import TickResult
from daystart.jobs.runner import run_forever
from daystart.jobs.worker import JobProcessor
from daystart.services.pipeline import build_audio_producer, build_content_cache
from tests.fakes import Clock, FakeScriptModel, FakeSpeechProvider, make_job


def _processor(settings, jobs_repo, content_repo, store, clock, *, model=None, providers=None):
  generator = ScriptGenerator(model or FakeScriptModel("Good morning."), build_content_cache(settings, content_repo), settings)
  producer = build_audio_producer(settings, jobs_repo=jobs_repo, store=store, speech_providers=providers or [FakeSpeechProvider("openai")])
  return JobProcessor(jobs_repo=jobs_repo, script_generator=generator, audio_producer=producer, settings=settings, worker_id="worker-test", clock=clock)


@pytest.mark.anyio
async def test_job_without_any_content_still_becomes_ready(settings, jobs_repo, content_repo, store, now):
  await jobs_repo.create_job(make_job(now))
  processor = _processor(settings, jobs_repo, content_repo, store, Clock(now))

  result = await processor.run_tick()

  assert result.completed == ["job-1"]
  job = await jobs_repo.get_job("job-1")
  assert job.status == "ready"
  assert job.lease_owner is None
  assert len(job.script) >= settings.min_script_chars
  assert job.audio_path in store.objects
  assert job.tts_provider == "openai"
  assert job.script_cost_usd == Decimal("0.060000")
  assert job.audio_duration_seconds > 0


@pytest.mark.anyio
async def test_script_failures_back_off_then_fail(settings, jobs_repo, content_repo, store, now):
  await jobs_repo.create_job(make_job(now))
  clock = Clock(now)
  processor = _processor(settings, jobs_repo, content_repo, store, clock, model=FakeScriptModel(error=RuntimeError("boom")))

  first = await processor.run_tick()
  job = await jobs_repo.get_job("job-1")
  assert first.retried == ["job-1"]
  assert job.status == "queued"
  assert job.next_attempt_at == now + timedelta(seconds=30)
  assert "boom" in job.failure_reason

  clock.advance(seconds=10)
  assert (await processor.run_tick()).leased == []

  clock.advance(seconds=21)
  assert (await processor.run_tick()).retried == ["job-1"]
  assert (await jobs_repo.get_job("job-1")).next_attempt_at == clock.current + timedelta(seconds=120)

  clock.advance(seconds=121)
  final = await processor.run_tick()
  job = await jobs_repo.get_job("job-1")
  assert final.failed == ["job-1"]
  assert job.status == "failed"
  assert job.failure_stage == "script"
  assert job.script_attempts == 3


@pytest.mark.anyio
async def test_retry_past_deadline_is_failed_missed(settings, jobs_repo, content_repo, store, now):
  await jobs_repo.create_job(make_job(now, latest_completion_at=now + timedelta(minutes=1)))
  processor = _processor(replace(settings, retry_base_seconds=120), jobs_repo, content_repo, store, Clock(now), model=FakeScriptModel(error=RuntimeError("boom")))

  result = await processor.run_tick()

  job = await jobs_repo.get_job("job-1")
  assert result.failed == ["job-1"]
  assert job.status == "failed_missed"
  assert job.failure_stage == "deadline"


@pytest.mark.anyio
async def test_audio_retry_reuses_the_stored_script(settings, jobs_repo, content_repo, store, now):
  await jobs_repo.create_job(make_job(now))
  outage = {"down": True}
  model = FakeScriptModel("Good morning.")
  clock = Clock(now)
  processor = _processor(settings, jobs_repo, content_repo, store, clock, model=model, providers=[FakeSpeechProvider("openai", fail_when=lambda text: outage["down"])])

  assert (await processor.run_tick()).retried == ["job-1"]
  job = await jobs_repo.get_job("job-1")
  assert job.status == "script_ready"
  assert job.script
  assert job.audio_attempts == 1

  outage["down"] = False
  clock.advance(seconds=31)
  assert (await processor.run_tick()).completed == ["job-1"]
  job = await jobs_repo.get_job("job-1")
  assert job.status == "ready"
  assert job.script_attempts == 1
  assert len(model.prompts) == 1


@pytest.mark.anyio
async def test_tick_marks_overdue_jobs_missed(settings, jobs_repo, content_repo, store, now):
  await jobs_repo.create_job(make_job(now, latest_completion_at=now - timedelta(seconds=1)))

  result = await _processor(settings, jobs_repo, content_repo, store, Clock(now)).run_tick()

  assert result.missed == ["job-1"]
  assert result.leased == []
  assert (await jobs_repo.get_job("job-1")).status == "failed_missed"


@pytest.mark.anyio
async def test_abandoned_lease_over_attempt_limit_fails(settings, jobs_repo, content_repo, store, now):
  await jobs_repo.create_job(make_job(now, status="script_processing", script_attempts=3, lease_owner="crashed-worker", lease_until=now - timedelta(seconds=1)))

  result = await _processor(settings, jobs_repo, content_repo, store, Clock(now)).run_tick()

  job = await jobs_repo.get_job("job-1")
  assert result.failed == ["job-1"]
  assert job.status == "failed"
  assert job.failure_reason == "script exceeded 3 attempts"


@pytest.mark.anyio
async def test_segmented_job_falls_back_to_single_file(settings, jobs_repo, content_repo, store, now):
  await jobs_repo.create_job(make_job(now, segmented=True, segment_count=3))
  # Segments are short slices of the script; only the full script synthesizes.
  provider = FakeSpeechProvider("openai", fail_when=lambda text: len(text) < settings.min_script_chars)
  processor = _processor(replace(settings, segmented_audio_enabled=True), jobs_repo, content_repo, store, Clock(now), providers=[provider])

  assert (await processor.run_tick()).completed == ["job-1"]
  job = await jobs_repo.get_job("job-1")
  assert job.segment_fallback is True
  assert job.segments_ready == 0
  assert job.audio_path == "user-1/2026-10-19/job-1.mp3"


class _CountingProcessor:
  def __init__(self, *, fail: bool = False) -> None:
    self.calls = 0
    self.fail = fail

  async def run_tick(self) -> TickResult:
    self.calls += 1
    if self.fail:
      raise RuntimeError("database unavailable")
    return TickResult(worker_id="w")


@pytest.mark.anyio
async def test_runner_survives_failing_ticks():
  processor = _CountingProcessor(fail=True)

  ticks = await run_forever(processor, interval_seconds=0.01, stop=asyncio.Event(), max_ticks=3)

  assert ticks == 3
  assert processor.calls == 3


@pytest.mark.anyio
async def test_runner_stops_when_signalled():
  processor = _CountingProcessor()
  stop = asyncio.Event()
  stop.set()

  assert await run_forever(processor, interval_seconds=0.01, stop=stop) == 0
  assert processor.calls == 0
