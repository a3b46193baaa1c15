from decimal import Decimal

import pytest

from daystart.ai.audio_strategies import SegmentedAudioStrategy, SelectingAudioProducer, SingleFileAudioStrategy, split_script
from daystart.ai.errors import StageTimeoutError, SynthesisError
from daystart.ai.synthesizer import AudioSynthesizer, estimate_duration_seconds, tts_cost
from tests.fakes import FakeSpeechProvider, make_job

SCRIPT = " ".join(f"Sentence number {index} carries a little news for the morning." for index in range(12))


class _CountingProvider(FakeSpeechProvider):
  def __init__(self) -> None:
    super().__init__("openai", delay=0.02)
    self.in_flight = 0
    self.peak = 0

  async def synthesize(self, text: str, voice: str) -> bytes:
    self.in_flight += 1
    self.peak = max(self.peak, self.in_flight)
    try:
      return await super().synthesize(text, voice)
    finally:
      self.in_flight -= 1


@pytest.mark.anyio
async def test_synthesizer_falls_back_to_next_provider():
  primary = FakeSpeechProvider("elevenlabs", fail_when=lambda text: True)
  secondary = FakeSpeechProvider("openai", data=b"mp3-bytes")

  artifact = await AudioSynthesizer([primary, secondary], timeout_seconds=5).synthesize("Hello there.", "voice2")

  assert artifact.provider == "openai"
  assert artifact.data == b"mp3-bytes"
  assert artifact.characters == len("Hello there.")
  assert primary.calls == [("Hello there.", "voice2")]


@pytest.mark.anyio
async def test_synthesizer_reports_every_failed_provider():
  providers = [FakeSpeechProvider("elevenlabs", fail_when=lambda text: True), FakeSpeechProvider("openai", data=b"")]

  with pytest.raises(SynthesisError) as excinfo:
    await AudioSynthesizer(providers, timeout_seconds=5).synthesize("Hello.", "voice1")

  assert [name for name, _ in excinfo.value.attempts] == ["elevenlabs", "openai"]


@pytest.mark.anyio
async def test_provider_timeout_fails_without_fallthrough():
  slow = FakeSpeechProvider("elevenlabs", delay=1.0)
  backup = FakeSpeechProvider("openai")

  with pytest.raises(StageTimeoutError):
    await AudioSynthesizer([slow, backup], timeout_seconds=0.05).synthesize("Hello.", "voice1")
  assert backup.calls == []


def test_cost_and_duration_estimates():
  assert tts_cost(1500) == Decimal("0.15000")
  assert estimate_duration_seconds(150) == 10
  assert estimate_duration_seconds(151) == 11


def test_split_script_keeps_sentences_whole_and_balanced():
  slices = split_script(SCRIPT, 3)

  assert len(slices) == 3
  assert " ".join(slices) == SCRIPT
  assert all(piece.endswith(".") for piece in slices)
  assert max(map(len, slices)) - min(map(len, slices)) < 80
  assert split_script("One sentence only.", 4) == ["One sentence only."]
  assert split_script("   ", 3) == []


@pytest.mark.anyio
async def test_single_file_strategy_uploads_under_job_path(store, now):
  job = make_job(now, script=SCRIPT)
  strategy = SingleFileAudioStrategy(AudioSynthesizer([FakeSpeechProvider("openai")], timeout_seconds=5), store)

  result = await strategy.produce(job)

  assert result.audio_path == "user-1/2026-10-19/job-1.mp3"
  assert result.audio_path in store.objects
  assert result.duration_seconds == estimate_duration_seconds(len(SCRIPT))


@pytest.mark.anyio
async def test_segmented_strategy_stores_each_segment(jobs_repo, store, now):
  job = await jobs_repo.create_job(make_job(now, script=SCRIPT, segmented=True, segment_count=3))
  synthesizer = AudioSynthesizer([FakeSpeechProvider("openai")], timeout_seconds=5)
  single = SingleFileAudioStrategy(synthesizer, store)
  strategy = SegmentedAudioStrategy(synthesizer, store, jobs_repo, fallback=single, max_concurrency=2)

  result = await strategy.produce(job)

  assert result.segmented is True
  assert result.audio_path is None
  assert result.segments_ready == 3
  segments = await jobs_repo.list_segments(job.job_id)
  assert [segment.audio_path for segment in segments] == [f"user-1/2026-10-19/job-1_seg{index:02d}.mp3" for index in range(3)]
  assert all(segment.status == "ready" for segment in segments)


@pytest.mark.anyio
async def test_failed_segment_falls_back_to_single_file(jobs_repo, store, now):
  job = await jobs_repo.create_job(make_job(now, script=SCRIPT, segmented=True, segment_count=3))
  # Only the last slice fails; the full script still synthesizes.
  provider = FakeSpeechProvider("openai", fail_when=lambda text: "number 11" in text and len(text) < len(SCRIPT))
  synthesizer = AudioSynthesizer([provider], timeout_seconds=5)
  strategy = SegmentedAudioStrategy(synthesizer, store, jobs_repo, fallback=SingleFileAudioStrategy(synthesizer, store), max_concurrency=3)

  result = await strategy.produce(job)

  assert result.segment_fallback is True
  assert result.segments_ready == 2
  assert result.audio_path == "user-1/2026-10-19/job-1.mp3"
  failed = [segment for segment in await jobs_repo.list_segments(job.job_id) if segment.status == "failed"]
  assert [(segment.segment_index, segment.attempts) for segment in failed] == [(2, 3)]


def test_producer_uses_segments_only_when_enabled(jobs_repo, store, now):
  synthesizer = AudioSynthesizer([FakeSpeechProvider()], timeout_seconds=5)
  single = SingleFileAudioStrategy(synthesizer, store)
  segmented = SegmentedAudioStrategy(synthesizer, store, jobs_repo, fallback=single, max_concurrency=1)
  job = make_job(now, segmented=True)

  assert SelectingAudioProducer(single, segmented, segmented_enabled=False).strategy_for(job) is single
  assert SelectingAudioProducer(single, segmented, segmented_enabled=True).strategy_for(job) is segmented
  assert SelectingAudioProducer(single, segmented, segmented_enabled=True).strategy_for(make_job(now)) is single


@pytest.mark.anyio
async def test_segment_synthesis_respects_concurrency_limit(jobs_repo, store, now):
  job = await jobs_repo.create_job(make_job(now, script=SCRIPT, segmented=True, segment_count=6))
  provider = _CountingProvider()
  synthesizer = AudioSynthesizer([provider], timeout_seconds=5)
  strategy = SegmentedAudioStrategy(synthesizer, store, jobs_repo, fallback=SingleFileAudioStrategy(synthesizer, store), max_concurrency=2)

  result = await strategy.produce(job)

  assert result.segments_ready == 6
  assert len(provider.calls) == 6
  assert provider.peak == 2
