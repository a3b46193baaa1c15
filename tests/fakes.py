"""Test doubles for providers, sources and the clock."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from daystart.ai.providers.base import ScriptModel, SimpleModelResponse, SpeechProvider
from daystart.jobs.models import JobPreferences, JobRecord

TASK_SECRET = "test-task-secret"


class FakeScriptModel(ScriptModel):
  name = "fake-script"

  def __init__(self, content: str = "Good morning. Here is your briefing.", *, error: Exception | None = None, delay: float = 0.0) -> None:
    self.content = content
    self.error = error
    self.delay = delay
    self.prompts: list[str] = []
    self.max_tokens: list[int | None] = []

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> SimpleModelResponse:
    self.prompts.append(prompt)
    self.max_tokens.append(max_tokens)
    if self.delay:
      await asyncio.sleep(self.delay)
    if self.error is not None:
      raise self.error
    return SimpleModelResponse(content=self.content, usage={"prompt_tokens": 1000, "completion_tokens": 500})


class FakeSpeechProvider(SpeechProvider):
  def __init__(self, name: str = "fake-tts", *, fail_when: Callable[[str], bool] | None = None, delay: float = 0.0, data: bytes = b"ID3-fake-audio") -> None:
    self.name = name
    self.fail_when = fail_when
    self.delay = delay
    self.data = data
    self.calls: list[tuple[str, str]] = []

  async def synthesize(self, text: str, voice: str) -> bytes:
    self.calls.append((text, voice))
    if self.delay:
      await asyncio.sleep(self.delay)
    if self.fail_when is not None and self.fail_when(text):
      raise RuntimeError(f"{self.name} unavailable")
    return self.data


class FakeSource:
  def __init__(self, name: str, content_type: str, items: list[dict[str, Any]] | None = None, *, error: Exception | None = None) -> None:
    self.name = name
    self.content_type = content_type
    self.items = items or []
    self.error = error
    self.selectors: list[str] = []

  async def fetch(self, selector: str) -> list[dict[str, Any]]:
    self.selectors.append(selector)
    if self.error is not None:
      raise self.error
    return [dict(item, selector=selector) for item in self.items]


class Clock:
  """Mutable clock handed to services that accept a clock callable."""

  def __init__(self, start: datetime) -> None:
    self.current = start

  def __call__(self) -> datetime:
    return self.current

  def advance(self, **kwargs: float) -> datetime:
    self.current += timedelta(**kwargs)
    return self.current


def make_job(now: datetime, **overrides: Any) -> JobRecord:
  """Queued job due an hour from now, processable immediately."""
  preferences = overrides.pop("preferences", None) or JobPreferences(timezone="America/New_York")
  job = JobRecord(
    job_id=overrides.pop("job_id", "job-1"),
    user_id=overrides.pop("user_id", "user-1"),
    local_date=overrides.pop("local_date", "2026-10-19"),
    status="queued",
    priority=50,
    scheduled_at=now + timedelta(hours=1),
    process_not_before=now,
    latest_completion_at=now + timedelta(hours=3),
    preferences=preferences,
    created_at=now,
    updated_at=now,
  )
  return replace(job, **overrides)
