"""Errors raised by the generation stages."""

from __future__ import annotations


class ScriptGenerationError(RuntimeError):
  """Raised when the script model fails or returns unusable output."""


class SynthesisError(RuntimeError):
  """Raised when every speech provider failed for a text."""

  def __init__(self, message: str, *, attempts: list[tuple[str, str]] | None = None) -> None:
    super().__init__(message)
    self.attempts = attempts or []


class StageTimeoutError(TimeoutError):
  """Raised when a provider call exceeds its hard timeout."""

  def __init__(self, stage: str, timeout_seconds: float) -> None:
    super().__init__(f"{stage} timed out after {timeout_seconds:g}s")
    self.stage = stage
    self.timeout_seconds = timeout_seconds


def failure_reason(exc: BaseException) -> str:
  """Readable, bounded reason stored on the job."""
  message = str(exc).strip() or type(exc).__name__
  return message[:500]
