"""Base interfaces for script and speech providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol


class ModelResponse(Protocol):
  """Response contract for model outputs."""

  content: str
  usage: dict[str, int] | None


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  usage: dict[str, int] | None = None


class ScriptModel(ABC):
  """Abstract base class for text models that write briefing scripts."""

  name: str

  @abstractmethod
  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> ModelResponse:
    """Generate a response for the given prompt."""


class SpeechProvider(ABC):
  """Abstract base class for text-to-speech backends."""

  name: str
  content_type: str = "audio/mpeg"
  file_extension: str = "mp3"

  @abstractmethod
  async def synthesize(self, text: str, voice: str) -> bytes:
    """Return encoded audio for the text spoken in the given voice option."""
