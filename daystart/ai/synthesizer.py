"""Text-to-speech with ordered provider fallback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from daystart.ai.errors import StageTimeoutError, SynthesisError
from daystart.ai.providers.base import SpeechProvider

logger = logging.getLogger(__name__)

_COST_PER_THOUSAND_CHARS = Decimal("0.10")
_CHARS_PER_SECOND = 15


@dataclass(frozen=True)
class AudioArtifact:
  data: bytes
  content_type: str
  file_extension: str
  provider: str
  characters: int

  @property
  def cost_usd(self) -> Decimal:
    return tts_cost(self.characters)

  @property
  def estimated_duration_seconds(self) -> int:
    return estimate_duration_seconds(self.characters)


def tts_cost(characters: int) -> Decimal:
  return (Decimal(characters) / Decimal(1000) * _COST_PER_THOUSAND_CHARS).quantize(Decimal("0.00001"), rounding=ROUND_HALF_UP)


def estimate_duration_seconds(characters: int) -> int:
  return -(-characters // _CHARS_PER_SECOND)


class AudioSynthesizer:
  """Try each provider in order; a timeout fails the attempt instead of falling through."""

  def __init__(self, providers: list[SpeechProvider], *, timeout_seconds: float) -> None:
    if not providers:
      raise ValueError("AudioSynthesizer needs at least one speech provider")
    self._providers = providers
    self._timeout_seconds = timeout_seconds

  async def synthesize(self, text: str, voice: str) -> AudioArtifact:
    if not text.strip():
      raise SynthesisError("Nothing to synthesize")

    attempts: list[tuple[str, str]] = []
    for provider in self._providers:
      try:
        data = await asyncio.wait_for(provider.synthesize(text, voice), timeout=self._timeout_seconds)
      except asyncio.TimeoutError as exc:
        logger.warning("Speech provider %s timed out after %ss", provider.name, self._timeout_seconds)
        raise StageTimeoutError("audio", self._timeout_seconds) from exc
      except Exception as exc:  # noqa: BLE001
        logger.warning("Speech provider %s failed, trying next: %s", provider.name, exc)
        attempts.append((provider.name, str(exc) or type(exc).__name__))
        continue

      if not data:
        attempts.append((provider.name, "empty audio"))
        logger.warning("Speech provider %s returned no audio, trying next", provider.name)
        continue
      if attempts:
        logger.info("Speech fell back to %s after %s failure(s)", provider.name, len(attempts))
      return AudioArtifact(data=data, content_type=provider.content_type, file_extension=provider.file_extension, provider=provider.name, characters=len(text))

    summary = "; ".join(f"{name}: {error}" for name, error in attempts)
    raise SynthesisError(f"All speech providers failed ({summary})", attempts=attempts)
