"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import asyncio
import io
import logging
import random
import wave
from typing import Final

from google import genai
from google.genai import types

from daystart.ai.providers.base import ModelResponse, ScriptModel, SimpleModelResponse, SpeechProvider

logger = logging.getLogger(__name__)


class GeminiScriptModel(ScriptModel):
  """Gemini client used for script generation."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"

  def __init__(self, api_key: str | None, model: str | None = None, client: genai.Client | None = None) -> None:
    if client is None and not api_key:
      raise ValueError("DAYSTART_GEMINI_API_KEY is required for the gemini script provider")
    self.name: str = model or self._DEFAULT_MODEL
    self._client = client or genai.Client(api_key=api_key)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> ModelResponse:
    """Generate text response from Gemini."""
    config = types.GenerateContentConfig(system_instruction=system, max_output_tokens=max_tokens, temperature=0.7)
    # Use the async client to avoid blocking the asyncio event loop.
    response = await _with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt, config=config)

    logger.debug("Gemini response:\n%s", response.text)
    usage = None
    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count or 0, "completion_tokens": response.usage_metadata.candidates_token_count or 0, "total_tokens": response.usage_metadata.total_token_count or 0}
    return SimpleModelResponse(content=response.text or "", usage=usage)


class GeminiSpeechProvider(SpeechProvider):
  """Gemini native text-to-speech; raw PCM output is wrapped as WAV."""

  content_type = "audio/wav"
  file_extension = "wav"

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash-preview-tts"
  _VOICES: Final[dict[str, str]] = {"voice1": "Kore", "voice2": "Aoede", "voice3": "Charon"}
  _SAMPLE_RATE: Final[int] = 24000

  def __init__(self, api_key: str | None, model: str | None = None, client: genai.Client | None = None) -> None:
    if client is None and not api_key:
      raise ValueError("DAYSTART_GEMINI_API_KEY is required for the gemini speech provider")
    self.name: str = "gemini"
    self._model = model or self._DEFAULT_MODEL
    self._client = client or genai.Client(api_key=api_key)

  async def synthesize(self, text: str, voice: str) -> bytes:
    """Generate speech audio from text using Gemini."""
    voice_name = self._VOICES.get(voice.lower(), self._VOICES["voice1"])
    config = types.GenerateContentConfig(
      response_modalities=["AUDIO"],
      speech_config=types.SpeechConfig(voice_config=types.VoiceConfig(prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice_name))),
    )
    response = await _with_backoff(self._client.aio.models.generate_content, model=self._model, contents=f"Read the following morning briefing warmly and naturally:\n\n{text}", config=config)

    for candidate in response.candidates or []:
      for part in (candidate.content.parts if candidate.content else None) or []:
        if part.inline_data and part.inline_data.data:
          return _pcm_to_wav(part.inline_data.data, sample_rate=self._SAMPLE_RATE)

    raise RuntimeError("No audio data received from Gemini.")


def _pcm_to_wav(pcm: bytes, *, sample_rate: int) -> bytes:
  buffer = io.BytesIO()
  with wave.open(buffer, "wb") as wav:
    wav.setnchannels(1)
    wav.setsampwidth(2)
    wav.setframerate(sample_rate)
    wav.writeframes(pcm)
  return buffer.getvalue()


async def _with_backoff(func, *args, **kwargs):
  retries = 3
  base_delay = 1
  for i in range(retries):
    try:
      return await func(*args, **kwargs)
    except Exception as e:
      # Only rate limiting is retried here; everything else is a stage failure.
      if "429" in str(e) or "RESOURCE_EXHAUSTED" in str(e):
        if i == retries - 1:
          raise
        delay = base_delay * (2**i) + random.uniform(0, 1)
        logger.warning("Gemini rate limited, retrying in %.1fs", delay)
        await asyncio.sleep(delay)
      else:
        raise
  return await func(*args, **kwargs)
