"""OpenAI provider implementation using the openai SDK."""

from __future__ import annotations

import logging
from typing import Final

from openai import AsyncOpenAI

from daystart.ai.providers.base import ModelResponse, ScriptModel, SimpleModelResponse, SpeechProvider

logger = logging.getLogger(__name__)


class OpenAIScriptModel(ScriptModel):
  """Chat completion client used for script generation."""

  _DEFAULT_MODEL: Final[str] = "gpt-4o"

  def __init__(self, api_key: str | None, model: str | None = None, client: AsyncOpenAI | None = None) -> None:
    if client is None and not api_key:
      raise ValueError("DAYSTART_OPENAI_API_KEY is required for the openai script provider")
    self.name: str = model or self._DEFAULT_MODEL
    self._client = client or AsyncOpenAI(api_key=api_key)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> ModelResponse:
    """Generate text response from OpenAI."""
    messages = []
    if system:
      messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    response = await self._client.chat.completions.create(model=self.name, messages=messages, max_tokens=max_tokens, temperature=0.7)

    content = response.choices[0].message.content or ""
    logger.debug("OpenAI response:\n%s", content)
    usage = None
    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}
    return SimpleModelResponse(content=content, usage=usage)


class OpenAISpeechProvider(SpeechProvider):
  """OpenAI text-to-speech backend."""

  _VOICES: Final[dict[str, str]] = {"voice1": "nova", "voice2": "shimmer", "voice3": "onyx"}

  def __init__(self, api_key: str | None, model: str = "tts-1", client: AsyncOpenAI | None = None) -> None:
    if client is None and not api_key:
      raise ValueError("DAYSTART_OPENAI_API_KEY is required for the openai speech provider")
    self.name: str = "openai"
    self._model = model
    self._client = client or AsyncOpenAI(api_key=api_key)

  async def synthesize(self, text: str, voice: str) -> bytes:
    voice_name = self._VOICES.get(voice.lower(), self._VOICES["voice1"])
    response = await self._client.audio.speech.create(model=self._model, voice=voice_name, input=text, response_format="mp3")
    return response.content
