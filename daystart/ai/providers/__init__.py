"""Provider implementations."""

from __future__ import annotations

from daystart.ai.providers.base import ModelResponse, ScriptModel, SimpleModelResponse, SpeechProvider
from daystart.config import Settings


def build_script_model(settings: Settings) -> ScriptModel:
  """Return the configured script model."""
  if settings.script_provider == "gemini":
    from daystart.ai.providers.gemini import GeminiScriptModel

    return GeminiScriptModel(settings.gemini_api_key, model=settings.script_model)

  from daystart.ai.providers.openai import OpenAIScriptModel

  return OpenAIScriptModel(settings.openai_api_key, model=settings.script_model)


def build_speech_providers(settings: Settings) -> list[SpeechProvider]:
  """Return speech providers in fallback order, skipping those without credentials."""
  providers: list[SpeechProvider] = []
  for name in settings.speech_providers:
    if name == "elevenlabs" and settings.elevenlabs_api_key:
      from daystart.ai.providers.elevenlabs import ElevenLabsSpeechProvider

      providers.append(ElevenLabsSpeechProvider(settings.elevenlabs_api_key))
    elif name == "openai" and settings.openai_api_key:
      from daystart.ai.providers.openai import OpenAISpeechProvider

      providers.append(OpenAISpeechProvider(settings.openai_api_key))
    elif name == "gemini" and settings.gemini_api_key:
      from daystart.ai.providers.gemini import GeminiSpeechProvider

      providers.append(GeminiSpeechProvider(settings.gemini_api_key))
  if not providers:
    raise ValueError("No speech provider is configured; set an API key for one of DAYSTART_SPEECH_PROVIDERS")
  return providers


__all__ = ["ModelResponse", "ScriptModel", "SimpleModelResponse", "SpeechProvider", "build_script_model", "build_speech_providers"]
