"""ElevenLabs text-to-speech over its REST API."""

from __future__ import annotations

from typing import Final

import httpx

from daystart.ai.providers.base import SpeechProvider

_VOICE_IDS: Final[dict[str, str]] = {
  "voice1": "pNInz6obpgDQGcFmaJgB",
  "voice2": "21m00Tcm4TlvDq8ikWAM",
  "voice3": "ErXwobaYiN019PkySvjV",
  # Display names are accepted too.
  "grace": "pNInz6obpgDQGcFmaJgB",
  "rachel": "21m00Tcm4TlvDq8ikWAM",
  "matthew": "ErXwobaYiN019PkySvjV",
}


class ElevenLabsSpeechProvider(SpeechProvider):
  """Primary speech backend."""

  _BASE_URL: Final[str] = "https://api.elevenlabs.io/v1/text-to-speech"

  def __init__(self, api_key: str | None, model_id: str = "eleven_turbo_v2_5", client: httpx.AsyncClient | None = None) -> None:
    if not api_key:
      raise ValueError("DAYSTART_ELEVENLABS_API_KEY is required for the elevenlabs speech provider")
    self.name: str = "elevenlabs"
    self._api_key = api_key
    self._model_id = model_id
    self._client = client

  async def synthesize(self, text: str, voice: str) -> bytes:
    voice_id = _VOICE_IDS.get(voice.lower(), _VOICE_IDS["voice1"])
    headers = {"Accept": "audio/mpeg", "Content-Type": "application/json", "xi-api-key": self._api_key}
    body = {"text": text, "model_id": self._model_id, "voice_settings": {"stability": 0.5, "similarity_boost": 0.7, "style": 0.3, "use_speaker_boost": True}}
    url = f"{self._BASE_URL}/{voice_id}"

    if self._client is not None:
      response = await self._client.post(url, json=body, headers=headers)
    else:
      async with httpx.AsyncClient(timeout=120.0) as client:
        response = await client.post(url, json=body, headers=headers)

    if response.status_code >= 400:
      raise RuntimeError(f"ElevenLabs API error: {response.status_code} - {response.text[:200]}")
    return response.content
