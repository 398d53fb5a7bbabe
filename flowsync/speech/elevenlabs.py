"""ElevenLabs text-to-speech: script text in, MP3 bytes out.

No retries and no degraded output: any failure raises SynthesisError so the
caller never ships empty or partial audio.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)

API_BASE = "https://api.elevenlabs.io/v1"
DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"
DEFAULT_MODEL_ID = "eleven_multilingual_v2"
REQUEST_TIMEOUT = 120


class SynthesisError(RuntimeError):
    """Speech synthesis failed; no audio was produced."""


@dataclass(frozen=True)
class VoiceSettings:
    stability: float = 0.5
    similarity_boost: float = 0.75
    speed: float = 1.2


class SpeechClient:
    """Thin client for the ElevenLabs text-to-speech endpoint.

    Args:
        api_key: ElevenLabs key (sent as the xi-api-key header).
        voice_id: Voice to render with.
        settings: Fixed voice configuration sent with every request.
        session: Optional requests.Session (tests inject a mock).
    """

    def __init__(
        self,
        api_key: str,
        voice_id: str = DEFAULT_VOICE_ID,
        settings: Optional[VoiceSettings] = None,
        session: Optional[requests.Session] = None,
        model_id: str = DEFAULT_MODEL_ID,
    ):
        if not api_key:
            raise ValueError(
                "No ElevenLabs API key found. Set ELEVENLABS_API_KEY or run: "
                "flowsync set-key elevenlabs"
            )
        self.api_key = api_key
        self.voice_id = voice_id
        self.settings = settings or VoiceSettings()
        self.model_id = model_id
        self.session = session or requests.Session()

    def synthesize(self, text: str) -> bytes:
        if not text or not text.strip():
            raise SynthesisError("refusing to synthesize empty text")

        url = f"{API_BASE}/text-to-speech/{self.voice_id}"
        try:
            resp = self.session.post(
                url,
                headers={
                    "xi-api-key": self.api_key,
                    "Content-Type": "application/json",
                    "Accept": "audio/mpeg",
                },
                json={
                    "text": text,
                    "model_id": self.model_id,
                    "voice_settings": asdict(self.settings),
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise SynthesisError(f"speech request failed: {exc}") from exc

        if resp.status_code != 200:
            logger.error("ElevenLabs TTS failed: %s %s", resp.status_code, resp.text[:200])
            raise SynthesisError(f"speech service returned HTTP {resp.status_code}")

        audio = resp.content
        if not audio:
            raise SynthesisError("speech service returned no audio")

        logger.debug("Synthesized %d chars into %d bytes of audio", len(text), len(audio))
        return audio
