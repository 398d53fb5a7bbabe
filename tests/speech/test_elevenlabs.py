"""Tests for the ElevenLabs speech client."""

from unittest.mock import MagicMock

import pytest
import requests

from flowsync.speech.elevenlabs import DEFAULT_VOICE_ID, SpeechClient, SynthesisError, VoiceSettings


def _session(status=200, content=b"ID3audio", exc=None):
    session = MagicMock(spec=requests.Session)
    if exc is not None:
        session.post.side_effect = exc
    else:
        resp = MagicMock()
        resp.status_code = status
        resp.content = content
        resp.text = "error body"
        session.post.return_value = resp
    return session


class TestSpeechClient:
    def test_posts_voice_settings(self):
        session = _session()
        client = SpeechClient("key-123", session=session)

        assert client.synthesize("Good morning.") == b"ID3audio"

        args, kwargs = session.post.call_args
        assert args[0] == f"https://api.elevenlabs.io/v1/text-to-speech/{DEFAULT_VOICE_ID}"
        assert kwargs["headers"]["xi-api-key"] == "key-123"
        assert kwargs["json"] == {
            "text": "Good morning.",
            "model_id": "eleven_multilingual_v2",
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75, "speed": 1.2},
        }

    def test_custom_voice(self):
        session = _session()
        client = SpeechClient("k", voice_id="v42", settings=VoiceSettings(0.3, 0.9, 1.0), session=session)
        client.synthesize("Hello.")

        args, kwargs = session.post.call_args
        assert args[0].endswith("/text-to-speech/v42")
        assert kwargs["json"]["voice_settings"] == {"stability": 0.3, "similarity_boost": 0.9, "speed": 1.0}

    def test_http_error(self):
        client = SpeechClient("k", session=_session(status=401))
        with pytest.raises(SynthesisError, match="401"):
            client.synthesize("Hello.")

    def test_transport_error(self):
        client = SpeechClient("k", session=_session(exc=requests.ConnectionError("refused")))
        with pytest.raises(SynthesisError):
            client.synthesize("Hello.")

    def test_empty_audio(self):
        client = SpeechClient("k", session=_session(content=b""))
        with pytest.raises(SynthesisError):
            client.synthesize("Hello.")

    def test_empty_text_not_sent(self):
        session = _session()
        with pytest.raises(SynthesisError):
            SpeechClient("k", session=session).synthesize("   ")
        session.post.assert_not_called()

    def test_missing_key(self):
        with pytest.raises(ValueError, match="ElevenLabs"):
            SpeechClient(None)
