"""Tests for the completion client wrapper (no network)."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from flowsync.llm.client import CompletionError, LLMClient


def _gemini_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


@pytest.fixture
def gemini():
    client = LLMClient(provider="gemini", api_key="test-key")
    client._gemini_client = MagicMock()
    return client


class TestLLMClient:
    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unsupported provider"):
            LLMClient(provider="bard", api_key="x")

    def test_missing_key(self, monkeypatch):
        monkeypatch.setattr("flowsync.llm.client.get_api_key", lambda env_var, account: None)
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            LLMClient(provider="gemini")

    def test_gemini_text_skips_thoughts(self, gemini):
        gemini._gemini_client.models.generate_content.return_value = _gemini_response(
            SimpleNamespace(text="pondering", thought=True),
            SimpleNamespace(text='{"label": "INFO"}', thought=False),
        )

        assert gemini.run("sys", "user", temperature=0.0, max_output_tokens=100) == '{"label": "INFO"}'

        kwargs = gemini._gemini_client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert kwargs["contents"] == "user"
        assert kwargs["config"].system_instruction == "sys"
        assert kwargs["config"].temperature == 0.0
        assert kwargs["config"].max_output_tokens == 100

    def test_provider_error_wrapped(self, gemini):
        gemini._gemini_client.models.generate_content.side_effect = RuntimeError("429 quota")
        with pytest.raises(CompletionError, match="429 quota"):
            gemini.run("sys", "user")

    def test_empty_response(self, gemini):
        gemini._gemini_client.models.generate_content.return_value = _gemini_response()
        with pytest.raises(CompletionError, match="empty"):
            gemini.run("sys", "user")
