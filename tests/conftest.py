"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest

from flowsync.llm.client import CompletionError
from flowsync.sources.base import Message, MessageType, Priority, Sender
from flowsync.store.documents import DocumentStore

NOW = datetime(2026, 3, 4, 9, 30, tzinfo=timezone.utc)


class FakeLLM:
    """Scripted completion client.

    Each call consumes the next response; the last one repeats. A response
    may be a string, an exception (raised), or a callable
    (system_prompt, user_message) -> str.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def run(self, system_prompt, user_message, temperature=None, max_output_tokens=1024):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_message": user_message,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        })
        if not self.responses:
            raise CompletionError("no scripted response")
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(system_prompt, user_message)
        return response


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    """Keep tests away from real keys."""
    for var in ("GEMINI_API_KEY", "ANTHROPIC_API_KEY", "ELEVENLABS_API_KEY", "SLACK_BOT_TOKEN"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(tmp_path / "flowsync.db")
    yield s
    s.close()


@pytest.fixture
def make_message():
    counter = {"n": 0}

    def _make(
        source_id=None,
        content="Please send the Q3 numbers.",
        priority=None,
        timestamp=NOW,
        type=MessageType.EMAIL,
        sender=None,
        **kwargs,
    ):
        counter["n"] += 1
        return Message(
            source_id=source_id or f"msg-{counter['n']}",
            type=type,
            content=content,
            timestamp=timestamp,
            sender=sender or Sender(name="Dana Reyes", email="dana@example.com"),
            priority=Priority(priority) if isinstance(priority, str) else priority,
            **kwargs,
        )

    return _make
