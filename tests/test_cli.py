"""Tests for the click entry points."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from click.testing import CliRunner

from flowsync.main import cli
from flowsync.sources.base import Message, MessageType, Priority, Sender
from flowsync.store.documents import DocumentStore
from tests.conftest import FakeLLM


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWSYNC_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("FLOWSYNC_OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("FLOWSYNC_SUBSCRIBER_DELAY_SECONDS", "0")
    return tmp_path


def _fake_llm(system_prompt, user_message):
    if "message classifier" in system_prompt:
        return '{"label": "CRITICAL", "reasoning": "outage"}'
    if "isGenerateTask" in system_prompt:
        return '{"isGenerateTask": true, "generateTask": {"isMultiple": false, "task": {"title": "Fix outage"}}}'
    raise RuntimeError("no briefing model in tests")


def test_process_brief_tasks_status(env, monkeypatch):
    monkeypatch.setattr("flowsync.cli.pipeline_cmd._build_llm", lambda settings: FakeLLM(_fake_llm))
    inbox = env / "inbox.json"
    inbox.write_text(json.dumps([
        {"source_id": "m1", "type": "email", "content": "Payment outage, fix now.",
         "timestamp": "2099-01-01T00:00:00Z", "subject": "Outage"},
    ]))
    runner = CliRunner()

    result = runner.invoke(cli, ["process", "alice", "--input", str(inbox)])
    assert result.exit_code == 0, result.output
    assert "Stored 1 messages, 1 tasks" in result.output

    result = runner.invoke(cli, ["brief", "alice", "--text-only", "--hours", "1000000"])
    assert result.exit_code == 0, result.output
    assert "Payment outage, fix now." in result.output
    assert list((env / "out").glob("briefing_alice_*.txt"))

    result = runner.invoke(cli, ["tasks", "alice"])
    assert result.exit_code == 0
    assert "Fix outage" in result.output

    result = runner.invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "alice" in result.output

    store = DocumentStore(env / "cli.db")
    assert store.get_message("alice", "m1").priority.value == "critical"
    store.close()


def test_process_requires_one_source(env):
    result = CliRunner().invoke(cli, ["process", "alice"])
    assert result.exit_code != 0
    assert "exactly one" in result.output


def test_brief_without_subscribers(env, monkeypatch):
    monkeypatch.setattr("flowsync.cli.pipeline_cmd._build_llm", lambda settings: FakeLLM("unused"))
    result = CliRunner().invoke(cli, ["brief", "--text-only"])
    assert result.exit_code == 0
    assert "No subscribers found" in result.output


def test_brief_text_only_without_completion_key(env, monkeypatch):
    monkeypatch.setattr("flowsync.llm.client.get_api_key", lambda env_var, account: None)
    store = DocumentStore(env / "cli.db")
    batch = store.batch()
    batch.set_message("alice", Message(
        source_id="m1",
        type=MessageType.EMAIL,
        content="URGENT: fix payment outage now.",
        timestamp=datetime.now(timezone.utc) - timedelta(minutes=5),
        sender=Sender(name="Dana Reyes", email="dana@example.com"),
        priority=Priority.CRITICAL,
        subject="Outage",
    ))
    batch.commit()
    store.close()

    result = CliRunner().invoke(cli, ["brief", "alice", "--text-only", "--hours", "24"])

    assert result.exit_code == 0, result.output
    assert "URGENT: fix payment outage now." in result.output
    assert "template" in result.output
    assert list((env / "out").glob("briefing_alice_*.txt"))
