"""Tests for Slack message conversion and file loading."""

import json

from flowsync.sources.base import MessageType
from flowsync.sources.files import load_messages
from flowsync.sources.slack import message_from_slack


class TestMessageFromSlack:
    def test_channel_post_with_mention(self):
        raw = {"user": "U1", "text": "<@UBOT> can you check the deploy? cc <@U2>", "ts": "1772615700.000100"}

        message = message_from_slack(raw, "C9", "eng", {"U1": "ana", "U2": "raj"}, self_user_id="UBOT")

        assert message.source_id == "slack:C9:1772615700.000100"
        assert message.type == MessageType.CHANNEL
        assert message.channel == "eng"
        assert message.sender.name == "ana"
        assert message.mentions is True
        assert "@raj" in message.content

    def test_direct_message(self):
        raw = {"user": "U3", "text": "ping", "ts": "1772615700.0"}

        message = message_from_slack(raw, "D1", "D1", {}, is_direct=True)

        assert message.type == MessageType.CHAT
        assert message.channel == ""
        assert message.sender.name == "U3"
        assert message.mentions is False


class TestLoadMessages:
    def test_skips_bad_entries(self, tmp_path):
        path = tmp_path / "inbox.json"
        path.write_text(json.dumps({"messages": [
            {"source_id": "m1", "type": "email", "content": "Hi", "timestamp": "2026-03-04T09:00:00Z",
             "sender": {"name": "Jane", "email": "jane@example.com"}, "subject": "Hello"},
            {"source_id": "m2", "type": "fax", "content": "?", "timestamp": "2026-03-04T09:00:00Z"},
            {"type": "chat", "content": "no id"},
            {"source_id": "m3", "type": "chat", "content": "Yo", "timestamp": 1772615700,
             "sender": "Raj", "priority": "ACTION"},
        ]}))

        messages = load_messages(path)

        assert [m.source_id for m in messages] == ["m1", "m3"]
        assert messages[1].sender.name == "Raj"
        assert messages[1].priority.value == "action"

    def test_document_round_trip(self, tmp_path, make_message):
        original = make_message("m1", priority="critical", subject="x", recipients=["a@b.c"])
        path = tmp_path / "one.json"
        path.write_text(json.dumps([original.to_document()]))

        assert load_messages(path) == [original]
