"""Slack message reader. Fetches recent channel and DM messages via the Slack API.

Uses a bot token stored in Keychain or environment. Channel posts become
`channel` messages, direct messages become `chat` messages.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from flowsync.config import get_api_key
from flowsync.sources.base import Message, MessageType, Sender

logger = logging.getLogger(__name__)

SKIPPED_SUBTYPES = ("channel_join", "channel_leave", "bot_message")


def check_slack_available() -> tuple[bool, str]:
    """Check if Slack token is configured."""
    token = get_api_key("SLACK_BOT_TOKEN", "slack")
    if not token:
        return False, (
            "Slack token not found. Either:\n"
            "  1. Run: flowsync set-key slack\n"
            "  2. Or:  export SLACK_BOT_TOKEN='xoxb-...'"
        )
    return True, "Slack token found"


def message_from_slack(
    raw: dict,
    channel_id: str,
    channel_name: str,
    user_map: Dict[str, str],
    is_direct: bool = False,
    self_user_id: Optional[str] = None,
) -> Message:
    """Convert one `conversations.history` entry into a Message."""
    user_id = raw.get("user", "unknown")
    text = raw.get("text", "")
    ts = raw.get("ts", "0")

    mentions = bool(self_user_id) and f"<@{self_user_id}>" in text
    for uid, uname in user_map.items():
        text = text.replace(f"<@{uid}>", f"@{uname}")

    return Message(
        source_id=f"slack:{channel_id}:{ts}",
        type=MessageType.CHAT if is_direct else MessageType.CHANNEL,
        content=text,
        timestamp=datetime.fromtimestamp(float(ts), tz=timezone.utc),
        sender=Sender(name=user_map.get(user_id, user_id)),
        channel="" if is_direct else channel_name,
        mentions=mentions,
    )


def _get_user_map(client) -> Dict[str, str]:
    """Build user ID -> display name map."""
    user_map = {}
    try:
        resp = client.users_list()
        if resp["ok"]:
            for member in resp["members"]:
                profile = member.get("profile", {})
                user_map[member["id"]] = (
                    profile.get("display_name")
                    or profile.get("real_name")
                    or member.get("name", member["id"])
                )
    except Exception as exc:
        logger.warning("Failed to fetch Slack users: %s", exc)

    return user_map


def _get_conversations(client, types: str = "public_channel,private_channel,im") -> List[Dict]:
    """List conversations the bot is a member of."""
    conversations = []
    try:
        cursor = None
        while True:
            kwargs = {"types": types, "limit": 200, "exclude_archived": True}
            if cursor:
                kwargs["cursor"] = cursor

            resp = client.conversations_list(**kwargs)
            if not resp["ok"]:
                break

            for ch in resp["channels"]:
                if ch.get("is_im") or ch.get("is_member", False):
                    conversations.append(ch)

            cursor = resp.get("response_metadata", {}).get("next_cursor")
            if not cursor:
                break

    except Exception as exc:
        logger.warning("Failed to list Slack conversations: %s", exc)

    return conversations


def read_recent_slack_messages(hours: int = 12, limit: int = 50) -> List[Message]:
    """Read recent Slack messages, newest first.

    Args:
        hours: Look back this many hours.
        limit: Max messages per conversation.
    """
    try:
        from slack_sdk import WebClient
        from slack_sdk.errors import SlackApiError
    except ImportError:
        logger.error("Install slack-sdk: pip install 'flowsync[slack]'")
        return []

    token = get_api_key("SLACK_BOT_TOKEN", "slack")
    if not token:
        logger.error("No Slack token available")
        return []

    client = WebClient(token=token)
    user_map = _get_user_map(client)
    try:
        self_user_id = client.auth_test().get("user_id")
    except SlackApiError as exc:
        logger.warning("Slack auth.test failed: %s", exc.response["error"])
        self_user_id = None

    oldest = str((datetime.now(timezone.utc) - timedelta(hours=hours)).timestamp())
    messages = []

    for conv in _get_conversations(client):
        conv_id = conv["id"]
        conv_name = conv.get("name", conv_id)
        is_direct = bool(conv.get("is_im"))

        try:
            resp = client.conversations_history(channel=conv_id, oldest=oldest, limit=limit)
            if not resp["ok"]:
                continue

            for raw in resp["messages"]:
                if raw.get("subtype", "") in SKIPPED_SUBTYPES:
                    continue
                messages.append(message_from_slack(
                    raw, conv_id, conv_name, user_map,
                    is_direct=is_direct, self_user_id=self_user_id,
                ))

        except SlackApiError as exc:
            logger.warning("Failed to read %s: %s", conv_name, exc.response["error"])

    messages.sort(key=lambda m: m.timestamp, reverse=True)
    return messages
