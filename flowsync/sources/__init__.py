from flowsync.sources.base import Attachment, Message, MessageType, Priority, Sender
from flowsync.sources.files import load_messages
from flowsync.sources.gmail import message_from_gmail
from flowsync.sources.slack import check_slack_available, message_from_slack, read_recent_slack_messages

__all__ = [
    "Attachment",
    "Message",
    "MessageType",
    "Priority",
    "Sender",
    "load_messages",
    "message_from_gmail",
    "check_slack_available",
    "message_from_slack",
    "read_recent_slack_messages",
]
