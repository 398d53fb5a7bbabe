"""Core message dataclass used across ingestion, classification and briefings."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class MessageType(str, Enum):
    EMAIL = "email"
    CHAT = "chat"
    CHANNEL = "channel"


class Priority(str, Enum):
    CRITICAL = "critical"
    ACTION = "action"
    INFO = "info"


@dataclass
class Sender:
    name: str = "Unknown"
    email: str = ""

    @property
    def display(self) -> str:
        return self.name or self.email or "Unknown"


@dataclass
class Attachment:
    filename: str
    mime_type: str = ""
    size: int = 0


@dataclass
class Message:
    """One ingested communication item.

    `source_id` is the provider's stable id and the only deduplication key.
    Content is immutable once ingested; only `priority` and `read` change.
    """

    source_id: str
    type: MessageType
    content: str
    timestamp: datetime
    sender: Sender = field(default_factory=Sender)
    priority: Optional[Priority] = None
    read: bool = False
    subject: str = ""
    channel: str = ""
    recipients: list[str] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    mentions: bool = False

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)

    def with_priority(self, priority: Priority) -> "Message":
        return replace(self, priority=priority)

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict (inverse of `from_document`)."""
        return {
            "source_id": self.source_id,
            "type": self.type.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "sender": {"name": self.sender.name, "email": self.sender.email},
            "priority": self.priority.value if self.priority else None,
            "read": self.read,
            "subject": self.subject,
            "channel": self.channel,
            "recipients": list(self.recipients),
            "attachments": [
                {"filename": a.filename, "mime_type": a.mime_type, "size": a.size}
                for a in self.attachments
            ],
            "mentions": self.mentions,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Message":
        sender_raw = doc.get("sender") or {}
        if isinstance(sender_raw, str):
            sender = Sender(name=sender_raw)
        else:
            sender = Sender(
                name=sender_raw.get("name") or "Unknown",
                email=sender_raw.get("email") or "",
            )

        priority_raw = doc.get("priority")
        priority = Priority(priority_raw.lower()) if priority_raw else None

        return cls(
            source_id=str(doc["source_id"]),
            type=MessageType(doc.get("type", "email")),
            content=doc.get("content") or "",
            timestamp=parse_timestamp(doc.get("timestamp")),
            sender=sender,
            priority=priority,
            read=bool(doc.get("read", False)),
            subject=doc.get("subject") or "",
            channel=doc.get("channel") or "",
            recipients=list(doc.get("recipients") or []),
            attachments=[
                Attachment(
                    filename=a.get("filename", ""),
                    mime_type=a.get("mime_type", ""),
                    size=int(a.get("size", 0) or 0),
                )
                for a in doc.get("attachments") or []
            ],
            mentions=bool(doc.get("mentions", False)),
        )


def parse_timestamp(value: Any) -> datetime:
    """Coerce an ISO string, epoch seconds or datetime into an aware datetime.

    Naive values are assumed to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
