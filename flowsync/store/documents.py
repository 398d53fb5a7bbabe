"""DocumentStore: SQLite-backed store for messages, tasks and subscribers.

Writes go through a WriteBatch that commits in a single transaction with
INSERT OR IGNORE, so a stored document is never overwritten: a message that
already exists for (subscriber, source_id) stays exactly as first written.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import msgpack

from flowsync.sources.base import Attachment, Message, MessageType, Priority, Sender
from flowsync.store.schema import init_db

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised when a batch commit fails; nothing from the batch is stored."""


@dataclass
class Task:
    title: str
    description: str
    created_on: datetime
    source: str                                  # email | chat | channel | manual
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    due_date: Optional[date] = None
    priority: str = "medium"                     # high | medium | low
    completed: bool = False
    source_message_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    assigned_to: List[str] = field(default_factory=list)


def _epoch(dt: datetime) -> int:
    return int(dt.timestamp())


def _from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _message_row(subscriber_id: str, message: Message) -> tuple:
    packed = msgpack.packb({
        "recipients": list(message.recipients),
        "attachments": [[a.filename, a.mime_type, a.size] for a in message.attachments],
        "mentions": message.mentions,
    }, use_bin_type=True)
    return (
        subscriber_id,
        message.source_id,
        message.type.value,
        message.content,
        _epoch(message.timestamp),
        message.priority.value if message.priority else None,
        int(message.read),
        message.sender.name,
        message.sender.email,
        message.subject,
        message.channel,
        packed,
        int(time.time()),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    data = msgpack.unpackb(row["data"], raw=False) if row["data"] else {}
    return Message(
        source_id=row["source_id"],
        type=MessageType(row["type"]),
        content=row["content"],
        timestamp=_from_epoch(row["timestamp"]),
        sender=Sender(name=row["sender_name"] or "Unknown", email=row["sender_email"] or ""),
        priority=Priority(row["priority"]) if row["priority"] else None,
        read=bool(row["read"]),
        subject=row["subject"] or "",
        channel=row["channel"] or "",
        recipients=data.get("recipients", []),
        attachments=[Attachment(*a) for a in data.get("attachments", [])],
        mentions=bool(data.get("mentions", False)),
    )


def _task_row(subscriber_id: str, task: Task) -> tuple:
    return (
        subscriber_id,
        task.id,
        task.title,
        task.description,
        task.due_date.isoformat() if task.due_date else None,
        _epoch(task.created_on),
        task.priority,
        int(task.completed),
        task.source,
        task.source_message_id,
        json.dumps(task.tags),
        json.dumps(task.assigned_to),
    )


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
        created_on=_from_epoch(row["created_on"]),
        priority=row["priority"],
        completed=bool(row["completed"]),
        source=row["source"],
        source_message_id=row["source_message_id"],
        tags=json.loads(row["tags"]),
        assigned_to=json.loads(row["assigned_to"]),
    )


INSERT_MESSAGE_SQL = """INSERT OR IGNORE INTO messages
   (subscriber_id, source_id, type, content, timestamp, priority, read,
    sender_name, sender_email, subject, channel, data, created_at)
   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"""

INSERT_TASK_SQL = """INSERT OR IGNORE INTO tasks
   (subscriber_id, id, title, description, due_date, created_on, priority,
    completed, source, source_message_id, tags, assigned_to)
   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"""


class WriteBatch:
    """Staged writes committed together or not at all."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: list[tuple[str, str, tuple]] = []
        self.created: dict[str, int] = {"messages": 0, "tasks": 0}

    def __len__(self) -> int:
        return len(self._ops)

    def set_message(self, subscriber_id: str, message: Message) -> None:
        self._ops.append(("messages", INSERT_MESSAGE_SQL, _message_row(subscriber_id, message)))

    def set_task(self, subscriber_id: str, task: Task) -> None:
        self._ops.append(("tasks", INSERT_TASK_SQL, _task_row(subscriber_id, task)))

    def commit(self) -> int:
        """Apply all staged writes in one transaction.

        Returns the number of documents actually created (rows that already
        existed are left untouched and not counted). The per-kind split is
        left in `created`.

        Raises:
            PersistenceError: if the transaction fails; it is rolled back.
        """
        if not self._ops:
            return 0

        created = {"messages": 0, "tasks": 0}
        conn = self._store.conn
        try:
            with conn:
                for kind, sql, params in self._ops:
                    created[kind] += conn.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise PersistenceError(f"batch commit failed ({len(self._ops)} writes): {exc}") from exc

        self._ops.clear()
        self.created = created
        return sum(created.values())


class DocumentStore:
    """Manages the FlowSync SQLite database."""

    def __init__(self, db_path: Path | str | None = None):
        from flowsync.config import CONFIG_DIR

        self._db_path = Path(db_path) if db_path else CONFIG_DIR / "flowsync.db"
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = init_db(self._db_path)
        return self._conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    # ══════════════════════════════════════════════════════════════
    # Messages
    # ══════════════════════════════════════════════════════════════

    def message_exists(self, subscriber_id: str, source_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM messages WHERE subscriber_id = ? AND source_id = ? LIMIT 1",
            (subscriber_id, source_id),
        ).fetchone()
        return row is not None

    def get_message(self, subscriber_id: str, source_id: str) -> Message | None:
        row = self.conn.execute(
            "SELECT * FROM messages WHERE subscriber_id = ? AND source_id = ?",
            (subscriber_id, source_id),
        ).fetchone()
        return _row_to_message(row) if row else None

    def get_messages(
        self,
        subscriber_id: str,
        since: datetime | None = None,
        unread_only: bool = False,
    ) -> list[Message]:
        """Messages for one subscriber, newest first."""
        sql = "SELECT * FROM messages WHERE subscriber_id = ?"
        params: list = [subscriber_id]
        if since is not None:
            sql += " AND timestamp >= ?"
            params.append(_epoch(since))
        if unread_only:
            sql += " AND read = 0"
        sql += " ORDER BY timestamp DESC"

        return [_row_to_message(r) for r in self.conn.execute(sql, params).fetchall()]

    def mark_read(self, subscriber_id: str, source_ids: Iterable[str]) -> int:
        ids = list(source_ids)
        if not ids:
            return 0
        with self.conn:
            cur = self.conn.executemany(
                "UPDATE messages SET read = 1 WHERE subscriber_id = ? AND source_id = ?",
                [(subscriber_id, sid) for sid in ids],
            )
        return cur.rowcount

    # ══════════════════════════════════════════════════════════════
    # Tasks
    # ══════════════════════════════════════════════════════════════

    def tasks_exist_for(self, subscriber_id: str, source_message_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM tasks WHERE subscriber_id = ? AND source_message_id = ? LIMIT 1",
            (subscriber_id, source_message_id),
        ).fetchone()
        return row is not None

    def get_tasks(
        self,
        subscriber_id: str,
        source_message_id: str | None = None,
        include_completed: bool = True,
    ) -> list[Task]:
        sql = "SELECT * FROM tasks WHERE subscriber_id = ?"
        params: list = [subscriber_id]
        if source_message_id is not None:
            sql += " AND source_message_id = ?"
            params.append(source_message_id)
        if not include_completed:
            sql += " AND completed = 0"
        sql += " ORDER BY created_on ASC, rowid ASC"

        return [_row_to_task(r) for r in self.conn.execute(sql, params).fetchall()]

    # ══════════════════════════════════════════════════════════════
    # Subscribers
    # ══════════════════════════════════════════════════════════════

    def link_delivery_target(self, subscriber_id: str, chat_id: str) -> None:
        with self.conn:
            self.conn.execute(
                """INSERT INTO subscribers (subscriber_id, chat_id, linked_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(subscriber_id) DO UPDATE SET
                     chat_id = excluded.chat_id,
                     linked_at = excluded.linked_at""",
                (subscriber_id, chat_id, int(time.time())),
            )

    def get_delivery_target(self, subscriber_id: str) -> str | None:
        row = self.conn.execute(
            "SELECT chat_id FROM subscribers WHERE subscriber_id = ?", (subscriber_id,)
        ).fetchone()
        return row["chat_id"] if row else None

    def list_subscribers(self) -> list[str]:
        """Every subscriber id known to the store (linked or with stored messages)."""
        rows = self.conn.execute(
            """SELECT subscriber_id FROM subscribers
               UNION
               SELECT DISTINCT subscriber_id FROM messages
               ORDER BY subscriber_id"""
        ).fetchall()
        return [r["subscriber_id"] for r in rows]

    def stats(self) -> list[dict]:
        """Per-subscriber message / task counts."""
        rows = self.conn.execute(
            """SELECT s.subscriber_id,
                      (SELECT COUNT(*) FROM messages m WHERE m.subscriber_id = s.subscriber_id) AS messages,
                      (SELECT COUNT(*) FROM messages m WHERE m.subscriber_id = s.subscriber_id
                                                       AND m.read = 0) AS unread,
                      (SELECT COUNT(*) FROM tasks t WHERE t.subscriber_id = s.subscriber_id) AS tasks,
                      (SELECT COUNT(*) FROM tasks t WHERE t.subscriber_id = s.subscriber_id
                                                    AND t.completed = 0) AS open_tasks
               FROM (SELECT subscriber_id FROM messages
                     UNION SELECT subscriber_id FROM tasks
                     UNION SELECT subscriber_id FROM subscribers) s
               ORDER BY s.subscriber_id"""
        ).fetchall()
        return [dict(r) for r in rows]
