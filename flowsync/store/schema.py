"""SQLite schema for the FlowSync document store.

All state lives in a single SQLite file (default ~/.flowsync/flowsync.db),
partitioned by subscriber id:
  messages     classified messages, write-once per (subscriber, source_id)
  tasks        derived tasks, fresh ids, source_message_id as a plain attribute
  subscribers  delivery targets linked through verification codes
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
-- ══════════════════════════════════════════════════════════════════
-- Messages (keyed by the provider's stable source id)
-- ══════════════════════════════════════════════════════════════════

CREATE TABLE IF NOT EXISTS messages (
    subscriber_id   TEXT NOT NULL,
    source_id       TEXT NOT NULL,
    type            TEXT NOT NULL,           -- email | chat | channel
    content         TEXT NOT NULL,
    timestamp       INTEGER NOT NULL,        -- unix epoch
    priority        TEXT,                    -- critical | action | info
    read            INTEGER NOT NULL DEFAULT 0,
    sender_name     TEXT,
    sender_email    TEXT,
    subject         TEXT,
    channel         TEXT,
    data            BLOB,                    -- msgpack'd recipients / attachments / mentions
    created_at      INTEGER NOT NULL,
    PRIMARY KEY (subscriber_id, source_id)
);

CREATE INDEX IF NOT EXISTS idx_messages_time ON messages(subscriber_id, timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_messages_priority ON messages(subscriber_id, priority, read);

-- ══════════════════════════════════════════════════════════════════
-- Tasks (many per source message allowed)
-- ══════════════════════════════════════════════════════════════════

CREATE TABLE IF NOT EXISTS tasks (
    subscriber_id     TEXT NOT NULL,
    id                TEXT NOT NULL,
    title             TEXT NOT NULL,
    description       TEXT NOT NULL,
    due_date          TEXT,                  -- YYYY-MM-DD or NULL
    created_on        INTEGER NOT NULL,
    priority          TEXT NOT NULL DEFAULT 'medium',
    completed         INTEGER NOT NULL DEFAULT 0,
    source            TEXT NOT NULL,         -- email | chat | channel | manual
    source_message_id TEXT,                  -- NULL for manual tasks
    tags              TEXT NOT NULL,         -- JSON array
    assigned_to       TEXT NOT NULL,         -- JSON array of user ids
    PRIMARY KEY (subscriber_id, id)
);

CREATE INDEX IF NOT EXISTS idx_tasks_source ON tasks(subscriber_id, source_message_id)
    WHERE source_message_id IS NOT NULL;

-- ══════════════════════════════════════════════════════════════════
-- Subscribers (delivery targets)
-- ══════════════════════════════════════════════════════════════════

CREATE TABLE IF NOT EXISTS subscribers (
    subscriber_id   TEXT PRIMARY KEY,
    chat_id         TEXT,
    linked_at       INTEGER
);
"""


def init_db(path: Path) -> sqlite3.Connection:
    """Open (creating if needed) the store database and apply the schema."""
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    if str(path) != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(SCHEMA_SQL)
    conn.commit()

    logger.debug("Store database initialized at %s", path)
    return conn
