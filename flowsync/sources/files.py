"""Load message documents from a JSON file (fixtures and the `process` command)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List

from flowsync.sources.base import Message

logger = logging.getLogger(__name__)


def load_messages(path: Path) -> List[Message]:
    """Read a JSON array of message documents.

    Entries that fail to convert are skipped with a warning so one bad record
    doesn't sink the whole file.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("messages", [])

    messages = []
    for i, doc in enumerate(raw):
        try:
            messages.append(Message.from_document(doc))
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning("Skipping message #%d in %s: %s", i, path, exc)

    logger.info("Loaded %d messages from %s", len(messages), path)
    return messages
