"""Dedup & persistence: write only what is not already stored, one batch per call.

Messages are keyed by (subscriber, source_id). Tasks are keyed by
(subscriber, source_message_id) as a group: once any task exists for a
source message, every new task derived from it is skipped. Tasks without a
source message are always written.

The existence check runs before staging, and the commit itself is
INSERT OR IGNORE, so a message can never be overwritten even when two runs
race. Tasks carry fresh ids and can still be duplicated by such a race.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from flowsync.sources.base import Message
from flowsync.store.documents import DocumentStore, Task

logger = logging.getLogger(__name__)


@dataclass
class PersistResult:
    messages_written: int = 0
    tasks_written: int = 0
    skipped_existing: int = 0
    skipped_errors: int = 0
    staged: int = 0
    # staged writes the store ignored because another run created them first
    skipped_on_commit: int = 0


class PersistenceCoordinator:
    def __init__(self, store: DocumentStore):
        self.store = store

    def _message_is_new(self, subscriber_id: str, message: Message) -> bool | None:
        """True if absent, False if stored, None if the check itself failed."""
        try:
            return not self.store.message_exists(subscriber_id, message.source_id)
        except Exception as exc:
            logger.warning("Existence check failed for message %s, skipping: %s", message.source_id, exc)
            return None

    def _task_group_is_new(self, subscriber_id: str, source_message_id: str) -> bool | None:
        try:
            return not self.store.tasks_exist_for(subscriber_id, source_message_id)
        except Exception as exc:
            logger.warning("Existence check failed for tasks of %s, skipping: %s", source_message_id, exc)
            return None

    def persist(
        self,
        subscriber_id: str,
        messages: Iterable[Message],
        tasks: Iterable[Task] = (),
    ) -> PersistResult:
        """Stage every absent record and commit them together.

        Tasks of a message whose existence check failed are skipped with it.

        Raises:
            PersistenceError: when the commit fails. Nothing from the call is stored.
        """
        result = PersistResult()
        batch = self.store.batch()

        seen_messages: set[str] = set()
        unchecked: set[str] = set()
        for message in messages:
            if message.source_id in seen_messages:
                continue
            seen_messages.add(message.source_id)

            is_new = self._message_is_new(subscriber_id, message)
            if is_new is None:
                result.skipped_errors += 1
                unchecked.add(message.source_id)
            elif not is_new:
                result.skipped_existing += 1
            else:
                batch.set_message(subscriber_id, message)

        # Tasks are decided per source message, so one decomposition lands whole.
        group_state: dict[str, bool | None] = {}
        seen_tasks: set[str] = set()
        for task in tasks:
            if task.id in seen_tasks:
                continue
            seen_tasks.add(task.id)

            if task.source_message_id is not None:
                if task.source_message_id in unchecked:
                    result.skipped_errors += 1
                    continue
                if task.source_message_id not in group_state:
                    group_state[task.source_message_id] = self._task_group_is_new(
                        subscriber_id, task.source_message_id
                    )
                is_new = group_state[task.source_message_id]
                if is_new is None:
                    result.skipped_errors += 1
                    continue
                if not is_new:
                    result.skipped_existing += 1
                    continue

            batch.set_task(subscriber_id, task)

        result.staged = len(batch)
        if result.staged == 0:
            logger.debug("Nothing new to persist for %s", subscriber_id)
            return result

        try:
            created = batch.commit()
        except Exception:
            logger.error("Commit failed for %s (%d writes staged)", subscriber_id, result.staged)
            raise

        result.messages_written = batch.created["messages"]
        result.tasks_written = batch.created["tasks"]
        result.skipped_on_commit = result.staged - created
        if result.skipped_on_commit:
            logger.warning(
                "%d staged writes for %s already existed at commit time",
                result.skipped_on_commit, subscriber_id,
            )

        logger.info(
            "Persisted %d messages, %d tasks for %s (%d existing, %d errors skipped)",
            result.messages_written, result.tasks_written, subscriber_id,
            result.skipped_existing, result.skipped_errors,
        )
        return result
