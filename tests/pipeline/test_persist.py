"""Tests for deduplicated, batched persistence."""

from unittest.mock import patch

import pytest

from flowsync.pipeline.persist import PersistenceCoordinator
from flowsync.store.documents import PersistenceError, Task
from tests.conftest import NOW


def _task(source_message_id, title="Follow up"):
    return Task(
        title=title,
        description="desc",
        created_on=NOW,
        source="email",
        source_message_id=source_message_id,
        tags=["email"],
    )


class TestPersistenceCoordinator:
    def test_writes_new_records(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        messages = [make_message("m1", priority="critical"), make_message("m2", priority="info")]

        result = coordinator.persist("alice", messages, [_task("m1")])

        assert result.messages_written == 2
        assert result.tasks_written == 1
        assert result.skipped_existing == 0
        assert store.message_exists("alice", "m1")
        assert len(store.get_tasks("alice")) == 1

    def test_second_run_stages_nothing(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        messages = [make_message("m1", priority="critical")]

        coordinator.persist("alice", messages, [_task("m1")])
        second = coordinator.persist("alice", messages, [_task("m1")])

        assert second.staged == 0
        assert second.skipped_existing == 2
        assert len(store.get_messages("alice")) == 1
        assert len(store.get_tasks("alice")) == 1

    def test_never_overwrites_existing_message(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        coordinator.persist("alice", [make_message("m1", content="original", priority="critical")])

        coordinator.persist("alice", [make_message("m1", content="changed", priority="info")])

        stored = store.get_message("alice", "m1")
        assert stored.content == "original"
        assert stored.priority.value == "critical"

    def test_subscribers_are_partitioned(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        coordinator.persist("alice", [make_message("m1")])

        result = coordinator.persist("bob", [make_message("m1")])

        assert result.messages_written == 1
        assert store.message_exists("bob", "m1")

    def test_multiple_tasks_per_message(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        tasks = [_task("m1", "Review report"), _task("m1", "Book meeting"), _task("m1", "Update dashboard")]

        result = coordinator.persist("alice", [make_message("m1", priority="action")], tasks)

        assert result.tasks_written == 3
        titles = [t.title for t in store.get_tasks("alice", source_message_id="m1")]
        assert titles == ["Review report", "Book meeting", "Update dashboard"]

        again = coordinator.persist("alice", [], [_task("m1", "Review report")])
        assert again.tasks_written == 0
        assert again.skipped_existing == 1

    def test_manual_tasks_always_written(self, store):
        coordinator = PersistenceCoordinator(store)
        coordinator.persist("alice", [], [_task(None)])
        coordinator.persist("alice", [], [_task(None)])

        assert len(store.get_tasks("alice")) == 2

    def test_duplicates_within_batch_collapse(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        result = coordinator.persist("alice", [make_message("m1"), make_message("m1", content="dup")])

        assert result.messages_written == 1
        assert store.get_message("alice", "m1").content == "Please send the Q3 numbers."

    def test_existence_check_failure_skips_record(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        real = store.message_exists

        def flaky(subscriber_id, source_id):
            if source_id == "bad":
                raise RuntimeError("store unavailable")
            return real(subscriber_id, source_id)

        with patch.object(store, "message_exists", side_effect=flaky):
            result = coordinator.persist("alice", [make_message("bad"), make_message("good")])

        assert result.skipped_errors == 1
        assert result.messages_written == 1
        assert store.message_exists("alice", "good")
        assert not store.message_exists("alice", "bad")

    def test_message_check_failure_skips_its_tasks(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        real = store.message_exists

        def flaky(subscriber_id, source_id):
            if source_id == "bad":
                raise RuntimeError("store unavailable")
            return real(subscriber_id, source_id)

        with patch.object(store, "message_exists", side_effect=flaky):
            result = coordinator.persist(
                "alice",
                [make_message("bad"), make_message("good")],
                [_task("bad"), _task("bad"), _task("good")],
            )

        assert result.skipped_errors == 3
        assert result.tasks_written == 1
        assert store.get_tasks("alice", source_message_id="bad") == []
        assert len(store.get_tasks("alice", source_message_id="good")) == 1

    def test_counts_reflect_commit_not_staging(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        coordinator.persist("alice", [make_message("m1", content="first")])

        # another run stored m1 between the check and the commit
        with patch.object(store, "message_exists", return_value=False):
            result = coordinator.persist("alice", [make_message("m1", content="second"), make_message("m2")])

        assert result.staged == 2
        assert result.messages_written == 1
        assert result.skipped_on_commit == 1
        assert store.get_message("alice", "m1").content == "first"

    def test_task_check_failure_skips_group(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        with patch.object(store, "tasks_exist_for", side_effect=RuntimeError("down")):
            result = coordinator.persist("alice", [make_message("m1")], [_task("m1"), _task("m1")])

        assert result.messages_written == 1
        assert result.tasks_written == 0
        assert result.skipped_errors == 2

    def test_commit_failure_propagates_and_stores_nothing(self, store, make_message):
        coordinator = PersistenceCoordinator(store)
        bad_task = _task("m1")
        bad_task.priority = object()  # unbindable, fails after the message insert

        with pytest.raises(PersistenceError):
            coordinator.persist("alice", [make_message("m1")], [bad_task])

        assert store.get_messages("alice") == []
        assert store.get_tasks("alice") == []

    def test_empty_input_is_noop(self, store):
        result = PersistenceCoordinator(store).persist("alice", [], [])
        assert result.staged == 0
