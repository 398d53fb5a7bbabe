"""Drivers: process one subscriber's messages, produce one subscriber's briefing,
and walk all subscribers sequentially.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from flowsync.pipeline.briefing import DEFAULT_MAX_ITEMS, BriefingComposer, BriefingScript
from flowsync.pipeline.classify import PriorityClassifier, apply_classification
from flowsync.pipeline.decompose import TaskDecomposer
from flowsync.pipeline.persist import PersistenceCoordinator
from flowsync.scheduling.verification import VerificationCodeStore
from flowsync.sources.base import Message, Priority
from flowsync.speech.elevenlabs import SpeechClient
from flowsync.store.documents import DocumentStore, Task

logger = logging.getLogger(__name__)

DECOMPOSE_PRIORITIES = (Priority.CRITICAL, Priority.ACTION)


# ══════════════════════════════════════════════════════════════════
# Processing
# ══════════════════════════════════════════════════════════════════

class SubscriberProcessor:
    """Classify, decompose and persist one subscriber's batch of messages."""

    def __init__(
        self,
        classifier: PriorityClassifier,
        decomposer: TaskDecomposer,
        coordinator: PersistenceCoordinator,
        store: DocumentStore,
    ):
        self.classifier = classifier
        self.decomposer = decomposer
        self.coordinator = coordinator
        self.store = store

    def _already_stored(self, subscriber_id: str, message: Message) -> bool:
        try:
            return self.store.message_exists(subscriber_id, message.source_id)
        except Exception as exc:
            # The coordinator repeats the check and skips the record if it fails again.
            logger.warning("Pre-check failed for %s: %s", message.source_id, exc)
            return False

    def process(self, subscriber_id: str, messages: Iterable[Message]) -> Dict[str, int]:
        stats = {
            "received": 0,
            "skipped_existing": 0,
            "classified": 0,
            "classify_fallbacks": 0,
            "critical": 0,
            "action": 0,
            "info": 0,
            "decomposed": 0,
            "tasks": 0,
            "error_tasks": 0,
        }

        classified: List[Message] = []
        tasks: List[Task] = []
        seen: set[str] = set()

        for message in messages:
            stats["received"] += 1
            if message.source_id in seen:
                continue
            seen.add(message.source_id)

            if self._already_stored(subscriber_id, message):
                logger.debug("Skipping %s, already stored", message.source_id)
                stats["skipped_existing"] += 1
                continue

            result = self.classifier.classify(message)
            message = apply_classification(message, result)
            classified.append(message)
            stats["classified"] += 1
            stats[message.priority.value] += 1
            if result.fallback:
                stats["classify_fallbacks"] += 1

            if message.priority not in DECOMPOSE_PRIORITIES:
                continue

            decomposition = self.decomposer.decompose(message)
            stats["decomposed"] += 1
            if decomposition.fallback:
                stats["error_tasks"] += 1
            if decomposition.should_create_task:
                tasks.extend(decomposition.tasks)
                stats["tasks"] += len(decomposition.tasks)

        persisted = self.coordinator.persist(subscriber_id, classified, tasks)
        stats["messages_written"] = persisted.messages_written
        stats["tasks_written"] = persisted.tasks_written
        stats["skipped_errors"] = persisted.skipped_errors

        logger.info(
            "Processed %s: %d classified (%d critical, %d action), %d tasks",
            subscriber_id, stats["classified"], stats["critical"], stats["action"], stats["tasks"],
        )
        return stats


# ══════════════════════════════════════════════════════════════════
# Briefings
# ══════════════════════════════════════════════════════════════════

@dataclass
class BriefingArtifact:
    subscriber_id: str
    script: BriefingScript
    script_path: Path
    audio_path: Optional[Path] = None


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", value)


def artifact_stem(subscriber_id: str, now: datetime) -> str:
    return f"briefing_{_safe_name(subscriber_id)}_{now:%Y%m%dT%H%M%S}"


def _local_now() -> datetime:
    return datetime.now().astimezone()


class BriefingRunner:
    """Compose, synthesize and write one subscriber's briefing.

    With `speech=None` (or synthesize=False) only the script is written.
    """

    def __init__(
        self,
        store: DocumentStore,
        composer: BriefingComposer,
        speech: Optional[SpeechClient],
        output_dir: Path,
        clock: Callable[[], datetime] = _local_now,
    ):
        self.store = store
        self.composer = composer
        self.speech = speech
        self.output_dir = Path(output_dir)
        self.clock = clock

    def run(
        self,
        subscriber_id: str,
        window_hours: int = 12,
        max_items: int = DEFAULT_MAX_ITEMS,
        mark_read: bool = False,
        synthesize: bool = True,
    ) -> Optional[BriefingArtifact]:
        """Returns None when nothing qualifies for a briefing.

        Raises:
            SynthesisError: audio could not be produced; nothing is written.
        """
        now = self.clock()
        pool = self.store.get_messages(
            subscriber_id, since=now - timedelta(hours=window_hours), unread_only=True,
        )
        logger.debug("Briefing pool for %s: %d unread messages", subscriber_id, len(pool))

        script = self.composer.compose(pool, max_items)
        if script is None:
            return None

        audio = None
        if synthesize and self.speech is not None:
            audio = self.speech.synthesize(script.text)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        stem = artifact_stem(subscriber_id, now)
        script_path = self.output_dir / f"{stem}.txt"
        script_path.write_text(script.text)

        audio_path = None
        if audio is not None:
            audio_path = self.output_dir / f"{stem}.mp3"
            audio_path.write_bytes(audio)

        if mark_read:
            self.store.mark_read(subscriber_id, script.source_message_ids)

        logger.info(
            "Briefing for %s: %d items%s -> %s",
            subscriber_id, len(script.source_message_ids),
            " (template)" if script.used_fallback else "",
            audio_path or script_path,
        )
        return BriefingArtifact(
            subscriber_id=subscriber_id,
            script=script,
            script_path=script_path,
            audio_path=audio_path,
        )


# ══════════════════════════════════════════════════════════════════
# Driver loop / delivery linking
# ══════════════════════════════════════════════════════════════════

def run_all(
    subscribers: Iterable[str],
    work: Callable[[str], Any],
    delay_seconds: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """Run `work` for each subscriber in turn. One failure never stops the loop."""
    summary: Dict[str, Any] = {"succeeded": [], "failed": {}, "results": {}}

    for i, subscriber_id in enumerate(subscribers):
        if i and delay_seconds > 0:
            sleep(delay_seconds)
        try:
            summary["results"][subscriber_id] = work(subscriber_id)
            summary["succeeded"].append(subscriber_id)
        except Exception as exc:
            logger.error("Run failed for %s: %s", subscriber_id, exc)
            summary["failed"][subscriber_id] = str(exc)

    return summary


def link_delivery_target(
    codes: VerificationCodeStore,
    store: DocumentStore,
    code: str,
    chat_id: str,
) -> Optional[str]:
    """Consume a verification code and link chat_id to its subscriber."""
    subscriber_id = codes.verify(code)
    if subscriber_id is None:
        logger.info("Rejected verification code for chat %s", chat_id)
        return None
    store.link_delivery_target(subscriber_id, chat_id)
    return subscriber_id
