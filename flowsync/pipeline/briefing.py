"""Briefing: select the most pressing unread messages and render a spoken script.

Architecture:
  1. Select CRITICAL then ACTION messages, each group newest first, capped
     at max_items. INFO never makes it into a briefing.
  2. Ask the completion service for a spoken-style narrative.
  3. If that fails or comes back empty, render a deterministic template
     whose excerpts are cut at a sentence boundary.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from flowsync.llm.client import CompletionClient
from flowsync.sources.base import Message, Priority

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 5
EXCERPT_MAX_CHARS = 200
SENTENCE_TERMINATORS = ".!?"
# A terminator ends a sentence only when whitespace follows it
SENTENCE_END_RE = re.compile(rf"[{re.escape(SENTENCE_TERMINATORS)}](?=\s)")
ELLIPSIS = "..."
CLOSING_LINE = "That's all for your current briefing. Thank you for listening."


# ══════════════════════════════════════════════════════════════════
# Prompts
# ══════════════════════════════════════════════════════════════════

BRIEFING_SYSTEM = """\
You are a professional briefing assistant that creates concise spoken summaries \
optimized for voice delivery.

You will receive the messages selected for one listener, already ordered by priority.

Create a spoken briefing that summarizes them in a clear, conversational way:
1. Start with a greeting appropriate to the time of day and a one-line overview \
("Good afternoon. You have two critical items and one action item.")
2. Present the critical items first, then the action items, in the order given.
3. For each item say who it is from (name only), what it is about, and what is \
being asked, including any deadline.
4. Use natural spoken language. No markdown, no bullet points, no emoji, no URLs.
5. End with a short closing line.

The briefing is listened to, not read. Keep a professional but calm tone that \
conveys urgency for critical items without causing stress."""

BRIEFING_ITEM_TEMPLATE = """ITEM {index}:
Priority: {priority}
From: {sender}
{context}
Time: {time}
Content: {content}"""


@dataclass
class BriefingScript:
    text: str
    source_message_ids: List[str] = field(default_factory=list)
    used_fallback: bool = False


# ══════════════════════════════════════════════════════════════════
# Selection
# ══════════════════════════════════════════════════════════════════

def select_briefing_items(pool: Iterable[Message], max_items: int = DEFAULT_MAX_ITEMS) -> List[Message]:
    """Critical (newest first), then action (newest first), capped at max_items."""
    pool = list(pool)
    critical = [m for m in pool if m.priority == Priority.CRITICAL]
    action = [m for m in pool if m.priority == Priority.ACTION]

    critical.sort(key=lambda m: m.timestamp, reverse=True)
    action.sort(key=lambda m: m.timestamp, reverse=True)

    return (critical + action)[:max(max_items, 0)]


# ══════════════════════════════════════════════════════════════════
# Template rendering
# ══════════════════════════════════════════════════════════════════

def truncate_at_sentence(text: str, max_length: int = EXCERPT_MAX_CHARS) -> str:
    """Cut text to max_length, preferring the last sentence end in the window.

    A terminator inside a token ("3.5", "example.com") is not a sentence end.
    Without a sentence end in the window the cut is hard and ELLIPSIS is
    appended, so the result is never longer than max_length + len(ELLIPSIS).
    """
    text = (text or "").strip()
    if len(text) <= max_length:
        return text

    window = text[:max_length]
    # one extra char so a terminator at the window edge can see what follows
    ends = [m.end() for m in SENTENCE_END_RE.finditer(text[:max_length + 1])]
    if ends:
        return window[:ends[-1]]
    return window + ELLIPSIS


def greeting_for(now: datetime) -> str:
    if now.hour < 12:
        return "Good morning"
    if now.hour < 18:
        return "Good afternoon"
    return "Good evening"


def _count_line(count: int, noun: str, ask: str) -> str:
    if count == 1:
        return f"You have 1 {noun} that needs {ask}."
    return f"You have {count} {noun}s that need {ask}."


def _headline(message: Message) -> str:
    line = f"From {message.sender.display}."
    if message.subject:
        line += f" Subject: {message.subject}."
    elif message.channel:
        line += f" In #{message.channel}."
    return line


def render_template(items: List[Message], now: datetime) -> str:
    critical = [m for m in items if m.priority == Priority.CRITICAL]
    action = [m for m in items if m.priority == Priority.ACTION]

    parts = [f"{greeting_for(now)}. Here's your briefing for {now:%A, %B} {now.day}."]

    if critical:
        parts.append(_count_line(len(critical), "critical item", "immediate attention"))
        for i, message in enumerate(critical, 1):
            parts.append(f"Critical item {i}: {_headline(message)}\n{truncate_at_sentence(message.content)}")

    if action:
        parts.append(_count_line(len(action), "action item", "your attention"))
        for i, message in enumerate(action, 1):
            parts.append(f"Action item {i}: {_headline(message)}\n{truncate_at_sentence(message.content)}")

    parts.append(CLOSING_LINE)
    return "\n\n".join(parts)


# ══════════════════════════════════════════════════════════════════
# Composer
# ══════════════════════════════════════════════════════════════════

def _local_now() -> datetime:
    return datetime.now().astimezone()


class BriefingComposer:
    """Composes a BriefingScript from a pool of classified messages.

    `clock` drives the greeting and date line; it is injectable for tests.
    """

    def __init__(self, llm: Optional[CompletionClient], clock: Callable[[], datetime] = _local_now):
        self.llm = llm
        self.clock = clock

    def _user_content(self, items: List[Message], now: datetime) -> str:
        n_critical = sum(1 for m in items if m.priority == Priority.CRITICAL)
        header = (
            f"Current time: {now:%Y-%m-%d %H:%M}\n"
            f"Items for briefing: {len(items)} "
            f"({n_critical} critical, {len(items) - n_critical} action)\n"
        )

        blocks = []
        for i, message in enumerate(items, 1):
            if message.subject:
                context = f"Subject: {message.subject}"
            elif message.channel:
                context = f"Channel: #{message.channel}"
            else:
                context = f"Type: {message.type.value}"
            blocks.append(BRIEFING_ITEM_TEMPLATE.format(
                index=i,
                priority=message.priority.value.upper(),
                sender=message.sender.display,
                context=context,
                time=message.timestamp.astimezone(now.tzinfo).strftime("%Y-%m-%d %H:%M"),
                content=message.content,
            ))

        return header + "\n" + "\n\n".join(blocks)

    def _compose_ai(self, items: List[Message], now: datetime) -> Optional[str]:
        if self.llm is None:
            return None
        try:
            text = self.llm.run(
                BRIEFING_SYSTEM,
                self._user_content(items, now),
                temperature=0.3,
                max_output_tokens=800,
            )
        except Exception as exc:
            logger.warning("AI briefing failed, using template: %s", exc)
            return None

        text = (text or "").strip()
        if not text:
            logger.warning("AI briefing came back empty, using template")
            return None
        return text

    def compose(self, pool: Iterable[Message], max_items: int = DEFAULT_MAX_ITEMS) -> Optional[BriefingScript]:
        """Return a script for the selected items, or None when nothing qualifies."""
        items = select_briefing_items(pool, max_items)
        if not items:
            logger.info("No critical or action messages, skipping briefing")
            return None

        now = self.clock()
        ids = [m.source_id for m in items]

        text = self._compose_ai(items, now)
        if text is not None:
            return BriefingScript(text=text, source_message_ids=ids)

        return BriefingScript(text=render_template(items, now), source_message_ids=ids, used_fallback=True)
