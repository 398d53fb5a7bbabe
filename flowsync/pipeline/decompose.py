"""Task decomposition: turn one classified message into zero, one or many atomic tasks.

Architecture:
  1. The completion service decides whether the message is actionable at all
     and, if so, splits bundled requests into one task per action item.
  2. The response is validated against the single / multiple schema.
  3. Every task draft is normalized the same way regardless of shape:
     due dates parsed (invalid -> None), blank title/description replaced by
     deterministic defaults, missing tags synthesized, priority defaulted.
  4. Any transport error or contract violation yields exactly one generic
     "Review <type>" task so no message a human should see is dropped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from flowsync.llm.client import CompletionClient
from flowsync.llm.parsing import parse_json_object
from flowsync.sources.base import Message
from flowsync.store.documents import Task

logger = logging.getLogger(__name__)

TASK_PRIORITIES = ("high", "medium", "low")
DEFAULT_PRIORITY = "medium"
ERROR_TAG = "error-task"
DUE_DATE_GRACE = timedelta(days=1)
TITLE_PREVIEW_CHARS = 60

DECOMPOSE_SYSTEM = """You are a professional assistant that analyzes communication messages and determines if they should become tasks. You can differentiate between actionable requests and informational messages. You provide structured JSON responses only.

TASK EVALUATION GUIDELINES:
A message should become a task if it:
1. Contains an explicit or implicit request for action
2. Requires follow-up or response from the recipient
3. Represents work that needs to be tracked or completed
4. Includes deadlines, commitments, or deliverables
5. Is marked as important/high priority by the sender

Messages that should NOT become tasks typically:
1. Are purely informational with no action required
2. Are casual conversation or greetings
3. Are automated notifications without actionable content
4. Are already completed/resolved issues
5. Are spam or promotional content

MULTIPLE TASKS ANALYSIS:
If the message contains MULTIPLE distinct actionable items, create one ATOMIC task per item instead of one large task. Examples:
- "Please review the report, schedule a meeting with the team, and update the dashboard"
- "Need three things: 1) Complete the design, 2) Send me the files, 3) Call the client"
- "Fix bugs in login page AND update color scheme on homepage AND deploy to production"

TASK CREATION GUIDELINES:
- One focused action per task
- Brief, action-oriented titles that start with a verb
- Priority: high, medium or low based on urgency and importance
- 1-3 relevant tags maximum
- dueDate only if clearly indicated in the message, as YYYY-MM-DD, resolved against TODAY

Respond with ONLY valid JSON, no other text. No markdown fences.

If NO task should be generated:
{"isGenerateTask": false}

If a SINGLE task should be generated:
{"isGenerateTask": true, "generateTask": {"isMultiple": false, "task": {"title": "...", "description": "...", "priority": "high|medium|low", "tags": ["tag1"], "dueDate": "YYYY-MM-DD" or null}}}

If MULTIPLE tasks should be generated:
{"isGenerateTask": true, "generateTask": {"isMultiple": true, "task": [{"title": "...", "description": "...", "priority": "high|medium|low", "tags": ["tag1"], "dueDate": "YYYY-MM-DD" or null}, {...}]}}"""

DECOMPOSE_ITEM_TEMPLATE = """TODAY: {today}
MESSAGE TYPE: {type}
MESSAGE PRIORITY: {priority}
SENDER: {sender}
{context}
CONTENT:
{content}"""


@dataclass
class DecompositionResult:
    should_create_task: bool
    is_multiple: bool = False
    tasks: List[Task] = field(default_factory=list)
    fallback: bool = False


# ══════════════════════════════════════════════════════════════════
# Response schema
# ══════════════════════════════════════════════════════════════════

class TaskDraft(BaseModel):
    """One task as proposed by the model. Every field is optional here;
    blanks are filled during normalization."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    tags: Optional[List[str]] = None
    due_date: Any = Field(default=None, alias="dueDate")

    @field_validator("title", "description", "priority", mode="before")
    @classmethod
    def stringify(cls, v):
        if v is None:
            return None
        return str(v).strip()

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v):
        if not isinstance(v, list):
            return None
        tags = [str(t).strip().lower() for t in v if t is not None and str(t).strip()]
        return tags or None


class GenerateTask(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    is_multiple: bool = Field(default=False, alias="isMultiple")
    task: Union[List[TaskDraft], TaskDraft]


class DecompositionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    is_generate_task: bool = Field(alias="isGenerateTask")
    generate_task: Optional[GenerateTask] = Field(default=None, alias="generateTask")

    @model_validator(mode="before")
    @classmethod
    def default_flag(cls, data):
        """A missing isGenerateTask means true. Older flat responses carry the
        task fields at the top level and are moved under generateTask."""
        if not isinstance(data, dict) or data.get("isGenerateTask") is not None:
            return data
        data = dict(data, isGenerateTask=True)
        if data.get("generateTask") is None and (data.get("title") or data.get("description")):
            data["generateTask"] = {
                "isMultiple": False,
                "task": {k: data.get(k) for k in ("title", "description", "priority", "tags", "dueDate")},
            }
        return data

    @model_validator(mode="after")
    def require_tasks(self):
        if self.is_generate_task:
            if self.generate_task is None:
                raise ValueError("isGenerateTask is true but generateTask is missing")
            if isinstance(self.generate_task.task, list) and not self.generate_task.task:
                raise ValueError("isGenerateTask is true but task list is empty")
        return self

    @property
    def is_multiple(self) -> bool:
        """The shape of `task` wins over a disagreeing isMultiple flag."""
        return self.generate_task is not None and isinstance(self.generate_task.task, list)

    @property
    def drafts(self) -> List[TaskDraft]:
        if not self.is_generate_task or self.generate_task is None:
            return []
        task = self.generate_task.task
        return list(task) if isinstance(task, list) else [task]


def parse_decomposition(raw: str) -> DecompositionResponse:
    """Parse model output into a validated DecompositionResponse.

    Raises:
        ValueError: on malformed JSON or a missing required field.
    """
    obj = parse_json_object(raw)
    try:
        return DecompositionResponse.model_validate(obj)
    except ValidationError as exc:
        raise ValueError(f"decomposition schema violation: {exc.errors()[0]['msg']}") from exc


# ══════════════════════════════════════════════════════════════════
# Normalization
# ══════════════════════════════════════════════════════════════════

def parse_due_date(value: Any, created_on: datetime) -> Optional[date]:
    """Parse a model-supplied due date. Unparsable or stale values become None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value.date()
    elif isinstance(value, date):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = date.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00")).date()
            except ValueError:
                logger.debug("Unparsable due date %r", value)
                return None

    if parsed < created_on.date() - DUE_DATE_GRACE:
        logger.debug("Due date %s predates creation, dropping", parsed)
        return None
    return parsed


def normalize_priority(value: Optional[str]) -> str:
    value = (value or "").strip().lower()
    return value if value in TASK_PRIORITIES else DEFAULT_PRIORITY


def _slug(text: str) -> str:
    return re.sub(r"\s+", "-", text.strip().lower().lstrip("#"))


def default_tags(message: Message) -> List[str]:
    """Tags derived from message metadata, used when the model gives none."""
    tags = [message.type.value]
    if message.priority:
        tags.append(message.priority.value)
    if message.has_attachments:
        tags.append("attachment")
    if message.mentions:
        tags.append("mention")
    if message.channel:
        tags.append(f"channel-{_slug(message.channel)}")
    return tags


def default_title(message: Message) -> str:
    if message.subject:
        return message.subject
    preview = " ".join(message.content.split())[:TITLE_PREVIEW_CHARS]
    return f"{message.sender.display}: {preview}"


def default_description(message: Message) -> str:
    return f"Review the following message from {message.sender.display}:\n\n{message.content}"


def _dedupe(tags: List[str]) -> List[str]:
    return list(dict.fromkeys(tags))


def build_task(message: Message, draft: TaskDraft, created_on: datetime) -> Task:
    return Task(
        title=draft.title or default_title(message),
        description=draft.description or default_description(message),
        created_on=created_on,
        source=message.type.value,
        due_date=parse_due_date(draft.due_date, created_on),
        priority=normalize_priority(draft.priority),
        source_message_id=message.source_id,
        tags=_dedupe(draft.tags or default_tags(message)),
    )


def error_task(message: Message, created_on: datetime) -> Task:
    """The single generic task emitted when decomposition fails."""
    return Task(
        title=f"Review {message.type.value}",
        description=(
            "Error creating task automatically. Please review the original message:\n\n"
            f"{message.content or 'Content unavailable'}"
        ),
        created_on=created_on,
        source=message.type.value,
        due_date=(created_on + timedelta(days=1)).date(),
        priority=DEFAULT_PRIORITY,
        source_message_id=message.source_id,
        tags=[message.type.value, ERROR_TAG],
    )


# ══════════════════════════════════════════════════════════════════
# Engine
# ══════════════════════════════════════════════════════════════════

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskDecomposer:
    """Decomposes messages into tasks through a completion client.

    `clock` is injectable so created_on / due-date windows are testable.
    """

    def __init__(self, llm: CompletionClient, clock: Callable[[], datetime] = _utcnow):
        self.llm = llm
        self.clock = clock

    def _user_content(self, message: Message, now: datetime) -> str:
        context_lines = []
        if message.subject:
            context_lines.append(f"SUBJECT: {message.subject}")
        if message.channel:
            context_lines.append(f"CHANNEL: #{message.channel}")
        if message.has_attachments:
            names = ", ".join(a.filename for a in message.attachments)
            context_lines.append(f"ATTACHMENTS: {names}")
        if message.mentions:
            context_lines.append("MENTIONS RECIPIENT: yes")

        return DECOMPOSE_ITEM_TEMPLATE.format(
            today=now.strftime("%Y-%m-%d (%A)"),
            type=message.type.value,
            priority=message.priority.value if message.priority else "unknown",
            sender=message.sender.display,
            context="\n".join(context_lines),
            content=message.content,
        )

    def decompose(self, message: Message) -> DecompositionResult:
        now = self.clock()

        try:
            raw = self.llm.run(
                DECOMPOSE_SYSTEM,
                self._user_content(message, now),
                temperature=0.0,
                max_output_tokens=500,
            )
            response = parse_decomposition(raw)
        except Exception as exc:
            logger.warning("Decomposition of %s failed, emitting review task: %s", message.source_id, exc)
            return DecompositionResult(
                should_create_task=True,
                is_multiple=False,
                tasks=[error_task(message, now)],
                fallback=True,
            )

        if not response.is_generate_task:
            logger.debug("No task for %s", message.source_id)
            return DecompositionResult(should_create_task=False)

        tasks = [build_task(message, draft, now) for draft in response.drafts]
        logger.debug("Built %d task(s) for %s", len(tasks), message.source_id)
        return DecompositionResult(
            should_create_task=True,
            is_multiple=response.is_multiple,
            tasks=tasks,
        )
