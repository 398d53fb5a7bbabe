"""Priority classification: one message in, CRITICAL / ACTION / INFO out.

Each message is labelled by the completion service against a closed
taxonomy. The classifier fails soft: transport errors, unparsable output,
schema violations and unknown labels all collapse to INFO so a single bad
response never aborts the surrounding batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ValidationError, field_validator

from flowsync.llm.client import CompletionClient
from flowsync.llm.parsing import parse_json_object
from flowsync.sources.base import Message, Priority

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 4000
FALLBACK_REASONING = "Classification failed, defaulted to informational"


class Label(str, Enum):
    CRITICAL = "CRITICAL"
    ACTION = "ACTION"
    INFO = "INFO"

    @property
    def priority(self) -> Priority:
        return Priority(self.value.lower())


CLASSIFY_SYSTEM = """You're an expert message classifier for productivity workflows. Analyze each message (email, chat or channel post) and classify it strictly using ONLY these labels:

CRITICAL = Immediate action required, time-sensitive consequences
ACTION = Requires follow-up but not urgent
INFO = Informational, no action needed, FYI only

Consider the following factors in your reasoning:
- Urgency language ("urgent", "ASAP", "immediately", "by EOD")
- Explicit deadlines mentioned
- Sender's role/authority and relationship to recipient
- Direct requests vs indirect FYI
- Consequence of inaction or delayed response
- Whether the message requires a response
- Presence of actionable items or tasks
- Time-sensitivity of the subject matter

Respond ONLY with a JSON object in this exact format:
{"label": "CRITICAL|ACTION|INFO", "reasoning": "brief explanation"}"""

CLASSIFY_ITEM_TEMPLATE = """From: {sender}
{context_line}
---
{body}"""


class ClassificationResponse(BaseModel):
    """Validated model response."""
    label: Label
    reasoning: str

    @field_validator("label", mode="before")
    @classmethod
    def normalize_label(cls, v):
        v = str(v).strip().upper()
        if v.startswith("FLOW_"):
            v = v[len("FLOW_"):]
        return v

    @field_validator("reasoning")
    @classmethod
    def truncate_reasoning(cls, v):
        return v.strip()[:300]


@dataclass
class ClassificationResult:
    label: Label
    reasoning: str
    fallback: bool = False

    @property
    def priority(self) -> Priority:
        return self.label.priority


def fallback_result(reason: str = FALLBACK_REASONING) -> ClassificationResult:
    return ClassificationResult(label=Label.INFO, reasoning=reason, fallback=True)


def parse_classification(raw: str) -> ClassificationResult:
    """Parse model output into a ClassificationResult.

    Raises:
        ValueError: on unparsable output, schema violation or unknown label.
    """
    obj = parse_json_object(raw)
    try:
        parsed = ClassificationResponse.model_validate(obj)
    except ValidationError as exc:
        raise ValueError(f"classification schema violation: {exc.errors()[0]['msg']}") from exc
    return ClassificationResult(label=parsed.label, reasoning=parsed.reasoning)


class PriorityClassifier:
    """Labels messages through a completion client.

    Args:
        llm: Completion client (production LLMClient or a test fake).
        max_body_chars: Body text is silently cut to this many characters.
    """

    def __init__(self, llm: CompletionClient, max_body_chars: int = MAX_BODY_CHARS):
        self.llm = llm
        self.max_body_chars = max_body_chars

    def classify_text(self, sender: str, context: str, body: str) -> ClassificationResult:
        user_content = CLASSIFY_ITEM_TEMPLATE.format(
            sender=sender or "Unknown",
            context_line=context,
            body=(body or "")[:self.max_body_chars],
        )

        try:
            raw = self.llm.run(
                CLASSIFY_SYSTEM,
                user_content,
                temperature=0.0,
                max_output_tokens=100,
            )
            result = parse_classification(raw)
        except Exception as exc:
            logger.warning("Classification fell back to INFO: %s", exc)
            return fallback_result()

        logger.debug("Classified as %s: %s", result.label.value, result.reasoning)
        return result

    def classify(self, message: Message) -> ClassificationResult:
        if message.subject:
            context = f"Subject: {message.subject}"
        elif message.channel:
            context = f"Channel: #{message.channel}"
        else:
            context = f"Type: {message.type.value}"

        sender = message.sender.display
        if message.sender.email and message.sender.email != sender:
            sender = f"{sender} <{message.sender.email}>"

        return self.classify_text(sender, context, message.content)


def apply_classification(message: Message, result: ClassificationResult) -> Message:
    """Fold a classification into the message's priority field."""
    return message.with_priority(result.priority)
