"""Gmail API message payload -> Message.

Fetching (OAuth, users.messages.get) happens upstream; this module only
turns a `format=full` payload into a Message ready for classification.
"""

from __future__ import annotations

import base64
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from bs4 import BeautifulSoup

from flowsync.sources.base import Attachment, Message, MessageType, Sender

logger = logging.getLogger(__name__)

NAME_ADDR_RE = re.compile(r'^\s*"?([^"<]*?)"?\s*<([^>]+)>\s*$')

# "On Sep 14, 2025, at 13:44, Name <email> wrote:" and similar reply headers
ON_WROTE_RE = re.compile(r"On\s+.+?(?:\d{4}|\d{1,2}:\d{2}).*?wrote:?", re.IGNORECASE)
OUTLOOK_HEADER_RE = re.compile(r"^(From|Sent|To|Subject):", re.IGNORECASE)


def split_address(value: str) -> Sender:
    """Split a From header like 'Jane Doe <jane@example.com>'."""
    if not value:
        return Sender()

    match = NAME_ADDR_RE.match(value)
    if match:
        name = match.group(1).strip()
        email = match.group(2).strip()
        return Sender(name=name or email, email=email)

    value = value.strip()
    if "@" in value:
        return Sender(name=value, email=value)
    return Sender(name=value)


def _decode_body(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def _collect_parts(part: dict, text: list[str], html: list[str], attachments: list[Attachment]):
    mime = part.get("mimeType", "")
    body = part.get("body") or {}

    if part.get("filename"):
        attachments.append(Attachment(
            filename=part["filename"],
            mime_type=mime,
            size=int(body.get("size", 0) or 0),
        ))
    elif body.get("data"):
        if mime == "text/plain":
            text.append(_decode_body(body["data"]))
        elif mime == "text/html":
            html.append(_decode_body(body["data"]))

    for sub in part.get("parts") or []:
        _collect_parts(sub, text, html, attachments)


def strip_quoted_reply(body: str) -> str:
    """Drop quoted history ("> ..." lines, "On ... wrote:" and Outlook blocks)."""
    kept = []
    for line in body.replace("\r\n", "\n").split("\n"):
        stripped = line.strip()
        if stripped.startswith(">"):
            continue
        if ON_WROTE_RE.match(stripped):
            break
        if OUTLOOK_HEADER_RE.match(stripped) and kept:
            break
        kept.append(line)
    return "\n".join(kept)


def clean_text(text: str) -> str:
    text = re.sub(r"(\r\n|\r|\n){3,}", "\n\n", text)
    text = text.replace("\t", " ")
    text = re.sub(r" {2,}", " ", text)
    return text.strip()


def html_to_text(html: str) -> str:
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()

    text = soup.get_text(separator="\n").replace("\xa0", " ")
    return "\n".join(line.strip() for line in text.splitlines())


def _header(headers: list[dict], name: str) -> str:
    for h in headers:
        if h.get("name", "").lower() == name.lower():
            return h.get("value", "")
    return ""


def _parse_date(value: str) -> datetime:
    if value:
        try:
            dt = parsedate_to_datetime(value)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        except (TypeError, ValueError):
            logger.debug("Unparsable Date header: %s", value)
    return datetime.now(timezone.utc)


def message_from_gmail(raw: dict[str, Any]) -> Message:
    """Convert a Gmail `users.messages.get(format='full')` resource."""
    payload = raw.get("payload") or {}
    headers = payload.get("headers") or []

    subject = _header(headers, "Subject") or "No Subject"
    from_value = _header(headers, "From") or "Unknown Sender"
    to_value = _header(headers, "To")

    text_parts: list[str] = []
    html_parts: list[str] = []
    attachments: list[Attachment] = []
    _collect_parts(payload, text_parts, html_parts, attachments)

    body = clean_text(strip_quoted_reply("".join(text_parts)))
    if not body and html_parts:
        body = clean_text(strip_quoted_reply(html_to_text("".join(html_parts))))
    if not body:
        body = (raw.get("snippet") or "").strip()
    if not body:
        body = f'Email from {from_value} with subject "{subject}" - Content unavailable'

    return Message(
        source_id=str(raw["id"]),
        type=MessageType.EMAIL,
        content=body,
        timestamp=_parse_date(_header(headers, "Date")),
        sender=split_address(from_value),
        subject=subject,
        recipients=[r.strip() for r in to_value.split(",") if r.strip()],
        attachments=attachments,
    )
