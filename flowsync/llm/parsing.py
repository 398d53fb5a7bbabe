"""Cleaning and tolerant JSON parsing of raw model output."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from json_repair import repair_json

logger = logging.getLogger(__name__)


def clean_model_output(raw: str) -> str:
    """Strip thinking tags and markdown fences from LLM output."""
    cleaned = (raw or "").strip()
    if "<think>" in cleaned:
        parts = cleaned.split("</think>")
        cleaned = parts[-1].strip() if len(parts) > 1 else cleaned
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()
    return cleaned


def parse_json_object(raw: str) -> Dict[str, Any]:
    """Extract one JSON object from model output.

    Tries strict parsing of the outermost {...} span first, then json_repair
    for truncated JSON, missing quotes and trailing commas.

    Raises:
        ValueError: if no JSON object can be recovered.
    """
    cleaned = clean_model_output(raw)
    if not cleaned:
        raise ValueError("empty model output")

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            obj = json.loads(cleaned[start:end + 1])
            if isinstance(obj, dict) and obj:
                return obj
        except json.JSONDecodeError:
            pass

    try:
        repaired = repair_json(cleaned, return_objects=True)
    except Exception as exc:
        raise ValueError(f"unrepairable JSON: {exc}") from exc

    if isinstance(repaired, list):
        repaired = next((item for item in repaired if isinstance(item, dict)), None)
    if not isinstance(repaired, dict) or not repaired:
        logger.debug("No JSON object in model output: %s...", cleaned[:200])
        raise ValueError("no JSON object in model output")
    return repaired
