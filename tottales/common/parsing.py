"""
Helpers for reading JSON answers out of raw model text.
"""

from __future__ import annotations

import json
import re
from typing import Any

_OPENING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    """
    Remove a surrounding markdown code fence (```json ... ``` or ``` ... ```).
    """
    cleaned = (text or "").strip()
    cleaned = _OPENING_FENCE.sub("", cleaned)
    cleaned = _CLOSING_FENCE.sub("", cleaned)
    return cleaned.strip()


def parse_json_object(text: str) -> dict[str, Any] | None:
    """
    Parse a JSON object from model output, returning ``None`` when that is not possible.
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        return None

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        return None

    if not isinstance(parsed, dict):
        return None
    return parsed
