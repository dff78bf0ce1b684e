"""Parse JSON payloads out of model replies."""

import json
import re
from typing import Any

__all__ = ["parse_json_payload", "strip_code_fence"]

_FENCE_REGEX = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)
_TRAILING_COMMA_REGEX = re.compile(r",\s*([}\]])")


def strip_code_fence(text: str) -> str:
    """Return the body of a markdown code block, or ``text`` unchanged."""
    stripped = text.strip()
    match = _FENCE_REGEX.match(stripped)
    return match.group(1) if match else stripped


def parse_json_payload(text: str | None) -> Any | None:
    """Parse a model reply as JSON.

    Code fences and trailing commas are tolerated. Unstructured text yields
    ``None``, which callers treat as "no update".
    """
    if not text:
        return None

    cleaned = _TRAILING_COMMA_REGEX.sub(r"\1", strip_code_fence(text))
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return None
