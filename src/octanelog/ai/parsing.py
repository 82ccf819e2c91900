"""Lenient JSON extraction from model output.

Models asked for "raw JSON only" still wrap it in markdown fences or
surround it with prose often enough that every JSON consumer goes through
here.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OBJECT_PATTERN = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the stripped text."""
    match = _FENCE_PATTERN.search(text)
    return match.group(1).strip() if match else text.strip()


def extract_json(text: str) -> dict[str, Any] | list[Any]:
    """Parse JSON out of a model response.

    Tries, in order: the whole text, the first fenced block, and the outermost
    ``{...}`` or ``[...]`` span.

    Raises:
        ValueError: If no candidate parses as a JSON object or array.
    """
    candidates = [text.strip(), strip_code_fences(text)]
    span = _OBJECT_PATTERN.search(text)
    if span:
        candidates.append(span.group(1))

    last_error: json.JSONDecodeError | None = None
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(data, (dict, list)):
            return data

    detail = f": {last_error.msg}" if last_error else ""
    raise ValueError(f"No JSON object found in response{detail}")


def extract_json_object(text: str) -> dict[str, Any]:
    """Like ``extract_json`` but requires an object at the top level."""
    data = extract_json(text)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object, got an array")
    return data
