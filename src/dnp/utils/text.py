"""Text helpers."""

from __future__ import annotations

import re
from typing import Any, Optional

import orjson


MAX_ZONE_LABEL_LENGTH = 40


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace and trim."""
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, max_chars: int) -> str:
    """Trim and clip text for push payloads and log lines."""
    value = normalize_whitespace(text or "")
    if len(value) <= max_chars:
        return value
    return value[: max_chars - 1].rstrip() + "…"


def sanitize_zone_label(label: Any) -> Optional[str]:
    """Normalize a user supplied zone label, returning None when unusable."""
    if not isinstance(label, str):
        return None
    normalized = normalize_whitespace(label)
    if not normalized:
        return None
    return normalized[:MAX_ZONE_LABEL_LENGTH]


def _trim_items(values: list[Any]) -> list[Any]:
    return [value.strip() if isinstance(value, str) else value for value in values]


def _try_parse_json_array(value: str) -> Optional[list[Any]]:
    if not (value.startswith("[") and value.endswith("]")):
        return None
    try:
        parsed = orjson.loads(value)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None
    return _trim_items(parsed)


def normalize_categories_input(value: Any) -> Any:
    """Coerce categories from crawlers and LLM output into a list of strings.

    Lists are trimmed, JSON array strings are decoded, comma separated strings are
    split, and a lone string becomes a one-item list. ``None`` and other types pass
    through untouched so callers can decide how to treat them.
    """
    if value is None:
        return value

    if isinstance(value, (list, tuple)):
        return _trim_items(list(value))

    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return []

        parsed = _try_parse_json_array(trimmed)
        if parsed is not None:
            return parsed

        if "," in trimmed:
            return _trim_items(trimmed.split(","))

        return [trimmed]

    return value
