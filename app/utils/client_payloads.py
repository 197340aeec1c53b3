"""Helpers for loosely-typed JSON bodies posted by the browser.

Frontend reporters send whatever the page had at hand: timestamps may be ISO
strings or ``Date.now()`` milliseconds, and payload fields are only checked
for presence, not shape.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping


def is_missing(value: Any) -> bool:
    """Return True for absent or empty scalar values.

    Containers count as present even when empty (``{}`` is a valid payload).

    Examples:
        >>> is_missing(None), is_missing(""), is_missing(0)
        (True, True, True)
        >>> is_missing({}), is_missing("x")
        (False, False)
    """
    if value is None:
        return True
    if isinstance(value, (dict, list)):
        return False
    return not value


def missing_fields(payload: Mapping[str, Any], required: Iterable[str]) -> list[str]:
    """Names in ``required`` whose values are missing from ``payload``."""
    return [name for name in required if is_missing(payload.get(name))]


def parse_client_timestamp(value: Any) -> datetime | None:
    """Best-effort conversion of a client timestamp to an aware UTC datetime.

    Args:
        value: ISO-8601 string, or epoch milliseconds as a number or digit string.

    Returns:
        Parsed datetime, or None when the value cannot be interpreted.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            value = int(text)
        else:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    return None
