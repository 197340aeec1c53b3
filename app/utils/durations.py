"""Parse human-friendly window durations such as ``"15 m"`` or ``"1h"``."""

from __future__ import annotations

import re

_UNIT_MS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d)\s*$")


def parse_duration_ms(value: str | int) -> int:
    """Convert a duration to milliseconds.

    Accepts an ``int`` (already milliseconds), a bare digit string
    (milliseconds) or ``"<number> <unit>"`` with unit ms, s, m, h or d.

    Args:
        value: Duration to convert.

    Returns:
        Duration in milliseconds.

    Raises:
        ValueError: If the value is malformed or not positive.

    Examples:
        >>> parse_duration_ms("1 m")
        60000
        >>> parse_duration_ms("15m")
        900000
        >>> parse_duration_ms(250)
        250
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")

    if isinstance(value, int):
        millis = value
    elif value.strip().isdigit():
        millis = int(value.strip())
    else:
        match = _DURATION_RE.match(value)
        if not match:
            raise ValueError(
                f"Invalid duration: {value!r} (expected e.g. '30 s', '1 m', '15 m')"
            )
        amount, unit = match.groups()
        millis = int(amount) * _UNIT_MS[unit]

    if millis <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return millis
