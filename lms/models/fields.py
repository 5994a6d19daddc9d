"""Coercions applied once when raw documents become model objects.

Stored documents were written by several generations of clients:
timestamps show up as native datetimes, epoch milliseconds or ISO
strings, and numbers sometimes arrive as strings.  Models call these
helpers in their ``from_doc`` constructors so nothing downstream has to
care.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any


def as_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return None


def as_number(value: Any) -> float | None:
    """A finite float, or None; NaN and infinities count as missing."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def as_str_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(s for v in value if (s := as_str(v)) is not None)


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (round() would give 2 for 2.5)."""
    return math.floor(value + 0.5)
