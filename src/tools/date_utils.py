"""Instant parsing helpers for itinerary and provider timestamps."""

from datetime import UTC, datetime
from typing import Any

# Numbers above this are treated as epoch milliseconds, below as seconds
_EPOCH_MS_THRESHOLD = 10_000_000_000


def parse_instant(value: Any) -> datetime | None:
    """Parse a timestamp into an aware UTC ``datetime``.

    Supported formats:
    - ``datetime`` (naive values are taken as UTC)
    - ISO-8601 strings, including a trailing ``Z``
    - epoch numbers (milliseconds when large, seconds otherwise)
    - Firestore-style mappings ``{"seconds": ..., "nanoseconds": ...}``

    Args:
        value: The raw timestamp. ``None`` and ``""`` yield ``None``.

    Returns:
        An aware ``datetime`` or ``None``.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    if isinstance(value, bool):
        raise ValueError(f"Cannot parse instant from {value!r}")

    try:
        if isinstance(value, (int, float)):
            seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
            return datetime.fromtimestamp(seconds, tz=UTC)

        if isinstance(value, dict) and "seconds" in value:
            seconds = value["seconds"] + value.get("nanoseconds", 0) / 1e9
            return datetime.fromtimestamp(seconds, tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        raise ValueError(f"Cannot parse instant from {value!r}") from exc

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Cannot parse instant from {value!r}") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    raise ValueError(f"Cannot parse instant from {value!r}")


def minutes_between(start: datetime, end: datetime) -> float:
    """Signed minutes from *start* to *end*."""
    return (end - start).total_seconds() / 60
