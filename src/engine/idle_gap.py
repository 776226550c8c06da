"""Quiet messaging during long free gaps between two steps."""

from datetime import datetime, timedelta

from src.models.itinerary import Step

IDLE_GAP_MIN = timedelta(minutes=60)
IDLE_GAP_LEAD = timedelta(minutes=15)


def is_idle_gap(previous: Step | None, current: Step, now: datetime) -> bool:
    """True while *now* sits in a free gap of at least an hour before *current*.

    The gap only counts until 15 minutes before *current* starts, so the
    traveler is still nudged as the next commitment approaches.
    """
    if previous is None or current.scheduled_start is None:
        return False

    prev_end = previous.effective_end
    if prev_end is None:
        return False

    start = current.scheduled_start
    in_gap = prev_end < now < start
    return in_gap and start - prev_end >= IDLE_GAP_MIN and start - now > IDLE_GAP_LEAD
