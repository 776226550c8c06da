"""Choosing which itinerary step is "current" at a given moment."""

from collections.abc import Iterable, Sequence
from datetime import datetime

from src.models.itinerary import Step


def sort_steps(steps: Iterable[Step]) -> list[Step]:
    """Order steps by scheduled start; steps without a start go last."""
    return sorted(
        steps,
        key=lambda s: (s.scheduled_start is None, s.scheduled_start or datetime.min),
    )


def select_current_step(steps: Iterable[Step], now: datetime) -> Step | None:
    """Return the step whose window contains *now*, else the next one to start.

    When several windows contain *now* the one that started first wins; ties
    in start time keep input order. Steps without a scheduled start are
    ignored.

    Args:
        steps: Candidate steps, in any order.
        now: The evaluation instant (aware).

    Returns:
        The current-or-next step, or ``None`` when every step is in the past.
    """
    active: Step | None = None
    upcoming: Step | None = None

    for step in steps:
        start = step.scheduled_start
        if start is None:
            continue
        if step.contains(now):
            if active is None or start < active.scheduled_start:  # type: ignore[operator]
                active = step
        elif start > now:
            if upcoming is None or start < upcoming.scheduled_start:  # type: ignore[operator]
                upcoming = step

    return active or upcoming


def previous_step(sorted_steps: Sequence[Step], step: Step) -> Step | None:
    """The step scheduled immediately before *step* in a start-sorted list."""
    for idx, candidate in enumerate(sorted_steps):
        if candidate.step_id == step.step_id:
            return sorted_steps[idx - 1] if idx > 0 else None
    return None
