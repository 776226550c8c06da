"""Derive notification triggers from step status transitions."""

from collections.abc import Iterable, Mapping
from typing import Protocol

from src.models.enums import NotificationScenario, StepPhase, StepState
from src.models.itinerary import Step
from src.models.status import StepStatus, TripNotification


class Notifier(Protocol):
    async def notify_once(self, notification: TripNotification) -> bool: ...


def format_punctuality(status: StepState, delta_minutes: float | None) -> str:
    if status == StepState.ON_TIME:
        return "On time"
    if delta_minutes is None:
        return str(status)
    minutes = abs(round(delta_minutes))
    if status == StepState.LATE:
        return f"Late +{minutes}m"
    if status == StepState.EARLY:
        return f"Early -{minutes}m"
    return str(status)


def _make(
    trip_id: str,
    step_id: str,
    scenario: NotificationScenario,
    title: str,
    body: str,
) -> TripNotification:
    return TripNotification(
        key=f"{trip_id}:{step_id}:{scenario}",
        trip_id=trip_id,
        step_id=step_id,
        scenario=scenario,
        title=title,
        body=body,
    )


def detect_notifications(
    trip_id: str,
    steps: Iterable[Step],
    previous: Mapping[str, StepStatus],
    current: Mapping[str, StepStatus],
) -> list[TripNotification]:
    """Compare two status maps and list the notifications the change warrants.

    Scenarios: became late without arriving, first arrival, activity started
    while on site, activity window completed.
    """
    places = {s.step_id: s.place_name for s in steps}
    found: list[TripNotification] = []

    for step_id, nxt in current.items():
        prev = previous.get(step_id)
        place = places.get(step_id) or "activity"

        if nxt.status == StepState.LATE and not nxt.arrived and (
            prev is None or prev.status != StepState.LATE
        ):
            found.append(_make(
                trip_id, step_id, NotificationScenario.LATE_NOT_ARRIVED,
                "You’re running late", f"You’re late for {place}.",
            ))

        if nxt.arrived and (prev is None or not prev.arrived):
            found.append(_make(
                trip_id, step_id, NotificationScenario.ARRIVED,
                "Arrived", f"{place} — {format_punctuality(nxt.status, nxt.delta_minutes)}.",
            ))

        if nxt.performing and (prev is None or not prev.performing):
            found.append(_make(
                trip_id, step_id, NotificationScenario.IN_PROGRESS,
                "Activity started", f"{place} is in progress.",
            ))

        if nxt.phase == StepPhase.COMPLETED and (
            prev is None or prev.phase != StepPhase.COMPLETED
        ):
            found.append(_make(
                trip_id, step_id, NotificationScenario.COMPLETED,
                "Activity finished", f"{place} has ended.",
            ))

    return found
