"""Per-step punctuality state machine.

For the selected step, geofence membership and elapsed time against the
schedule combine into a ``StepStatus``. Arrival time and the minutes delta
are locked the first time they are determined:

* pre-arrival, outside the geofence: ``upcoming`` (more than 10 min before
  start), ``en_route`` (up to 15 min after start) or ``late`` (delta locked);
* on entering the geofence (or on the first evaluation already inside):
  ``early`` (<= -15 min), ``on_time`` (<= +10 min) or ``late``, with the
  arrival time and delta locked;
* after arrival only ``phase``, ``performing`` and ``message`` move.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from src.clients.distance import distance_meters
from src.engine.idle_gap import is_idle_gap
from src.engine.messages import build_status_message
from src.engine.selector import previous_step, sort_steps
from src.models.enums import StepPhase, StepState
from src.models.itinerary import Step
from src.models.position import Position
from src.models.status import StepStatus
from src.tools.date_utils import minutes_between

logger = logging.getLogger(__name__)

DEFAULT_GEOFENCE_RADIUS_METERS = 150.0

# Thresholds in minutes relative to the scheduled start
UPCOMING_WINDOW_MINUTES = 10
PRE_ARRIVAL_LATE_THRESHOLD_MINUTES = 15
EARLY_THRESHOLD_MINUTES = 15
ARRIVAL_ON_TIME_LATE_WINDOW_MINUTES = 10


def compute_phase(step: Step, now: datetime) -> StepPhase:
    """Time-only phase of *step*; a step without a start never leaves ``before_start``."""
    start, end = step.scheduled_start, step.effective_end
    if start is None or end is None or now < start:
        return StepPhase.BEFORE_START
    if now > end:
        return StepPhase.COMPLETED
    return StepPhase.IN_PROGRESS


def classify_pre_arrival(delta_minutes: float) -> StepState:
    if delta_minutes < -UPCOMING_WINDOW_MINUTES:
        return StepState.UPCOMING
    if delta_minutes <= PRE_ARRIVAL_LATE_THRESHOLD_MINUTES:
        return StepState.EN_ROUTE
    return StepState.LATE


def classify_arrival(delta_minutes: float) -> StepState:
    if delta_minutes <= -EARLY_THRESHOLD_MINUTES:
        return StepState.EARLY
    if delta_minutes <= ARRIVAL_ON_TIME_LATE_WINDOW_MINUTES:
        return StepState.ON_TIME
    return StepState.LATE


@dataclass(frozen=True)
class Evaluation:
    """Outcome of evaluating one step at one instant."""

    step: Step
    status: StepStatus
    inside: bool
    distance_meters: float | None


class StatusEngine:
    """Owns every ``StepStatus`` of one tracking session.

    Args:
        steps: The full itinerary (used to find the step before the current
            one for idle-gap detection).
        geofence_radius: Radius in metres; "inside" means distance <= radius.
    """

    def __init__(
        self,
        steps: Iterable[Step],
        geofence_radius: float = DEFAULT_GEOFENCE_RADIUS_METERS,
    ) -> None:
        self.steps = sort_steps(steps)
        self.geofence_radius = geofence_radius
        self.statuses: dict[str, StepStatus] = {}
        self._prev_inside: dict[str, bool] = {}

    def get(self, step_id: str) -> StepStatus | None:
        return self.statuses.get(step_id)

    def was_inside(self, step_id: str) -> bool:
        return self._prev_inside.get(step_id, False)

    def evaluate(
        self, step: Step, now: datetime, position: Position | None
    ) -> Evaluation | None:
        """Advance the state of *step* to *now*.

        Without a position the punctuality fields are left alone and only
        ``phase``/``performing``/``message`` are refreshed (using the last
        known geofence membership); a step never evaluated with a position
        has no status yet and ``None`` is returned. Steps without a start
        are not time-tracked and also yield ``None``.
        """
        start = step.scheduled_start
        if start is None:
            return None

        existing = self.statuses.get(step.step_id)
        delta = minutes_between(start, now)
        phase = compute_phase(step, now)

        if position is None:
            if existing is None:
                return None
            inside = self.was_inside(step.step_id)
            distance = None
            status = existing.status
            arrival = existing.actual_arrival_time
            locked = existing.delta_minutes
        else:
            distance = distance_meters(position, step)
            inside = distance <= self.geofence_radius
            current = existing or StepStatus()
            status, arrival, locked = self._advance(current, inside, delta, now)
            self._prev_inside[step.step_id] = inside

        performing = phase == StepPhase.IN_PROGRESS and inside

        idle_gap = False
        if phase == StepPhase.BEFORE_START and not inside:
            idle_gap = is_idle_gap(previous_step(self.steps, step), step, now)

        delta_seconds = locked * 60 if locked is not None else delta * 60
        message = build_status_message(
            phase=phase,
            inside=inside,
            status=status,
            delta_seconds=delta_seconds,
            time_to_start_seconds=(start - now).total_seconds(),
            distance_meters=round(distance) if distance is not None else None,
            idle_gap=idle_gap,
        )

        updated = StepStatus(
            status=status,
            actual_arrival_time=arrival,
            delta_minutes=locked,
            phase=phase,
            performing=performing,
            message=message,
        )
        if existing is None or existing.status != updated.status:
            logger.info(
                "Step %s: %s -> %s (delta %.1f min)",
                step.step_id,
                existing.status if existing else None,
                updated.status,
                delta,
            )
        self.statuses[step.step_id] = updated
        return Evaluation(step=step, status=updated, inside=inside, distance_meters=distance)

    def _advance(
        self, current: StepStatus, inside: bool, delta: float, now: datetime
    ) -> tuple[StepState, datetime | None, float | None]:
        # Arrival is final: status, arrival time and delta are frozen
        if current.arrived:
            return current.status, current.actual_arrival_time, current.delta_minutes

        if inside:
            return classify_arrival(delta), now, delta

        # Lateness without arrival is locked the first time it is seen
        if current.status == StepState.LATE and current.delta_minutes is not None:
            return current.status, None, current.delta_minutes

        status = classify_pre_arrival(delta)
        locked = delta if status == StepState.LATE else current.delta_minutes
        return status, None, locked

    def complete_step(self, step_id: str, message: str) -> StepStatus | None:
        """Force a step whose window has passed to ``completed``.

        Returns the updated status, or ``None`` if the step was never evaluated.
        """
        existing = self.statuses.get(step_id)
        if existing is None:
            return None
        updated = existing.model_copy(
            update={"phase": StepPhase.COMPLETED, "performing": False, "message": message}
        )
        self.statuses[step_id] = updated
        return updated

    def reset(self) -> None:
        self.statuses.clear()
        self._prev_inside.clear()
