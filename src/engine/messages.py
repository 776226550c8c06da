"""Human-readable status messages for the current step."""

import math

from src.models.enums import StatusLevel, StepPhase, StepState
from src.models.status import StepStatus

COMPLETED_MESSAGE = "This activity window has ended. You can move on to the next one."
IDLE_GAP_MESSAGE = "No activity at the moment — feel free to do whatever you like."
FALLBACK_MESSAGE = "Status is updating…"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _is_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def format_duration(total_seconds: float | None) -> str:
    """Format a duration: ``"1h 05m"`` from an hour, ``"4m 09s"`` under it, ``"42s"`` under a minute.

    Sign is ignored; non-numeric input yields ``""``.
    """
    if not _is_number(total_seconds):
        return ""

    s = max(0, _round_half_up(abs(total_seconds)))  # type: ignore[arg-type]
    hours, rem = divmod(s, 3600)
    minutes, seconds = divmod(rem, 60)

    if hours > 0:
        return f"{hours}h {minutes:02d}m"
    if minutes > 0:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def format_distance(meters: float | None) -> str:
    """Format a distance: whole metres under 1 km, one decimal under 10 km, whole km above."""
    if not _is_number(meters):
        return ""

    m = max(0, _round_half_up(meters))  # type: ignore[arg-type]
    if m < 1000:
        return f"{m} m"

    km = m / 1000
    if km < 10:
        return f"{km:.1f} km"
    return f"{_round_half_up(km)} km"


def build_status_message(
    phase: StepPhase,
    inside: bool,
    status: StepState,
    delta_seconds: float | None = None,
    time_to_start_seconds: float | None = None,
    distance_meters: float | None = None,
    idle_gap: bool = False,
) -> str:
    """Compose the single status line shown for the current step.

    Priority: completed window, step in progress (on site / away), idle gap,
    already on site before the start, then the punctuality status.

    Args:
        phase: Time-only phase of the step.
        inside: Whether the traveler is inside the geofence.
        status: Punctuality classification.
        delta_seconds: Seconds past the scheduled start (locked value when
            one exists, negative before the start).
        time_to_start_seconds: Seconds until the scheduled start.
        distance_meters: Distance to the step location.
        idle_gap: Whether the idle-gap detector fired.
    """
    dist_text = format_distance(distance_meters)

    if phase == StepPhase.COMPLETED:
        return COMPLETED_MESSAGE

    if phase == StepPhase.IN_PROGRESS:
        if inside:
            return "In progress — enjoy your time!"
        if dist_text:
            return (
                f"This activity is happening now. You're about {dist_text} away "
                "— head there when you can."
            )
        return "This activity is happening now. Head there when you can."

    # before_start
    if idle_gap and not inside:
        return IDLE_GAP_MESSAGE

    time_to_start = (
        format_duration(time_to_start_seconds)
        if _is_number(time_to_start_seconds) and time_to_start_seconds > 0  # type: ignore[operator]
        else ""
    )
    has_delta = _is_number(delta_seconds)
    past_start = (
        format_duration(delta_seconds)
        if has_delta and delta_seconds > 0  # type: ignore[operator]
        else ""
    )

    if inside:
        if time_to_start:
            return f"You're already here. Starts in {time_to_start}."
        return "You're already here. Hang back and wait for the activity to start."

    if status == StepState.UPCOMING:
        if time_to_start:
            return f"Your next activity starts in {time_to_start}. Better get going!"
        return "Your next activity is coming up soon. Get ready to head out."

    if status == StepState.EN_ROUTE:
        if has_delta:
            if delta_seconds <= 0 and time_to_start:  # type: ignore[operator]
                return f"You're on the way. Starts in {time_to_start}."
            if past_start:
                return f"You're on the way. About {past_start} past the scheduled start."
        return "You're on the way to the activity."

    if status == StepState.EARLY:
        if has_delta and delta_seconds < 0:  # type: ignore[operator]
            return f"Nice — you arrived about {format_duration(-delta_seconds)} early."  # type: ignore[operator]
        return "Nice — you arrived early."

    if status == StepState.ON_TIME:
        return "Great — you arrived on time."

    if status == StepState.LATE:
        if past_start:
            return (
                f"You're running late — about {past_start} past the start. "
                "Head there as soon as you can."
            )
        return "You're running late. Head there as soon as you can."

    return FALLBACK_MESSAGE


def derive_status_level(step_status: StepStatus | None) -> StatusLevel:
    """Severity used to colour the step message."""
    if step_status is None:
        return StatusLevel.INFO
    if step_status.phase == StepPhase.COMPLETED:
        return StatusLevel.SUCCESS
    if step_status.status == StepState.LATE:
        return StatusLevel.WARNING
    if step_status.status in (StepState.EARLY, StepState.ON_TIME):
        return StatusLevel.SUCCESS
    return StatusLevel.INFO
