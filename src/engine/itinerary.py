"""Flatten a stored trip document into time-ordered tracking steps."""

import logging
from typing import Any

from src.engine.selector import sort_steps
from src.models.itinerary import Step, Trip
from src.tools.date_utils import parse_instant

logger = logging.getLogger(__name__)

PERIODS = ("Morning", "Lunch", "Afternoon", "Evening")


def _day_entries(itinerary: Any) -> list[tuple[str, dict]]:
    # Either {"2025-12-20": {...}} or [{"2025-12-20": {...}}, ...]
    if isinstance(itinerary, dict):
        return [(k, v) for k, v in itinerary.items() if k and isinstance(v, dict)]

    entries: list[tuple[str, dict]] = []
    if isinstance(itinerary, list):
        for day in itinerary:
            if not isinstance(day, dict) or not day:
                continue
            date_key, day_data = next(iter(day.items()))
            if date_key and isinstance(day_data, dict):
                entries.append((date_key, day_data))
    return entries


def _is_coordinate(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _activity_to_step(activity: Any, date_key: str, period: str) -> Step | None:
    if not isinstance(activity, dict):
        return None
    coords = _as_dict(activity.get("GeoCoordinates"))
    lat, lng = coords.get("Latitude"), coords.get("Longitude")
    activity_id = activity.get("ActivityId")
    if (
        not activity_id
        or not activity.get("ScheduleStart")
        or not _is_coordinate(lat)
        or not _is_coordinate(lng)
    ):
        return None

    try:
        start = parse_instant(activity["ScheduleStart"])
    except ValueError:
        logger.debug(
            "Skipping activity %s: unusable start %r", activity_id, activity["ScheduleStart"]
        )
        return None
    try:
        end = parse_instant(activity.get("ScheduleEnd"))
    except ValueError:
        logger.debug(
            "Activity %s: ignoring unusable end %r", activity_id, activity.get("ScheduleEnd")
        )
        end = None

    return Step(
        step_id=str(activity_id),
        place_name=activity.get("PlaceName") or "",
        activity_type=activity.get("ActivityType") or "normal_attraction",
        lat=lat,
        lng=lng,
        scheduled_start=start,
        scheduled_end=end,
        date_key=date_key,
        period=period,
    )


def flatten_itinerary_to_steps(trip_doc: dict) -> list[Step]:
    """Turn ``tripData.Itinerary`` into a start-sorted list of ``Step``.

    Malformed entries are skipped, never fatal: activities missing an id,
    numeric coordinates or a parseable start are dropped, and so are periods
    or days that are not mappings. An unparseable end falls back to the
    default duration.

    Args:
        trip_doc: Stored trip document with ``id`` and ``tripData``.

    Returns:
        Steps ordered by scheduled start.
    """
    itinerary = _as_dict(trip_doc.get("tripData")).get("Itinerary")
    if not itinerary:
        return []

    steps: list[Step] = []
    for date_key, day in _day_entries(itinerary):
        for period in PERIODS:
            activities = _as_dict(day.get(period)).get("Activities")
            if not isinstance(activities, list):
                continue
            for activity in activities:
                step = _activity_to_step(activity, date_key, period)
                if step is not None:
                    steps.append(step)

    logger.debug("Flattened %d steps for trip %s", len(steps), trip_doc.get("id"))
    return sort_steps(steps)


def trip_from_document(trip_doc: dict) -> Trip:
    """Build the ``Trip`` identity (id + owner) from a stored trip document.

    Raises:
        ValueError: If the document has no id.
    """
    trip_id = trip_doc.get("id")
    if not trip_id:
        raise ValueError("Trip document has no 'id'")
    destination = _as_dict(trip_doc.get("tripData")).get("Location")
    return Trip(
        id=str(trip_id),
        user_email=trip_doc.get("userEmail") or trip_doc.get("user_email"),
        destination=destination if isinstance(destination, str) else None,
    )
