"""Great-circle distance between coordinates using the haversine formula."""

import math

from src.models.position import Position
from src.models.itinerary import Step

# Mean Earth radius in metres
EARTH_RADIUS_M = 6_371_000.0


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate straight-line distance between two points in metres.

    Args:
        lat1, lng1: First point coordinates (degrees).
        lat2, lng2: Second point coordinates (degrees).

    Returns:
        Distance in metres.
    """
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = math.sin(dlat / 2) ** 2 + (
        math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance_meters(a: Position | Step, b: Position | Step) -> float:
    """Distance between any two of ``Position`` / ``Step`` in metres."""
    lat1, lng1 = _coords(a)
    lat2, lng2 = _coords(b)
    return haversine_meters(lat1, lng1, lat2, lng2)


def _coords(point: Position | Step) -> tuple[float, float]:
    if isinstance(point, Position):
        return point.latitude, point.longitude
    return point.lat, point.lng
