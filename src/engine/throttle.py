"""Decide when a location ping or a step status is worth writing."""

import logging
from datetime import datetime
from typing import NamedTuple

from src.clients.distance import haversine_meters
from src.models.position import Position
from src.models.status import StatusSnapshot, StepStatus

logger = logging.getLogger(__name__)

MIN_DISTANCE_TO_SAVE_METERS = 50.0
MIN_INTERVAL_TO_SAVE_SECONDS = 60.0


class PersistedLocation(NamedTuple):
    latitude: float
    longitude: float
    timestamp: datetime


class LocationThrottle:
    """Write the first fix, then only after moving far enough or waiting long enough.

    Args:
        min_distance_meters: Displacement from the last written point that
            forces a write.
        min_interval_seconds: Elapsed time since the last write that forces
            a write.
    """

    def __init__(
        self,
        min_distance_meters: float = MIN_DISTANCE_TO_SAVE_METERS,
        min_interval_seconds: float = MIN_INTERVAL_TO_SAVE_SECONDS,
    ) -> None:
        self.min_distance_meters = min_distance_meters
        self.min_interval_seconds = min_interval_seconds
        self.last_persisted: PersistedLocation | None = None

    def should_persist(self, position: Position, now: datetime | None = None) -> bool:
        """Return True (and remember the point) when *position* should be written.

        Args:
            position: The new fix.
            now: Write time; defaults to the fix timestamp.
        """
        at = now or position.timestamp
        last = self.last_persisted

        if last is not None:
            moved = haversine_meters(
                position.latitude, position.longitude, last.latitude, last.longitude
            )
            elapsed = (at - last.timestamp).total_seconds()
            if moved < self.min_distance_meters and elapsed < self.min_interval_seconds:
                logger.debug("Skipping location write (%.1f m, %.0f s)", moved, elapsed)
                return False

        self.last_persisted = PersistedLocation(position.latitude, position.longitude, at)
        return True

    def reset(self) -> None:
        self.last_persisted = None


class StatusSyncDedupe:
    """Per ``(trip, step)`` memory of the last written status snapshot.

    Two snapshots are equal when status, delta, arrival timestamp, phase and
    performing all match; only a differing snapshot is written.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, StatusSnapshot] = {}

    @staticmethod
    def key(trip_id: str, step_id: str) -> str:
        return f"{trip_id}_{step_id}"

    def should_write(self, trip_id: str, step_id: str, status: StepStatus) -> bool:
        """Return True (and remember the snapshot) when *status* changed."""
        key = self.key(trip_id, step_id)
        snapshot = StatusSnapshot.from_status(status)
        if self._snapshots.get(key) == snapshot:
            return False
        self._snapshots[key] = snapshot
        return True

    def get(self, trip_id: str, step_id: str) -> StatusSnapshot | None:
        return self._snapshots.get(self.key(trip_id, step_id))

    def reset(self) -> None:
        self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)
