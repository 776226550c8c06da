"""Keeps at most one tracking session alive at a time."""

import asyncio
import logging
from collections.abc import Sequence

from src.clients.location import LocationProvider
from src.config import Settings, get_settings
from src.engine.notifications import Notifier
from src.engine.session import Clock, TrackingSession
from src.models.itinerary import Step, Trip
from src.models.status import TrackingSnapshot
from src.storage.sink import PersistenceSink

logger = logging.getLogger(__name__)


class TrackingManager:
    """Owns the single active ``TrackingSession``.

    Starting a different trip stops the current one first, so only one
    traveler/itinerary pair is ever evaluated.
    """

    def __init__(
        self,
        provider: LocationProvider,
        sink: PersistenceSink | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.provider = provider
        self.sink = sink
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.clock = clock
        self.session: TrackingSession | None = None
        self._lock = asyncio.Lock()

    async def start_trip_tracking(
        self, trip: Trip, steps: Sequence[Step]
    ) -> TrackingSession:
        """Start tracking *trip*, replacing any session for another trip."""
        async with self._lock:
            current = self.session
            if current is not None:
                active = current.is_tracking or current.is_starting_tracking
                if current.trip.id == trip.id and active:
                    return current
                if current.trip.id != trip.id:
                    logger.info(
                        "Switching tracking from trip %s to %s", current.trip.id, trip.id
                    )
                await current.close()

            session = TrackingSession(
                trip,
                steps,
                self.provider,
                sink=self.sink,
                notifier=self.notifier,
                settings=self.settings,
                clock=self.clock,
            )
            self.session = session
            await session.start_tracking()
            return session

    async def stop_trip_tracking(self) -> bool:
        """Stop and discard the active session. Returns False when none existed."""
        async with self._lock:
            if self.session is None:
                return False
            await self.session.stop_tracking()
            self.session = None
            return True

    def snapshot(self) -> TrackingSnapshot:
        if self.session is None:
            return TrackingSnapshot(geofence_radius=self.settings.geofence_radius_meters)
        return self.session.snapshot()

    async def close(self) -> None:
        async with self._lock:
            if self.session is not None:
                await self.session.close()
                self.session = None
