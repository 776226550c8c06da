"""Fire-and-forget persistence on top of ``DatabaseManager``.

Writes are retried on a busy database and any final failure is logged and
swallowed: tracking must keep running when storage misbehaves.
"""

import logging
from typing import Protocol

from src.clients.resilience import resilient_write
from src.models.records import StepStatusRecord, TripLocationRecord
from src.models.status import TripNotification
from src.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class PersistenceSink(Protocol):
    async def save_trip_location(self, record: TripLocationRecord) -> None: ...

    async def save_step_status(self, record: StepStatusRecord) -> None: ...

    async def clear_trip_notification_flags(self, trip_id: str) -> None: ...


class DatabaseSink:
    """``PersistenceSink`` and ``Notifier`` backed by SQLite."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    async def save_trip_location(self, record: TripLocationRecord) -> None:
        if not record.trip_id:
            return
        try:
            await self._write_location(record)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to save trip location for trip %s", record.trip_id)

    async def save_step_status(self, record: StepStatusRecord) -> None:
        if not record.trip_id or not record.step_id:
            return
        try:
            await self._write_step_status(record)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Failed to save step status %s/%s", record.trip_id, record.step_id
            )

    async def clear_trip_notification_flags(self, trip_id: str) -> None:
        if not trip_id:
            return
        try:
            removed = await self._clear_notifications(trip_id)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to clear notification flags for trip %s", trip_id)
            return
        logger.debug("Cleared %d notification flags for trip %s", removed, trip_id)

    async def notify_once(self, notification: TripNotification) -> bool:
        """Record *notification* unless its key already fired this session."""
        try:
            fresh = await self._record_notification(notification)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to record notification %s", notification.key)
            return False
        if fresh:
            logger.info("Notification %s: %s", notification.key, notification.body)
        return fresh

    @resilient_write
    async def _write_location(self, record: TripLocationRecord) -> None:
        await self.db.save_trip_location(record)

    @resilient_write
    async def _write_step_status(self, record: StepStatusRecord) -> None:
        await self.db.save_step_status(record)

    @resilient_write
    async def _clear_notifications(self, trip_id: str) -> int:
        return await self.db.clear_trip_notifications(trip_id)

    @resilient_write
    async def _record_notification(self, notification: TripNotification) -> bool:
        return await self.db.record_notification(notification)
