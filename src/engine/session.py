"""Tracking session: location watch lifecycle and serialized re-evaluation.

One session tracks one traveler against one itinerary. Position fixes from
the provider and a periodic tick both funnel into ``on_position_or_tick``,
which holds a lock so evaluations never overlap. Persistence is fire and
forget: writes run as background tasks and never delay the next fix.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Coroutine, Sequence
from datetime import UTC, datetime, timedelta

from src.clients.location import LocationProvider, has_granted_permission
from src.config import Settings, get_settings
from src.engine.messages import COMPLETED_MESSAGE, FALLBACK_MESSAGE, derive_status_level
from src.engine.notifications import Notifier, detect_notifications
from src.engine.selector import select_current_step, sort_steps
from src.engine.status import StatusEngine
from src.engine.throttle import LocationThrottle, StatusSyncDedupe
from src.models.enums import SessionPhase, StatusLevel
from src.models.itinerary import Step, Trip
from src.models.position import Position
from src.models.records import StepStatusRecord, TripLocationRecord
from src.models.status import CompletionFlash, StepStatus, TrackingSnapshot
from src.storage.sink import PersistenceSink
from src.tools.error_messages import PERMISSION_DENIED_MESSAGE, to_friendly_location_error

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TrackingSession:
    """Session controller for one trip.

    Args:
        trip: Trip identity (id + owner email) used for persistence.
        steps: Itinerary steps; sorted by start internally.
        provider: Location provider supplying permissions and the watch.
        sink: Optional persistence sink for pings and step statuses.
        notifier: Optional notifier for status-change notifications.
        settings: Tracking configuration; defaults to ``get_settings()``.
        clock: Source of "now"; injectable for tests.
    """

    def __init__(
        self,
        trip: Trip,
        steps: Sequence[Step],
        provider: LocationProvider,
        sink: PersistenceSink | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.trip = trip
        self.steps = sort_steps(steps)
        self.provider = provider
        self.sink = sink
        self.notifier = notifier
        self._clock = clock or utc_now

        self.engine = StatusEngine(self.steps, self.settings.geofence_radius_meters)
        self.location_throttle = LocationThrottle(
            self.settings.location_min_distance_meters,
            self.settings.location_min_interval_seconds,
        )
        self.status_dedupe = StatusSyncDedupe()

        self.is_tracking = False
        self.is_starting_tracking = False
        self.watch_handle: str | None = None
        self.error: str | None = None
        self.current_position: Position | None = None
        self.positions_history: deque[Position] = deque(
            maxlen=self.settings.positions_history_limit
        )
        self.last_update: datetime | None = None
        self.current_step: Step | None = None
        self.distance_to_current_step: int | None = None
        self.completion_flash: CompletionFlash | None = None

        self._had_first_fix = False
        self._last_current_step: Step | None = None
        self._lock = asyncio.Lock()
        self._ticker: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def phase(self) -> SessionPhase:
        if self.is_starting_tracking:
            return SessionPhase.STARTING
        if self.is_tracking:
            return SessionPhase.TRACKING
        return SessionPhase.IDLE

    async def start_tracking(self) -> None:
        """Check permissions and open the location watch.

        A second call while starting or tracking is ignored. Any failure here
        is fatal: the session returns to idle with ``error`` set.
        """
        if self.is_tracking or self.is_starting_tracking:
            return

        self.error = None
        self.is_starting_tracking = True
        self._had_first_fix = False
        await self._clear_notification_flags()
        self._start_ticker()
        logger.info("Starting tracking for trip %s", self.trip.id)

        try:
            try:
                permission = await self.provider.check_permissions()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Permission check failed, requesting instead: %s", exc)
                permission = None

            if not has_granted_permission(permission):
                requested = await self.provider.request_permissions()
                if not has_granted_permission(requested):
                    logger.warning("Location permission denied for trip %s", self.trip.id)
                    self.error = PERMISSION_DENIED_MESSAGE
                    self._reset_to_idle()
                    return

            handle = await self.provider.watch_position(
                self.settings.watch_options, self._on_watch_event
            )
            self.watch_handle = handle
            self.is_tracking = True
        except Exception as exc:
            logger.exception("Failed to start tracking for trip %s", self.trip.id)
            friendly = to_friendly_location_error(exc, include_retry_hint=False)
            self.error = friendly.message or "Failed to start tracking"
            self.watch_handle = None
            self._reset_to_idle()

    async def stop_tracking(self) -> None:
        """Release the watch and return to idle, whatever the release does."""
        try:
            await self._release_watch(self.watch_handle)
        finally:
            await self._end_session()
            self.error = None
            logger.info("Stopped tracking for trip %s", self.trip.id)

    async def close(self) -> None:
        """Teardown: stop if a watch or ticker is still alive."""
        if self.watch_handle is not None or self.is_tracking or self.is_starting_tracking:
            await self.stop_tracking()
        self._stop_ticker()

    async def __aenter__(self) -> "TrackingSession":
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.close()

    async def _end_session(self) -> None:
        """Go idle and forget per-session memory. ``error`` is left for the caller."""
        self.watch_handle = None
        self._reset_to_idle()
        self._had_first_fix = False
        await self._clear_notification_flags()
        self.completion_flash = None
        self.location_throttle.reset()
        self.status_dedupe.reset()

    def _reset_to_idle(self) -> None:
        self.is_tracking = False
        self.is_starting_tracking = False
        self._stop_ticker()

    async def _release_watch(self, handle: str | None) -> None:
        if handle is None:
            return
        try:
            await self.provider.clear_watch(handle)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to clear watch %s: %s", handle, exc)

    async def _clear_notification_flags(self) -> None:
        if self.sink is None:
            return
        try:
            await self.sink.clear_trip_notification_flags(self.trip.id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to clear notification flags: %s", exc)

    # ── Ticking ───────────────────────────────────────────────────────────

    def _start_ticker(self) -> None:
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.create_task(self._tick_loop())

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.tick_interval_seconds)
            try:
                await self.on_position_or_tick(None)
            except Exception:  # noqa: BLE001
                logger.exception("Tick evaluation failed for trip %s", self.trip.id)

    # ── Event handling ────────────────────────────────────────────────────

    async def _on_watch_event(self, position: Position | None, error: object | None) -> None:
        if error is not None:
            friendly = to_friendly_location_error(error, include_retry_hint=True)
            logger.warning("Location error (fatal=%s): %s", friendly.fatal, error)
            self.error = friendly.message
            if friendly.fatal:
                try:
                    await self._release_watch(self.watch_handle)
                finally:
                    await self._end_session()
            return

        if position is None:
            return
        await self.on_position_or_tick(position)

    async def on_position_or_tick(self, event: Position | None = None) -> None:
        """Single entry point for a new fix (*event*) or a timer tick (``None``)."""
        async with self._lock:
            now = self._clock()
            if event is not None:
                self._accept_fix(event)
            self._evaluate(now, event)

    def _accept_fix(self, position: Position) -> None:
        self.current_position = position
        self.last_update = position.timestamp
        self.error = None
        if not self._had_first_fix:
            self._had_first_fix = True
            self.is_starting_tracking = False
        self.positions_history.append(position)

    def _evaluate(self, now: datetime, fix: Position | None) -> None:
        before = dict(self.engine.statuses)

        if not self.steps:
            self.current_step = None
            self.distance_to_current_step = None
            if fix is not None:
                self._persist_location(fix, None)
            return

        step = select_current_step(self.steps, now)
        self._handle_step_transition(step, now)
        self.current_step = step

        evaluation = None
        if step is not None:
            evaluation = self.engine.evaluate(step, now, self.current_position)

        if evaluation is not None and evaluation.distance_meters is not None:
            self.distance_to_current_step = round(evaluation.distance_meters)
        elif step is None or self.current_position is None:
            self.distance_to_current_step = None

        if fix is not None:
            self._persist_location(fix, step)
        if evaluation is not None:
            self._sync_step_status(step, evaluation.status)  # type: ignore[arg-type]

        self._dispatch_notifications(before)

    def _handle_step_transition(self, step: Step | None, now: datetime) -> None:
        previous = self._last_current_step
        self._last_current_step = step
        if previous is None or (step is not None and previous.step_id == step.step_id):
            return

        end = previous.effective_end
        if end is None or now <= end:
            return

        logger.info("Step %s window ended", previous.step_id)
        self.completion_flash = CompletionFlash(
            message=COMPLETED_MESSAGE,
            expires_at=now + timedelta(seconds=self.settings.completion_flash_seconds),
        )
        completed = self.engine.complete_step(previous.step_id, COMPLETED_MESSAGE)
        if completed is not None:
            self._sync_step_status(previous, completed)

    # ── Persistence ───────────────────────────────────────────────────────

    def _persist_location(self, fix: Position, step: Step | None) -> None:
        if not self.location_throttle.should_persist(fix):
            return
        if self.sink is None:
            return
        record = TripLocationRecord(
            trip_id=self.trip.id,
            user_email=self.trip.user_email,
            step_id=step.step_id if step else None,
            activity_type=step.activity_type if step else None,
            place_name=step.place_name if step else None,
            latitude=fix.latitude,
            longitude=fix.longitude,
            accuracy=fix.accuracy,
            source="gps",
            timestamp=fix.timestamp,
        )
        self._spawn(self.sink.save_trip_location(record))

    def _sync_step_status(self, step: Step, status: StepStatus) -> None:
        if not self.status_dedupe.should_write(self.trip.id, step.step_id, status):
            return
        if self.sink is None:
            return
        record = StepStatusRecord(
            trip_id=self.trip.id,
            user_email=self.trip.user_email,
            step_id=step.step_id,
            activity_type=step.activity_type,
            place_name=step.place_name,
            status=status.status,
            delta_minutes=status.delta_minutes,
            actual_arrival_time=status.actual_arrival_time,
            phase=status.phase,
            performing=status.performing,
        )
        self._spawn(self.sink.save_step_status(record))

    def _dispatch_notifications(self, before: dict[str, StepStatus]) -> None:
        if self.notifier is None:
            return
        for notification in detect_notifications(
            self.trip.id, self.steps, before, self.engine.statuses
        ):
            self._spawn(self.notifier.notify_once(notification))

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background write failed: %s", task.exception())

    async def wait_for_pending_writes(self) -> None:
        """Await in-flight background writes (tests and graceful shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Read path ─────────────────────────────────────────────────────────

    @property
    def current_step_status(self) -> StepStatus | None:
        if self.current_step is None:
            return None
        return self.engine.get(self.current_step.step_id)

    def status_message(self, now: datetime | None = None) -> tuple[str, StatusLevel]:
        """Headline message and level, by a fixed priority.

        Error, starting, completion flash, missing data warnings, the step
        message, then the fallback.
        """
        now = now or self._clock()

        if self.error:
            return self.error, StatusLevel.ERROR
        if self.is_starting_tracking:
            return "Starting tracking… Waiting for GPS signal…", StatusLevel.INFO
        if (
            self.is_tracking
            and self.completion_flash is not None
            and self.completion_flash.is_active(now)
        ):
            return self.completion_flash.message, StatusLevel.SUCCESS
        if not self.is_tracking:
            return "Tracking is off", StatusLevel.INFO

        if self.current_position is None:
            return "Waiting for GPS signal…", StatusLevel.INFO
        if not self.steps:
            return (
                "Tracking is on, but this trip has no activities scheduled.",
                StatusLevel.WARNING,
            )
        if self.current_step is None:
            return (
                "Tracking is on, but no upcoming activity was found.",
                StatusLevel.WARNING,
            )

        step_status = self.current_step_status
        if step_status is None:
            return "Calculating your status…", StatusLevel.INFO
        if step_status.message and step_status.message.strip():
            return step_status.message.strip(), derive_status_level(step_status)
        return FALLBACK_MESSAGE, StatusLevel.INFO

    def snapshot(self, now: datetime | None = None) -> TrackingSnapshot:
        message, level = self.status_message(now)
        return TrackingSnapshot(
            is_tracking=self.is_tracking,
            is_starting_tracking=self.is_starting_tracking,
            status_message=message,
            status_level=level,
            current_position=self.current_position,
            positions_history=list(self.positions_history),
            last_update=self.last_update,
            error=self.error,
            current_step=self.current_step,
            distance_to_current_step=self.distance_to_current_step,
            geofence_radius=self.engine.geofence_radius,
            step_statuses=dict(self.engine.statuses),
            current_step_status=self.current_step_status,
        )
