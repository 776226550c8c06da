from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.models.enums import (
    LocationErrorKind,
    NotificationScenario,
    StatusLevel,
    StepPhase,
    StepState,
)
from src.models.itinerary import Step
from src.models.position import Position


class StepStatus(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: StepState = StepState.NOT_STARTED
    actual_arrival_time: datetime | None = None
    delta_minutes: float | None = None
    phase: StepPhase = StepPhase.BEFORE_START
    performing: bool = False
    message: str | None = None

    @property
    def arrived(self) -> bool:
        return self.actual_arrival_time is not None


class StatusSnapshot(BaseModel):
    """The fields compared to decide whether a step status is worth re-writing."""

    model_config = ConfigDict(frozen=True)

    status: StepState
    delta_minutes: float | None = None
    arrival_timestamp: float | None = None
    phase: StepPhase | None = None
    performing: bool = False

    @classmethod
    def from_status(cls, status: StepStatus) -> "StatusSnapshot":
        arrival = status.actual_arrival_time
        return cls(
            status=status.status,
            delta_minutes=status.delta_minutes,
            arrival_timestamp=arrival.timestamp() if arrival else None,
            phase=status.phase,
            performing=status.performing,
        )


class CompletionFlash(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


class LocationErrorInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    fatal: bool
    kind: LocationErrorKind = LocationErrorKind.UNCLASSIFIED


class TripNotification(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    trip_id: str
    step_id: str
    scenario: NotificationScenario
    title: str
    body: str


class TrackingSnapshot(BaseModel):
    """Read-only view of a tracking session handed to the host UI."""

    is_tracking: bool = False
    is_starting_tracking: bool = False
    status_message: str = "Tracking is off"
    status_level: StatusLevel = StatusLevel.INFO
    current_position: Position | None = None
    positions_history: list[Position] = []
    last_update: datetime | None = None
    error: str | None = None
    current_step: Step | None = None
    distance_to_current_step: int | None = None
    geofence_radius: float = 150.0
    step_statuses: dict[str, StepStatus] = {}
    current_step_status: StepStatus | None = None
