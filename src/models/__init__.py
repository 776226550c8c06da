from src.models.enums import (
    LocationErrorKind,
    NotificationScenario,
    SessionPhase,
    StatusLevel,
    StepPhase,
    StepState,
)
from src.models.itinerary import Step, Trip
from src.models.position import Position
from src.models.records import StepStatusRecord, TripLocationRecord
from src.models.status import (
    CompletionFlash,
    LocationErrorInfo,
    StatusSnapshot,
    StepStatus,
    TrackingSnapshot,
    TripNotification,
)

__all__ = [
    "CompletionFlash",
    "LocationErrorInfo",
    "LocationErrorKind",
    "NotificationScenario",
    "Position",
    "SessionPhase",
    "StatusLevel",
    "StatusSnapshot",
    "Step",
    "StepPhase",
    "StepState",
    "StepStatus",
    "StepStatusRecord",
    "TrackingSnapshot",
    "Trip",
    "TripLocationRecord",
    "TripNotification",
]
