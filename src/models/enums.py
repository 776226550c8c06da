from enum import StrEnum


class StepState(StrEnum):
    NOT_STARTED = "not_started"
    UPCOMING = "upcoming"
    EN_ROUTE = "en_route"
    EARLY = "early"
    ON_TIME = "on_time"
    LATE = "late"


class StepPhase(StrEnum):
    BEFORE_START = "before_start"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class StatusLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SessionPhase(StrEnum):
    IDLE = "idle"
    STARTING = "starting"
    TRACKING = "tracking"


class LocationErrorKind(StrEnum):
    PERMISSION_DENIED = "permission_denied"
    SIGNAL_UNAVAILABLE = "signal_unavailable"
    TIMEOUT = "timeout"
    UNCLASSIFIED = "unclassified"


class NotificationScenario(StrEnum):
    LATE_NOT_ARRIVED = "late_not_arrived"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
