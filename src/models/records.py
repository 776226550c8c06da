from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.models.enums import StepPhase, StepState


class TripLocationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    trip_id: str
    user_email: str | None = None
    step_id: str | None = None
    activity_type: str | None = None
    place_name: str | None = None
    latitude: float
    longitude: float
    accuracy: float | None = None
    source: str = "gps"
    timestamp: datetime
    created_at: datetime | None = None


class StepStatusRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    trip_id: str
    user_email: str | None = None
    step_id: str
    activity_type: str | None = None
    place_name: str | None = None
    status: StepState
    delta_minutes: float | None = None
    actual_arrival_time: datetime | None = None
    phase: StepPhase | None = None
    performing: bool | None = None
    updated_at: datetime | None = None
