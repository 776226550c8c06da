from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, field_validator

# A step without an explicit end is assumed to last this long
DEFAULT_STEP_DURATION = timedelta(hours=2)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Trip(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_email: str | None = None
    destination: str | None = None


class Step(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    step_id: str
    place_name: str = ""
    activity_type: str = "normal_attraction"
    lat: float
    lng: float
    scheduled_start: datetime | None = None
    scheduled_end: datetime | None = None
    date_key: str | None = None
    period: str | None = None

    @field_validator("scheduled_start", "scheduled_end")
    @classmethod
    def _naive_is_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def effective_end(self) -> datetime | None:
        """Scheduled end, or start + 2h when the itinerary gives no end."""
        if self.scheduled_end is not None:
            return self.scheduled_end
        if self.scheduled_start is None:
            return None
        return self.scheduled_start + DEFAULT_STEP_DURATION

    def contains(self, moment: datetime) -> bool:
        """True when *moment* falls inside the step window (both ends inclusive)."""
        end = self.effective_end
        if self.scheduled_start is None or end is None:
            return False
        return self.scheduled_start <= moment <= end
