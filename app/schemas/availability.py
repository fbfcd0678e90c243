"""Weekly availability schemas."""

from datetime import time
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class DayOfWeek(str, Enum):
    """Weekday names as stored in the weekly schedule."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


class WeeklyScheduleEntry(BaseModel):
    """One weekday window in a doctor's recurring schedule."""

    day_of_week: DayOfWeek
    start_time: time | None = None
    end_time: time | None = None
    is_available: bool = True

    @field_validator("day_of_week", mode="before")
    @classmethod
    def normalize_day(cls, v: Any) -> Any:
        """Accept weekday names in any case."""
        if isinstance(v, str):
            return v.strip().capitalize()
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "WeeklyScheduleEntry":
        """An enabled day needs a window that ends after it starts."""
        if self.is_available:
            if self.start_time is None or self.end_time is None:
                raise ValueError("start_time and end_time are required for an available day")
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class WeeklyAvailabilityUpdate(BaseModel):
    """Schema for upserting several weekdays at once."""

    days: list[WeeklyScheduleEntry] = Field(..., min_length=1, max_length=7)

    @field_validator("days")
    @classmethod
    def validate_unique_days(cls, v: list[WeeklyScheduleEntry]) -> list[WeeklyScheduleEntry]:
        """Each weekday may appear once."""
        names = [entry.day_of_week for entry in v]
        if len(names) != len(set(names)):
            raise ValueError("Each day_of_week may appear only once")
        return v


class DaySchedule(BaseModel):
    """Schedule for one weekday as seen by the scheduling core.

    ``is_placeholder`` marks the closed default synthesized for a weekday the
    doctor never configured, as opposed to a stored row with
    ``is_available=False``.
    """

    doctor_id: UUID
    day_of_week: DayOfWeek
    start_time: time | None = None
    end_time: time | None = None
    is_available: bool
    is_placeholder: bool = False

    model_config = {"from_attributes": True}

    @classmethod
    def closed(cls, doctor_id: UUID, day_of_week: str) -> "DaySchedule":
        """Closed default for a weekday without a stored row."""
        return cls(
            doctor_id=doctor_id,
            day_of_week=DayOfWeek(day_of_week),
            is_available=False,
            is_placeholder=True,
        )


class WeeklyAvailabilityResponse(BaseModel):
    """Schema for a doctor's full week."""

    doctor_id: UUID
    days: list[DaySchedule]
