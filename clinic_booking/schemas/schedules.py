"""Doctor schedule schemas."""

from datetime import date, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ValidationInfo, field_validator


class DayOfWeek(str, Enum):
    """Day of the week, in ``date.weekday()`` order."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def from_date(cls, day: date) -> "DayOfWeek":
        """Get the weekday of a calendar date."""
        return list(cls)[day.weekday()]


class ScheduleEntryCreate(BaseModel):
    """Schema for adding a recurring availability window."""

    day_of_week: DayOfWeek
    start_time: time
    end_time: time

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, v: time, info: ValidationInfo) -> time:
        """Validate end time is after start time."""
        start = info.data.get("start_time")
        if start is not None and v <= start:
            raise ValueError("End time must be after start time")
        return v


class ScheduleEntryResponse(BaseModel):
    """Schema for schedule entry response."""

    id: UUID
    doctor_id: UUID
    day_of_week: DayOfWeek
    start_time: time
    end_time: time

    model_config = {"from_attributes": True}
