"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def releases_slot(self) -> bool:
        """Whether an appointment in this status gives its time slot back."""
        return self in (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW)


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment."""

    patient_id: UUID
    doctor_id: UUID
    clinic_id: UUID
    room_id: UUID | None = None
    appointment_date: date
    start_time: time
    end_time: time
    total_cost: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=10, decimal_places=2)
    reason: str | None = Field(None, max_length=255)

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, v: time, info: ValidationInfo) -> time:
        """Validate end time is after start time."""
        start = info.data.get("start_time")
        if start is not None and v <= start:
            raise ValueError("End time must be after start time")
        return v


class AppointmentUpdate(BaseModel):
    """Schema for updating an existing appointment.

    Only the fields that are set are applied; the result is validated against
    the stored row.
    """

    doctor_id: UUID | None = None
    clinic_id: UUID | None = None
    room_id: UUID | None = None
    appointment_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    total_cost: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    status: AppointmentStatus | None = None
    reason: str | None = Field(None, max_length=255)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    doctor_id: UUID
    clinic_id: UUID
    room_id: UUID | None
    appointment_date: date
    start_time: time
    end_time: time
    total_cost: Decimal
    status: AppointmentStatus
    reason: str | None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None

    model_config = {"from_attributes": True}
