"""Booking check results shared by the checkers and the coordinator."""

from datetime import date, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class RejectionReason(str, Enum):
    """Machine-readable reason a mutation was refused."""

    DOCTOR_OVERLAP = "DoctorOverlap"
    OUTSIDE_SCHEDULE = "OutsideSchedule"
    ROOM_OVERLAP = "RoomOverlap"
    OVERPAYMENT = "Overpayment"


class Rejection(BaseModel):
    """A refused booking or payment mutation."""

    model_config = ConfigDict(frozen=True)

    reason: RejectionReason
    message: str
    conflicting_id: UUID | None = None


class BookingResult(BaseModel):
    """Outcome of one coordinated mutation.

    ``id`` is the created or updated record on acceptance; ``rejection`` is set
    otherwise.
    """

    accepted: bool
    id: UUID | None = None
    rejection: Rejection | None = None

    @classmethod
    def ok(cls, record_id: UUID) -> "BookingResult":
        """Build an accepted result."""
        return cls(accepted=True, id=record_id)

    @classmethod
    def rejected(cls, rejection: Rejection) -> "BookingResult":
        """Build a rejected result."""
        return cls(accepted=False, rejection=rejection)


class ProposedAppointment(BaseModel):
    """The slot-relevant part of an appointment about to be written."""

    model_config = ConfigDict(frozen=True)

    doctor_id: UUID
    room_id: UUID | None = None
    appointment_date: date
    start_time: time
    end_time: time
