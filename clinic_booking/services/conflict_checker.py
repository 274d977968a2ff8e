"""Conflict checks for proposed appointments."""

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from clinic_booking.core.intervals import contains, overlaps
from clinic_booking.repositories.booking_repository import BookingStore
from clinic_booking.schemas.booking import ProposedAppointment, Rejection, RejectionReason
from clinic_booking.schemas.schedules import DayOfWeek
from clinic_booking.services.schedule_index import ScheduleIndex


class ConflictChecker:
    """Decides whether an appointment may occupy its slot.

    Checks run in a fixed order so the same violation is always reported
    first: doctor overlap, schedule containment, room overlap.

    The checker reads through the store it was given and is not a lock; the
    coordinator runs it inside the transaction that performs the write.
    """

    def __init__(
        self,
        store: BookingStore,
        schedule_index: ScheduleIndex,
        cancelled_blocks_slot: bool = False,
    ):
        """Initialize checker with a store, schedule index and slot policy."""
        self.store = store
        self.schedule_index = schedule_index
        self.cancelled_blocks_slot = cancelled_blocks_slot

    async def check_appointment(
        self,
        proposed: ProposedAppointment,
        exclude_id: UUID | None = None,
    ) -> Rejection | None:
        """
        Check a proposed appointment against existing bookings and schedule.

        Args:
            proposed: Slot being written
            exclude_id: ID of the appointment being updated, so it does not
                conflict with itself; None for a new appointment

        Returns:
            None if accepted, otherwise the first rejection found
        """
        # Doctor double-booking
        booked = await self.store.appointments_for_doctor(
            proposed.doctor_id,
            proposed.appointment_date,
            exclude_id=exclude_id,
            include_released=self.cancelled_blocks_slot,
        )
        clash = _first_overlap(booked, proposed)
        if clash is not None:
            return Rejection(
                reason=RejectionReason.DOCTOR_OVERLAP,
                message="Doctor has an overlapping appointment at this time",
                conflicting_id=clash.id,
            )

        # Schedule containment
        weekday = DayOfWeek.from_date(proposed.appointment_date)
        windows = await self.schedule_index.availability_for(proposed.doctor_id, weekday)
        if not any(
            contains(start, end, proposed.start_time, proposed.end_time) for start, end in windows
        ):
            return Rejection(
                reason=RejectionReason.OUTSIDE_SCHEDULE,
                message=f"Appointment is outside the doctor's schedule for {weekday.value}",
            )

        # Room double-booking
        if proposed.room_id is not None:
            booked = await self.store.appointments_for_room(
                proposed.room_id,
                proposed.appointment_date,
                exclude_id=exclude_id,
                include_released=self.cancelled_blocks_slot,
            )
            clash = _first_overlap(booked, proposed)
            if clash is not None:
                return Rejection(
                    reason=RejectionReason.ROOM_OVERLAP,
                    message="Room is booked at this time",
                    conflicting_id=clash.id,
                )

        return None


def _first_overlap(booked: Sequence[Any], proposed: ProposedAppointment) -> Any | None:
    for existing in booked:
        if overlaps(existing.start_time, existing.end_time, proposed.start_time, proposed.end_time):
            return existing
    return None
