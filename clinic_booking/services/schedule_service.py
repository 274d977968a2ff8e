"""Service for maintaining doctors' weekly schedules."""

from uuid import UUID

import structlog

from clinic_booking.core.exceptions import ConflictException, NotFoundException
from clinic_booking.core.redis_client import CacheManager
from clinic_booking.repositories.booking_repository import BookingRepository
from clinic_booking.schemas.schedules import DayOfWeek, ScheduleEntryCreate, ScheduleEntryResponse
from clinic_booking.services.schedule_index import invalidate_schedule_cache
from clinic_booking.services.transactions import TransactionRunner

logger = structlog.get_logger(__name__)

WEEKDAYS = list(DayOfWeek)


class ScheduleService:
    """Adds and removes schedule entries, keeping the schedule cache coherent."""

    def __init__(self, transactions: TransactionRunner, cache: CacheManager | None = None):
        """Initialize service with a transaction runner and optional cache."""
        self.transactions = transactions
        self.cache = cache

    async def list_entries(self, doctor_id: UUID) -> list[ScheduleEntryResponse]:
        """
        List a doctor's schedule entries.

        Args:
            doctor_id: Doctor ID

        Returns:
            Schedule entries ordered by weekday and start time
        """

        async def work(repo: BookingRepository) -> list[ScheduleEntryResponse]:
            rows = await repo.list_schedule_entries(doctor_id)
            entries = [ScheduleEntryResponse.model_validate(dict(row._mapping)) for row in rows]
            return sorted(entries, key=lambda e: (WEEKDAYS.index(e.day_of_week), e.start_time))

        return await self.transactions.run("list_schedule_entries", work)

    async def add_entry(
        self,
        doctor_id: UUID,
        data: ScheduleEntryCreate,
    ) -> ScheduleEntryResponse:
        """
        Add a recurring availability window for a doctor.

        The doctor row is locked, so the new window is not visible to a
        booking for the same doctor that is in flight.

        Args:
            doctor_id: Doctor ID
            data: Window to add

        Returns:
            Created schedule entry

        Raises:
            NotFoundException: If the doctor does not exist
            ConflictException: If the doctor already has a window starting at
                the same time on that day
        """

        async def work(repo: BookingRepository) -> ScheduleEntryResponse:
            if not await repo.lock_doctor(doctor_id):
                raise NotFoundException("Doctor not found")

            existing = await repo.list_schedule_entries(doctor_id)
            if any(
                row.day_of_week == data.day_of_week.value and row.start_time == data.start_time
                for row in existing
            ):
                raise ConflictException(
                    f"Doctor already has a schedule entry on {data.day_of_week.value} "
                    f"starting at {data.start_time.isoformat()}"
                )

            row = await repo.insert_schedule_entry(
                {
                    "doctor_id": doctor_id,
                    "day_of_week": data.day_of_week.value,
                    "start_time": data.start_time,
                    "end_time": data.end_time,
                }
            )
            return ScheduleEntryResponse.model_validate(dict(row._mapping))

        entry = await self.transactions.run("add_schedule_entry", work)
        self._invalidate(doctor_id)

        logger.info(
            "schedule_entry_added",
            schedule_id=str(entry.id),
            doctor_id=str(doctor_id),
            day_of_week=entry.day_of_week.value,
        )
        return entry

    async def remove_entry(self, schedule_id: UUID) -> None:
        """
        Remove a schedule entry.

        Existing appointments in the removed window are left untouched. The
        doctor row is locked as in ``add_entry``.

        Args:
            schedule_id: Schedule entry ID

        Raises:
            NotFoundException: If the entry does not exist
        """

        async def work(repo: BookingRepository) -> UUID:
            entry = await repo.get_schedule_entry(schedule_id)
            if entry is None:
                raise NotFoundException("Schedule entry not found")
            await repo.lock_doctor(entry.doctor_id)
            if await repo.delete_schedule_entry(schedule_id) is None:
                raise NotFoundException("Schedule entry not found")
            return entry.doctor_id

        doctor_id = await self.transactions.run("remove_schedule_entry", work)
        self._invalidate(doctor_id)
        logger.info("schedule_entry_removed", schedule_id=str(schedule_id), doctor_id=str(doctor_id))

    def _invalidate(self, doctor_id: UUID) -> None:
        if self.cache:
            invalidate_schedule_cache(self.cache, doctor_id)
