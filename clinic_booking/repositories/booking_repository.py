"""Storage queries used by the booking core.

The checkers only depend on the ``BookingStore`` protocol, so any storage layer
answering these questions inside its own transaction can drive them.
``BookingRepository`` is the SQLAlchemy Core implementation bound to one
``AsyncSession``.
"""

from collections.abc import Sequence
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import Row, Table, and_, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.models import appointments, doctors, payments, rooms, schedules
from clinic_booking.schemas.appointments import AppointmentStatus
from clinic_booking.schemas.schedules import DayOfWeek

SLOT_RELEASING_STATUSES = tuple(s.value for s in AppointmentStatus if s.releases_slot)


class BookingStore(Protocol):
    """Read side the conflict checker and ledger guard query."""

    async def appointments_for_doctor(
        self,
        doctor_id: UUID,
        on_date: date,
        exclude_id: UUID | None = None,
        include_released: bool = False,
    ) -> Sequence[Any]: ...

    async def appointments_for_room(
        self,
        room_id: UUID,
        on_date: date,
        exclude_id: UUID | None = None,
        include_released: bool = False,
    ) -> Sequence[Any]: ...

    async def availability_windows(
        self, doctor_id: UUID, day: DayOfWeek
    ) -> list[tuple[time, time]]: ...

    async def payment_amounts(self, appointment_id: UUID) -> list[Decimal]: ...

    async def total_cost(self, appointment_id: UUID) -> Decimal | None: ...


class BookingRepository:
    """SQLAlchemy Core access to appointments, payments and schedules."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with a session that owns the transaction."""
        self.session = session

    # Checker queries

    async def appointments_for_doctor(
        self,
        doctor_id: UUID,
        on_date: date,
        exclude_id: UUID | None = None,
        include_released: bool = False,
    ) -> Sequence[Row]:
        """Appointments of a doctor on a date, earliest first."""
        return await self._appointments_on(
            appointments.c.doctor_id == doctor_id, on_date, exclude_id, include_released
        )

    async def appointments_for_room(
        self,
        room_id: UUID,
        on_date: date,
        exclude_id: UUID | None = None,
        include_released: bool = False,
    ) -> Sequence[Row]:
        """Appointments held in a room on a date, earliest first."""
        return await self._appointments_on(
            appointments.c.room_id == room_id, on_date, exclude_id, include_released
        )

    async def _appointments_on(
        self,
        scope: Any,
        on_date: date,
        exclude_id: UUID | None,
        include_released: bool,
    ) -> Sequence[Row]:
        conditions = [scope, appointments.c.appointment_date == on_date]
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)
        if not include_released:
            conditions.append(appointments.c.status.not_in(SLOT_RELEASING_STATUSES))

        stmt = (
            select(appointments.c.id, appointments.c.start_time, appointments.c.end_time)
            .where(and_(*conditions))
            .order_by(appointments.c.start_time, appointments.c.id)
        )
        result = await self.session.execute(stmt)
        return result.fetchall()

    async def availability_windows(self, doctor_id: UUID, day: DayOfWeek) -> list[tuple[time, time]]:
        """Recurring availability windows of a doctor on a weekday."""
        stmt = (
            select(schedules.c.start_time, schedules.c.end_time)
            .where(
                and_(
                    schedules.c.doctor_id == doctor_id,
                    schedules.c.day_of_week == day.value,
                )
            )
            .order_by(schedules.c.start_time)
        )
        result = await self.session.execute(stmt)
        return [(row.start_time, row.end_time) for row in result]

    async def payment_amounts(self, appointment_id: UUID) -> list[Decimal]:
        """Amounts of every payment recorded for an appointment."""
        stmt = select(payments.c.amount).where(payments.c.appointment_id == appointment_id)
        result = await self.session.execute(stmt)
        return [Decimal(amount) for amount in result.scalars()]

    async def total_cost(self, appointment_id: UUID) -> Decimal | None:
        """Total cost of an appointment, None if it cannot be read."""
        stmt = select(appointments.c.total_cost).where(appointments.c.id == appointment_id)
        result = await self.session.execute(stmt)
        cost = result.scalar_one_or_none()
        return None if cost is None else Decimal(cost)

    # Locks, taken in the order appointment, doctor, room, payment. Each is a
    # no-op UPDATE, so a snapshot older than a concurrent holder's commit
    # fails with 40001 instead of reading stale rows.

    async def _touch(self, table: Table, row_id: UUID) -> Row | None:
        stmt = (
            update(table)
            .where(table.c.id == row_id)
            .values(id=table.c.id)
            .returning(table)
        )
        result = await self.session.execute(stmt)
        return result.fetchone()

    async def lock_appointment(self, appointment_id: UUID) -> Row | None:
        """Load an appointment and lock its row for the transaction."""
        return await self._touch(appointments, appointment_id)

    async def lock_doctor(self, doctor_id: UUID) -> bool:
        """Lock a doctor row; False if the doctor does not exist."""
        return await self._touch(doctors, doctor_id) is not None

    async def lock_room(self, room_id: UUID) -> bool:
        """Lock a room row; False if the room does not exist."""
        return await self._touch(rooms, room_id) is not None

    async def lock_payment(self, payment_id: UUID) -> Row | None:
        """Load a payment and lock its row for the transaction."""
        return await self._touch(payments, payment_id)

    # Appointments

    async def get_appointment(self, appointment_id: UUID) -> Row | None:
        """Get an appointment by ID."""
        result = await self.session.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        )
        return result.fetchone()

    async def insert_appointment(self, values: dict[str, Any]) -> Row:
        """Insert an appointment and return the stored row."""
        stmt = insert(appointments).values(**values).returning(appointments)
        result = await self.session.execute(stmt)
        return result.one()

    async def update_appointment(self, appointment_id: UUID, values: dict[str, Any]) -> Row:
        """Update an appointment and return the stored row."""
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(**values, updated_at=datetime.now(timezone.utc))
            .returning(appointments)
        )
        result = await self.session.execute(stmt)
        return result.one()

    async def delete_appointment(self, appointment_id: UUID) -> None:
        """Delete an appointment together with its payments."""
        await self.session.execute(delete(payments).where(payments.c.appointment_id == appointment_id))
        await self.session.execute(delete(appointments).where(appointments.c.id == appointment_id))

    # Payments

    async def get_payment(self, payment_id: UUID) -> Row | None:
        """Get a payment by ID without locking it."""
        result = await self.session.execute(select(payments).where(payments.c.id == payment_id))
        return result.fetchone()

    async def list_payments(self, appointment_id: UUID) -> Sequence[Row]:
        """Payments of an appointment, oldest first."""
        stmt = (
            select(payments)
            .where(payments.c.appointment_id == appointment_id)
            .order_by(payments.c.paid_on, payments.c.id)
        )
        result = await self.session.execute(stmt)
        return result.fetchall()

    async def insert_payment(self, values: dict[str, Any]) -> Row:
        """Insert a payment and return the stored row."""
        result = await self.session.execute(insert(payments).values(**values).returning(payments))
        return result.one()

    async def update_payment(self, payment_id: UUID, values: dict[str, Any]) -> Row:
        """Update a payment and return the stored row."""
        stmt = (
            update(payments)
            .where(payments.c.id == payment_id)
            .values(**values)
            .returning(payments)
        )
        result = await self.session.execute(stmt)
        return result.one()

    # Schedules

    async def list_schedule_entries(self, doctor_id: UUID) -> Sequence[Row]:
        """All schedule entries of a doctor."""
        stmt = (
            select(schedules)
            .where(schedules.c.doctor_id == doctor_id)
            .order_by(schedules.c.day_of_week, schedules.c.start_time)
        )
        result = await self.session.execute(stmt)
        return result.fetchall()

    async def get_schedule_entry(self, schedule_id: UUID) -> Row | None:
        """Get a schedule entry by ID."""
        result = await self.session.execute(select(schedules).where(schedules.c.id == schedule_id))
        return result.fetchone()

    async def insert_schedule_entry(self, values: dict[str, Any]) -> Row:
        """Insert a schedule entry and return the stored row."""
        result = await self.session.execute(insert(schedules).values(**values).returning(schedules))
        return result.one()

    async def delete_schedule_entry(self, schedule_id: UUID) -> Row | None:
        """Delete a schedule entry; returns the deleted row, None if missing."""
        stmt = delete(schedules).where(schedules.c.id == schedule_id).returning(schedules)
        result = await self.session.execute(stmt)
        return result.fetchone()
