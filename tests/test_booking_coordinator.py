"""Tests for the booking coordinator and its transaction runner."""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from clinic_booking.core.exceptions import (
    ConcurrencyConflictException,
    ConflictException,
    NotFoundException,
    StorageUnavailableException,
    ValidationException,
)
from clinic_booking.models import payments
from clinic_booking.repositories.booking_repository import BookingRepository
from clinic_booking.schemas.appointments import (
    AppointmentCreate,
    AppointmentStatus,
    AppointmentUpdate,
)
from clinic_booking.schemas.booking import RejectionReason
from clinic_booking.schemas.payments import PaymentCreate, PaymentMethod, PaymentUpdate
from clinic_booking.schemas.schedules import DayOfWeek
from clinic_booking.services.booking_coordinator import BookingCoordinator
from clinic_booking.services.schedule_service import ScheduleService
from clinic_booking.services.transactions import TransactionRunner, classify_storage_error


async def create(coordinator: BookingCoordinator, data: dict, **overrides) -> UUID:
    result = await coordinator.create_appointment(AppointmentCreate(**{**data, **overrides}))
    assert result.accepted, result.rejection
    return result.id


def cash(amount: str) -> PaymentCreate:
    return PaymentCreate(amount=Decimal(amount), method=PaymentMethod.CASH)


class TestCreateAppointment:
    """Tests for booking new appointments."""

    @pytest.mark.asyncio
    async def test_create_appointment(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
        room_id: UUID,
    ) -> None:
        """Test booking a free slot inside the schedule."""
        appointment_id = await create(coordinator, appointment_data, room_id=str(room_id))

        appointment = await coordinator.get_appointment(appointment_id)
        assert appointment.status == AppointmentStatus.SCHEDULED
        assert appointment.room_id == room_id
        assert appointment.total_cost == Decimal("100.00")
        assert appointment.cancelled_at is None

    @pytest.mark.asyncio
    async def test_rejected_create_persists_nothing(
        self,
        coordinator: BookingCoordinator,
        session_factory: async_sessionmaker[AsyncSession],
        appointment_data: dict,
    ) -> None:
        """Test a double booking is refused and leaves only the first row."""
        first_id = await create(coordinator, appointment_data)

        result = await coordinator.create_appointment(
            AppointmentCreate(**{**appointment_data, "start_time": "10:15", "end_time": "10:45"})
        )

        assert not result.accepted
        assert result.id is None
        assert result.rejection.reason == RejectionReason.DOCTOR_OVERLAP
        assert result.rejection.conflicting_id == first_id

        async with session_factory() as session:
            repo = BookingRepository(session)
            rows = await repo.appointments_for_doctor(
                UUID(appointment_data["doctor_id"]), date(2024, 5, 6)
            )
        assert [row.id for row in rows] == [first_id]

    @pytest.mark.asyncio
    async def test_create_outside_schedule(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test Monday 11:30-12:30 against a Monday 09:00-12:00 window."""
        result = await coordinator.create_appointment(
            AppointmentCreate(**{**appointment_data, "start_time": "11:30", "end_time": "12:30"})
        )
        assert result.rejection.reason == RejectionReason.OUTSIDE_SCHEDULE

    @pytest.mark.asyncio
    async def test_rejection_is_counted(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test rejections are exported as a labelled counter."""
        labels = {"operation": "create_appointment", "reason": "OutsideSchedule"}
        before = REGISTRY.get_sample_value("booking_rejections_total", labels) or 0.0

        await coordinator.create_appointment(
            AppointmentCreate(**{**appointment_data, "appointment_date": "2024-05-07"})
        )

        assert REGISTRY.get_sample_value("booking_rejections_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_room_shared_by_two_doctors(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
        other_doctor_id: UUID,
        room_id: UUID,
    ) -> None:
        """Test one room cannot host two overlapping appointments."""
        wednesday = {**appointment_data, "appointment_date": "2024-05-08", "room_id": str(room_id)}
        first_id = await create(coordinator, wednesday, start_time="14:00", end_time="15:00")

        result = await coordinator.create_appointment(
            AppointmentCreate(
                **{
                    **wednesday,
                    "doctor_id": str(other_doctor_id),
                    "start_time": "14:30",
                    "end_time": "15:30",
                }
            )
        )
        assert result.rejection.reason == RejectionReason.ROOM_OVERLAP
        assert result.rejection.conflicting_id == first_id

        await create(
            coordinator,
            wednesday,
            doctor_id=str(other_doctor_id),
            start_time="15:00",
            end_time="15:30",
        )

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, coordinator: BookingCoordinator, appointment_data: dict) -> None:
        """Test booking with a doctor that does not exist."""
        with pytest.raises(NotFoundException):
            await coordinator.create_appointment(
                AppointmentCreate(**{**appointment_data, "doctor_id": str(uuid4())})
            )

    @pytest.mark.asyncio
    async def test_unknown_room(self, coordinator: BookingCoordinator, appointment_data: dict) -> None:
        """Test booking with a room that does not exist."""
        with pytest.raises(NotFoundException):
            await coordinator.create_appointment(
                AppointmentCreate(**{**appointment_data, "room_id": str(uuid4())})
            )


class TestUpdateAppointment:
    """Tests for rescheduling and status changes."""

    @pytest.mark.asyncio
    async def test_reschedule_within_own_slot(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test moving an appointment onto a slot overlapping its old one."""
        appointment_id = await create(coordinator, appointment_data)

        result = await coordinator.update_appointment(
            appointment_id, AppointmentUpdate(start_time="10:15", end_time="10:45")
        )

        assert result.accepted
        appointment = await coordinator.get_appointment(appointment_id)
        assert appointment.start_time.isoformat() == "10:15:00"
        assert appointment.end_time.isoformat() == "10:45:00"

    @pytest.mark.asyncio
    async def test_reschedule_onto_other_appointment(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test moving onto another booking is refused and leaves the row unchanged."""
        first_id = await create(coordinator, appointment_data)
        second_id = await create(coordinator, appointment_data, start_time="11:00", end_time="11:30")

        result = await coordinator.update_appointment(
            second_id, AppointmentUpdate(start_time="10:00", end_time="10:30")
        )

        assert result.rejection.reason == RejectionReason.DOCTOR_OVERLAP
        assert result.rejection.conflicting_id == first_id
        unchanged = await coordinator.get_appointment(second_id)
        assert unchanged.start_time.isoformat() == "11:00:00"

    @pytest.mark.asyncio
    async def test_merged_end_before_start(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test an update leaving end before start is invalid."""
        appointment_id = await create(coordinator, appointment_data)

        with pytest.raises(ValidationException):
            await coordinator.update_appointment(appointment_id, AppointmentUpdate(end_time="09:30"))

    @pytest.mark.asyncio
    async def test_any_update_rechecks_held_slot(
        self,
        coordinator: BookingCoordinator,
        schedule_service: ScheduleService,
        appointment_data: dict,
        doctor_id: UUID,
    ) -> None:
        """Test an update touching only the reason is refused once the window is gone."""
        appointment_id = await create(coordinator, appointment_data)
        monday = next(
            entry
            for entry in await schedule_service.list_entries(doctor_id)
            if entry.day_of_week == DayOfWeek.MONDAY
        )
        await schedule_service.remove_entry(monday.id)

        result = await coordinator.update_appointment(
            appointment_id, AppointmentUpdate(reason="Follow-up")
        )
        assert result.rejection.reason == RejectionReason.OUTSIDE_SCHEDULE
        assert (await coordinator.get_appointment(appointment_id)).reason == "Regular checkup"

        result = await coordinator.update_appointment(
            appointment_id, AppointmentUpdate(status=AppointmentStatus.CANCELLED)
        )
        assert result.accepted

    @pytest.mark.asyncio
    async def test_cancel_frees_slot_and_reactivation_is_checked(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test cancelled appointments give the slot back until reactivated."""
        first_id = await create(coordinator, appointment_data)

        result = await coordinator.update_appointment(
            first_id, AppointmentUpdate(status=AppointmentStatus.CANCELLED)
        )
        assert result.accepted
        cancelled = await coordinator.get_appointment(first_id)
        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.cancelled_at is not None

        second_id = await create(coordinator, appointment_data)

        result = await coordinator.update_appointment(
            first_id, AppointmentUpdate(status=AppointmentStatus.SCHEDULED)
        )
        assert result.rejection.reason == RejectionReason.DOCTOR_OVERLAP
        assert result.rejection.conflicting_id == second_id

    @pytest.mark.asyncio
    async def test_cancelled_blocks_slot_when_configured(
        self,
        transactions: TransactionRunner,
        appointment_data: dict,
    ) -> None:
        """Test every stored appointment blocks its slot in blocking mode."""
        coordinator = BookingCoordinator(transactions, cancelled_blocks_slot=True)
        first_id = await create(coordinator, appointment_data)
        await coordinator.update_appointment(
            first_id, AppointmentUpdate(status=AppointmentStatus.CANCELLED)
        )

        result = await coordinator.create_appointment(AppointmentCreate(**appointment_data))
        assert result.rejection.reason == RejectionReason.DOCTOR_OVERLAP

    @pytest.mark.asyncio
    async def test_lower_cost_below_paid(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test re-pricing under the amount already paid is refused."""
        appointment_id = await create(coordinator, appointment_data)
        await coordinator.record_payment(appointment_id, cash("60.00"))

        result = await coordinator.update_appointment(
            appointment_id, AppointmentUpdate(total_cost=Decimal("50.00"))
        )
        assert result.rejection.reason == RejectionReason.OVERPAYMENT

        result = await coordinator.update_appointment(
            appointment_id, AppointmentUpdate(total_cost=Decimal("60.00"))
        )
        assert result.accepted

    @pytest.mark.asyncio
    async def test_update_unknown_appointment(self, coordinator: BookingCoordinator) -> None:
        """Test updating an appointment that does not exist."""
        with pytest.raises(NotFoundException):
            await coordinator.update_appointment(uuid4(), AppointmentUpdate(reason="Follow-up"))


class TestPayments:
    """Tests for the payment ledger."""

    @pytest.mark.asyncio
    async def test_record_payments_up_to_cost(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test cost 100.00: 60.00 accepted, 50.00 refused, 40.00 accepted."""
        appointment_id = await create(coordinator, appointment_data)

        assert (await coordinator.record_payment(appointment_id, cash("60.00"))).accepted

        result = await coordinator.record_payment(appointment_id, cash("50.00"))
        assert result.rejection.reason == RejectionReason.OVERPAYMENT
        assert result.rejection.conflicting_id == appointment_id

        assert (await coordinator.record_payment(appointment_id, cash("40.00"))).accepted

        recorded = await coordinator.list_payments(appointment_id)
        assert sorted(p.amount for p in recorded) == [Decimal("40.00"), Decimal("60.00")]

    @pytest.mark.asyncio
    async def test_ledger_sum_never_exceeds_cost(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test the committed total stays within the cost across many attempts."""
        appointment_id = await create(coordinator, appointment_data)

        for amount in ["30.00", "30.00", "30.00", "30.00", "10.00", "0.01"]:
            await coordinator.record_payment(appointment_id, cash(amount))

        recorded = await coordinator.list_payments(appointment_id)
        assert sum(p.amount for p in recorded) == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_update_payment(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test a correction is checked against the other payments only."""
        appointment_id = await create(coordinator, appointment_data)
        first = await coordinator.record_payment(appointment_id, cash("60.00"))
        await coordinator.record_payment(appointment_id, cash("30.00"))

        result = await coordinator.update_payment(first.id, PaymentUpdate(amount=Decimal("70.00")))
        assert result.accepted

        result = await coordinator.update_payment(first.id, PaymentUpdate(amount=Decimal("70.01")))
        assert result.rejection.reason == RejectionReason.OVERPAYMENT

        payment = await coordinator.get_payment(first.id)
        assert payment.amount == Decimal("70.00")
        assert payment.method == PaymentMethod.CASH

    @pytest.mark.asyncio
    async def test_update_payment_clears_reference(
        self,
        coordinator: BookingCoordinator,
        appointment_data: dict,
    ) -> None:
        """Test a correction can remove the reference but keeps the method."""
        appointment_id = await create(coordinator, appointment_data)
        recorded = await coordinator.record_payment(
            appointment_id,
            PaymentCreate(amount=Decimal("20.00"), method=PaymentMethod.CARD, reference="RCPT-9"),
        )

        result = await coordinator.update_payment(
            recorded.id, PaymentUpdate(amount=Decimal("20.00"), method=None, reference=None)
        )

        assert result.accepted
        payment = await coordinator.get_payment(recorded.id)
        assert payment.reference is None
        assert payment.method == PaymentMethod.CARD

    @pytest.mark.asyncio
    async def test_payment_for_unknown_appointment(self, coordinator: BookingCoordinator) -> None:
        """Test paying for an appointment that does not exist."""
        with pytest.raises(NotFoundException):
            await coordinator.record_payment(uuid4(), cash("10.00"))

    @pytest.mark.asyncio
    async def test_update_unknown_payment(self, coordinator: BookingCoordinator) -> None:
        """Test correcting a payment that does not exist."""
        with pytest.raises(NotFoundException):
            await coordinator.update_payment(uuid4(), PaymentUpdate(amount=Decimal("1.00")))

    @pytest.mark.asyncio
    async def test_delete_appointment_removes_payments(
        self,
        coordinator: BookingCoordinator,
        session_factory: async_sessionmaker[AsyncSession],
        appointment_data: dict,
    ) -> None:
        """Test deleting an appointment takes its payments with it."""
        appointment_id = await create(coordinator, appointment_data)
        await coordinator.record_payment(appointment_id, cash("25.00"))

        await coordinator.delete_appointment(appointment_id)

        with pytest.raises(NotFoundException):
            await coordinator.get_appointment(appointment_id)
        async with session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(payments))
        assert count == 0

        with pytest.raises(NotFoundException):
            await coordinator.delete_appointment(appointment_id)


class FakeDriverError(Exception):
    """Driver exception carrying a SQLSTATE."""

    def __init__(self, message: str, sqlstate: str | None = None):
        super().__init__(message)
        self.sqlstate = sqlstate


def operational_error(sqlstate: str | None, message: str = "driver error") -> OperationalError:
    return OperationalError("SELECT 1", {}, FakeDriverError(message, sqlstate))


class TestTransactionRunner:
    """Tests for retry and error classification."""

    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
    def test_retryable_sqlstates(self, sqlstate: str) -> None:
        """Test serialization, deadlock and lock timeouts are concurrency conflicts."""
        error = classify_storage_error(operational_error(sqlstate))
        assert isinstance(error, ConcurrencyConflictException)
        assert error.retryable

    def test_sqlite_busy_is_retryable(self) -> None:
        """Test a locked SQLite database counts as a concurrency conflict."""
        error = classify_storage_error(operational_error(None, "database is locked"))
        assert isinstance(error, ConcurrencyConflictException)

    def test_integrity_error_is_conflict(self) -> None:
        """Test constraint violations map to a non-retryable conflict."""
        error = classify_storage_error(
            IntegrityError("INSERT", {}, FakeDriverError("duplicate key", "23505"))
        )
        assert type(error) is ConflictException
        assert not error.retryable

    def test_connection_failure_is_unavailable(self) -> None:
        """Test connection failures map to storage unavailable."""
        assert isinstance(
            classify_storage_error(operational_error(None, "connection refused")),
            StorageUnavailableException,
        )
        assert isinstance(classify_storage_error(ConnectionRefusedError()), StorageUnavailableException)

    def test_programming_error_is_not_classified(self) -> None:
        """Test programming errors are left to propagate."""
        assert classify_storage_error(ProgrammingError("SELECT", {}, FakeDriverError("bad"))) is None
        assert classify_storage_error(ValueError("bad")) is None

    @pytest.mark.asyncio
    async def test_retries_until_success(self, transactions: TransactionRunner) -> None:
        """Test a serialization failure is retried with a fresh transaction."""
        attempts = []

        async def work(repo: BookingRepository) -> str:
            attempts.append(repo)
            if len(attempts) < 3:
                raise operational_error("40001")
            return "done"

        assert await transactions.run("test_operation", work) == "done"
        assert len(attempts) == 3
        assert attempts[0].session is not attempts[1].session

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, transactions: TransactionRunner) -> None:
        """Test the conflict surfaces after max_retries + 1 attempts."""
        attempts = 0

        async def work(repo: BookingRepository) -> None:
            nonlocal attempts
            attempts += 1
            raise operational_error("40P01")

        with pytest.raises(ConcurrencyConflictException):
            await transactions.run("test_operation", work)
        assert attempts == transactions.max_retries + 1

    @pytest.mark.asyncio
    async def test_unavailable_is_not_retried(self, transactions: TransactionRunner) -> None:
        """Test storage failures surface immediately."""
        attempts = 0

        async def work(repo: BookingRepository) -> None:
            nonlocal attempts
            attempts += 1
            raise operational_error(None, "server closed the connection")

        with pytest.raises(StorageUnavailableException):
            await transactions.run("test_operation", work)
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_programming_error_propagates(self, transactions: TransactionRunner) -> None:
        """Test unclassified driver errors are re-raised unchanged."""
        error = ProgrammingError("SELECT", {}, FakeDriverError("syntax error"))

        async def work(repo: BookingRepository) -> None:
            raise error

        with pytest.raises(ProgrammingError) as exc_info:
            await transactions.run("test_operation", work)
        assert exc_info.value is error


@pytest.mark.asyncio
async def test_locks_are_row_writes_taken_in_order(
    test_engine: AsyncEngine,
    coordinator: BookingCoordinator,
    appointment_data: dict,
    room_id: UUID,
) -> None:
    """Test slot locks are no-op UPDATEs on doctor then room, before the insert."""
    statements: list[str] = []

    def record(conn, cursor, statement, parameters, context, executemany) -> None:
        statements.append(" ".join(statement.split()).upper())

    event.listen(test_engine.sync_engine, "before_cursor_execute", record)
    try:
        await create(coordinator, appointment_data, room_id=str(room_id))
    finally:
        event.remove(test_engine.sync_engine, "before_cursor_execute", record)

    def first(prefix: str) -> int:
        return next(i for i, s in enumerate(statements) if s.startswith(prefix))

    assert first("UPDATE DOCTORS") < first("UPDATE ROOMS") < first("INSERT INTO APPOINTMENTS")
    assert not any("FOR UPDATE" in s for s in statements)
