"""Booking transaction coordinator.

Every appointment or payment write goes through here: the relevant rows are
locked, the conflict checker and ledger guard run against the store inside the
same transaction, and the write happens only if they accept. A rejection is
returned as a ``BookingResult``; nothing is persisted in that case.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

import structlog

from clinic_booking.config import settings
from clinic_booking.core.exceptions import NotFoundException, ValidationException
from clinic_booking.core.metrics import booking_rejections_total
from clinic_booking.core.redis_client import CacheManager
from clinic_booking.repositories.booking_repository import BookingRepository
from clinic_booking.schemas.appointments import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
)
from clinic_booking.schemas.booking import BookingResult, ProposedAppointment, Rejection
from clinic_booking.schemas.payments import PaymentCreate, PaymentResponse, PaymentUpdate
from clinic_booking.services.conflict_checker import ConflictChecker
from clinic_booking.services.payment_guard import PaymentLedgerGuard
from clinic_booking.services.schedule_index import ScheduleIndex
from clinic_booking.services.transactions import TransactionRunner

logger = structlog.get_logger(__name__)

# Fields an update may explicitly clear
NULLABLE_FIELDS = ("room_id", "reason")


class BookingCoordinator:
    """Orchestrates checked appointment and payment mutations."""

    def __init__(
        self,
        transactions: TransactionRunner,
        schedule_cache: CacheManager | None = None,
        cancelled_blocks_slot: bool = settings.booking_cancelled_blocks_slot,
    ):
        """Initialize coordinator with a transaction runner and optional schedule cache."""
        self.transactions = transactions
        self.schedule_cache = schedule_cache
        self.cancelled_blocks_slot = cancelled_blocks_slot

    async def create_appointment(self, data: AppointmentCreate) -> BookingResult:
        """
        Book a new appointment.

        Args:
            data: Appointment creation data

        Returns:
            Accepted result carrying the new appointment ID, or a rejection

        Raises:
            NotFoundException: If the doctor or room does not exist
        """
        proposed = ProposedAppointment(
            doctor_id=data.doctor_id,
            room_id=data.room_id,
            appointment_date=data.appointment_date,
            start_time=data.start_time,
            end_time=data.end_time,
        )

        async def work(repo: BookingRepository) -> BookingResult:
            await self._lock_slot_resources(repo, proposed)

            rejection = await self._conflict_checker(repo).check_appointment(proposed)
            if rejection:
                return self._reject("create_appointment", rejection)

            values = data.model_dump()
            values["status"] = AppointmentStatus.SCHEDULED.value
            row = await repo.insert_appointment(values)

            logger.info(
                "appointment_created",
                appointment_id=str(row.id),
                doctor_id=str(row.doctor_id),
                appointment_date=row.appointment_date.isoformat(),
            )
            return BookingResult.ok(row.id)

        return await self.transactions.run("create_appointment", work)

    async def update_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentUpdate,
    ) -> BookingResult:
        """
        Reschedule, re-price or change the status of an appointment.

        The set fields are merged onto the stored row. The conflict check runs
        (excluding the appointment itself) whenever the merged appointment
        holds its slot, so any update of such an appointment is refused once
        it no longer fits. The ledger guard runs when the total cost changes.

        Args:
            appointment_id: Appointment ID
            data: Update data

        Returns:
            Accepted result carrying the appointment ID, or a rejection

        Raises:
            NotFoundException: If the appointment, doctor or room does not exist
            ValidationException: If the merged end time is not after the start
        """

        async def work(repo: BookingRepository) -> BookingResult:
            current = await repo.lock_appointment(appointment_id)
            if current is None:
                raise NotFoundException("Appointment not found")

            changes = {
                field: value
                for field, value in data.model_dump(exclude_unset=True).items()
                if value is not None or field in NULLABLE_FIELDS
            }
            merged: dict[str, Any] = {**current._mapping, **changes}

            if merged["end_time"] <= merged["start_time"]:
                raise ValidationException("End time must be after start time")

            old_status = AppointmentStatus(current.status)
            new_status = AppointmentStatus(merged["status"])

            if self._holds_slot(new_status):
                proposed = ProposedAppointment(
                    doctor_id=merged["doctor_id"],
                    room_id=merged["room_id"],
                    appointment_date=merged["appointment_date"],
                    start_time=merged["start_time"],
                    end_time=merged["end_time"],
                )
                await self._lock_slot_resources(repo, proposed)
                rejection = await self._conflict_checker(repo).check_appointment(
                    proposed, exclude_id=appointment_id
                )
                if rejection:
                    return self._reject("update_appointment", rejection)

            new_cost = changes.get("total_cost")
            if new_cost is not None and new_cost != current.total_cost:
                rejection = await PaymentLedgerGuard(repo).check_cost_change(
                    appointment_id, new_cost
                )
                if rejection:
                    return self._reject("update_appointment", rejection)

            if not changes:
                return BookingResult.ok(appointment_id)

            values = dict(changes)
            if "status" in values:
                values["status"] = new_status.value
                if new_status == AppointmentStatus.CANCELLED and old_status != new_status:
                    values["cancelled_at"] = datetime.now(timezone.utc)

            await repo.update_appointment(appointment_id, values)
            logger.info(
                "appointment_updated",
                appointment_id=str(appointment_id),
                fields=sorted(changes),
            )
            return BookingResult.ok(appointment_id)

        return await self.transactions.run("update_appointment", work)

    async def delete_appointment(self, appointment_id: UUID) -> None:
        """
        Delete an appointment and, with it, its payments.

        Args:
            appointment_id: Appointment ID

        Raises:
            NotFoundException: If the appointment does not exist
        """

        async def work(repo: BookingRepository) -> None:
            if await repo.lock_appointment(appointment_id) is None:
                raise NotFoundException("Appointment not found")
            await repo.delete_appointment(appointment_id)
            logger.info("appointment_deleted", appointment_id=str(appointment_id))

        await self.transactions.run("delete_appointment", work)

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If the appointment does not exist
        """

        async def work(repo: BookingRepository) -> AppointmentResponse:
            row = await repo.get_appointment(appointment_id)
            if row is None:
                raise NotFoundException("Appointment not found")
            return AppointmentResponse.model_validate(dict(row._mapping))

        return await self.transactions.run("get_appointment", work)

    async def record_payment(
        self,
        appointment_id: UUID,
        data: PaymentCreate,
    ) -> BookingResult:
        """
        Record a payment against an appointment.

        Args:
            appointment_id: Appointment being paid
            data: Payment data

        Returns:
            Accepted result carrying the new payment ID, or an overpayment
            rejection

        Raises:
            NotFoundException: If the appointment does not exist
        """

        async def work(repo: BookingRepository) -> BookingResult:
            if await repo.lock_appointment(appointment_id) is None:
                raise NotFoundException("Appointment not found")

            rejection = await PaymentLedgerGuard(repo).check_payment(appointment_id, data.amount)
            if rejection:
                return self._reject("record_payment", rejection)

            values = data.model_dump()
            values["appointment_id"] = appointment_id
            values["method"] = data.method.value
            row = await repo.insert_payment(values)

            logger.info(
                "payment_recorded",
                payment_id=str(row.id),
                appointment_id=str(appointment_id),
                amount=str(data.amount),
            )
            return BookingResult.ok(row.id)

        return await self.transactions.run("record_payment", work)

    async def update_payment(self, payment_id: UUID, data: PaymentUpdate) -> BookingResult:
        """
        Correct the amount (and optionally method or reference) of a payment.

        Args:
            payment_id: Payment ID
            data: Corrected payment data

        Returns:
            Accepted result carrying the payment ID, or an overpayment rejection

        Raises:
            NotFoundException: If the payment does not exist
        """

        async def work(repo: BookingRepository) -> BookingResult:
            payment = await repo.get_payment(payment_id)
            if payment is None:
                raise NotFoundException("Payment not found")

            # Appointment before payment, same order as record_payment
            if await repo.lock_appointment(payment.appointment_id) is None:
                raise NotFoundException("Appointment not found")
            payment = await repo.lock_payment(payment_id)
            if payment is None:
                raise NotFoundException("Payment not found")

            rejection = await PaymentLedgerGuard(repo).check_payment(
                payment.appointment_id,
                data.amount,
                prior_amount=Decimal(payment.amount),
            )
            if rejection:
                return self._reject("update_payment", rejection)

            # Method cannot be cleared; reference can
            values = data.model_dump(exclude_unset=True)
            if values.get("method") is None:
                values.pop("method", None)
            else:
                values["method"] = values["method"].value
            await repo.update_payment(payment_id, values)

            logger.info(
                "payment_updated",
                payment_id=str(payment_id),
                appointment_id=str(payment.appointment_id),
                amount=str(data.amount),
            )
            return BookingResult.ok(payment_id)

        return await self.transactions.run("update_payment", work)

    async def list_payments(self, appointment_id: UUID) -> list[PaymentResponse]:
        """
        List payments of an appointment.

        Raises:
            NotFoundException: If the appointment does not exist
        """

        async def work(repo: BookingRepository) -> list[PaymentResponse]:
            if await repo.get_appointment(appointment_id) is None:
                raise NotFoundException("Appointment not found")
            rows = await repo.list_payments(appointment_id)
            return [PaymentResponse.model_validate(dict(row._mapping)) for row in rows]

        return await self.transactions.run("list_payments", work)

    async def get_payment(self, payment_id: UUID) -> PaymentResponse:
        """
        Get payment by ID.

        Raises:
            NotFoundException: If the payment does not exist
        """

        async def work(repo: BookingRepository) -> PaymentResponse:
            row = await repo.get_payment(payment_id)
            if row is None:
                raise NotFoundException("Payment not found")
            return PaymentResponse.model_validate(dict(row._mapping))

        return await self.transactions.run("get_payment", work)

    def _holds_slot(self, status: AppointmentStatus) -> bool:
        return self.cancelled_blocks_slot or not status.releases_slot

    def _conflict_checker(self, repo: BookingRepository) -> ConflictChecker:
        return ConflictChecker(
            repo,
            ScheduleIndex(repo, self.schedule_cache),
            cancelled_blocks_slot=self.cancelled_blocks_slot,
        )

    @staticmethod
    async def _lock_slot_resources(repo: BookingRepository, proposed: ProposedAppointment) -> None:
        # Lock order: doctor, then room
        if not await repo.lock_doctor(proposed.doctor_id):
            raise NotFoundException("Doctor not found")
        if proposed.room_id is not None and not await repo.lock_room(proposed.room_id):
            raise NotFoundException("Room not found")

    @staticmethod
    def _reject(operation: str, rejection: Rejection) -> BookingResult:
        logger.info(
            "booking_rejected",
            operation=operation,
            reason=rejection.reason.value,
            conflicting_id=str(rejection.conflicting_id) if rejection.conflicting_id else None,
        )
        booking_rejections_total.labels(operation=operation, reason=rejection.reason.value).inc()
        return BookingResult.rejected(rejection)
