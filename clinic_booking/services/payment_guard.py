"""Ceiling check keeping an appointment's payments within its total cost."""

from decimal import Decimal
from uuid import UUID

import structlog

from clinic_booking.core.exceptions import InvariantViolationException
from clinic_booking.repositories.booking_repository import BookingStore
from clinic_booking.schemas.booking import Rejection, RejectionReason

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


class PaymentLedgerGuard:
    """Rejects payment writes that would push the paid total over the cost."""

    def __init__(self, store: BookingStore):
        """Initialize guard with a store."""
        self.store = store

    async def check_payment(
        self,
        appointment_id: UUID,
        amount: Decimal,
        prior_amount: Decimal = ZERO,
    ) -> Rejection | None:
        """
        Check a new or corrected payment against the appointment's total cost.

        Args:
            appointment_id: Appointment the payment belongs to
            amount: New payment amount, or the corrected amount on update
            prior_amount: Amount currently stored for the payment being
                updated; zero for a new payment

        Returns:
            None if accepted, otherwise an overpayment rejection

        Raises:
            InvariantViolationException: If the appointment has no total cost
        """
        paid = sum(await self.store.payment_amounts(appointment_id), ZERO)
        total_paid = paid - prior_amount + amount
        total_cost = await self._total_cost(appointment_id)

        if total_paid > total_cost:
            return Rejection(
                reason=RejectionReason.OVERPAYMENT,
                message=(
                    f"Total payments {total_paid} would exceed appointment cost {total_cost}"
                ),
                conflicting_id=appointment_id,
            )
        return None

    async def check_cost_change(
        self,
        appointment_id: UUID,
        new_total_cost: Decimal,
    ) -> Rejection | None:
        """
        Check that lowering an appointment's cost keeps it covering what is paid.

        Args:
            appointment_id: Appointment being updated
            new_total_cost: Proposed total cost

        Returns:
            None if accepted, otherwise an overpayment rejection
        """
        total_paid = sum(await self.store.payment_amounts(appointment_id), ZERO)
        if total_paid > new_total_cost:
            return Rejection(
                reason=RejectionReason.OVERPAYMENT,
                message=(
                    f"Appointment cost {new_total_cost} is below the {total_paid} already paid"
                ),
                conflicting_id=appointment_id,
            )
        return None

    async def _total_cost(self, appointment_id: UUID) -> Decimal:
        total_cost = await self.store.total_cost(appointment_id)
        if total_cost is None:
            logger.error("invariant_violation", check="total_cost", appointment_id=str(appointment_id))
            raise InvariantViolationException(
                f"Appointment {appointment_id} has no total cost to check payments against"
            )
        return total_cost
