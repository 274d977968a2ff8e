"""Tests for the payment ledger guard."""

from datetime import date, time
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.core.exceptions import InvariantViolationException
from clinic_booking.repositories.booking_repository import BookingRepository
from clinic_booking.schemas.booking import RejectionReason
from clinic_booking.services.payment_guard import PaymentLedgerGuard

from conftest import CLINIC_ID


@pytest_asyncio.fixture
async def appointment_id(
    db_session: AsyncSession,
    repository: BookingRepository,
    doctor_id: UUID,
) -> UUID:
    """Appointment costing 100.00 with one 60.00 payment."""
    row = await repository.insert_appointment(
        {
            "patient_id": uuid4(),
            "doctor_id": doctor_id,
            "clinic_id": CLINIC_ID,
            "appointment_date": date(2024, 5, 6),
            "start_time": time(10, 0),
            "end_time": time(10, 30),
            "total_cost": Decimal("100.00"),
            "status": "scheduled",
        }
    )
    await repository.insert_payment(
        {"appointment_id": row.id, "amount": Decimal("60.00"), "method": "cash"}
    )
    await db_session.commit()
    return row.id


@pytest.mark.asyncio
async def test_rejects_payment_exceeding_cost(
    repository: BookingRepository,
    appointment_id: UUID,
) -> None:
    """Cost 100.00, paid 60.00; another 50.00 would total 110.00."""
    rejection = await PaymentLedgerGuard(repository).check_payment(appointment_id, Decimal("50.00"))
    assert rejection is not None
    assert rejection.reason == RejectionReason.OVERPAYMENT
    assert rejection.conflicting_id == appointment_id
    assert "110.00" in rejection.message


@pytest.mark.asyncio
async def test_accepts_payment_reaching_cost_exactly(
    repository: BookingRepository,
    appointment_id: UUID,
) -> None:
    """Cost 100.00, paid 60.00; 40.00 settles it exactly."""
    assert await PaymentLedgerGuard(repository).check_payment(appointment_id, Decimal("40.00")) is None


@pytest.mark.asyncio
async def test_update_discounts_prior_amount(
    repository: BookingRepository,
    appointment_id: UUID,
) -> None:
    """Test correcting the 60.00 payment to 100.00 replaces rather than adds."""
    guard = PaymentLedgerGuard(repository)
    assert (
        await guard.check_payment(appointment_id, Decimal("100.00"), prior_amount=Decimal("60.00"))
        is None
    )

    rejection = await guard.check_payment(
        appointment_id, Decimal("100.01"), prior_amount=Decimal("60.00")
    )
    assert rejection is not None
    assert rejection.reason == RejectionReason.OVERPAYMENT


@pytest.mark.asyncio
async def test_cost_change_below_paid_is_rejected(
    repository: BookingRepository,
    appointment_id: UUID,
) -> None:
    """Test the cost cannot drop under what has already been paid."""
    guard = PaymentLedgerGuard(repository)

    rejection = await guard.check_cost_change(appointment_id, Decimal("59.99"))
    assert rejection is not None
    assert rejection.reason == RejectionReason.OVERPAYMENT

    assert await guard.check_cost_change(appointment_id, Decimal("60.00")) is None


class MissingCostStore:
    """Store whose appointment has payments but no readable cost."""

    async def payment_amounts(self, appointment_id: UUID) -> list[Decimal]:
        return [Decimal("10.00")]

    async def total_cost(self, appointment_id: UUID) -> Decimal | None:
        return None


@pytest.mark.asyncio
async def test_missing_total_cost_is_invariant_violation() -> None:
    """Test a missing cost is surfaced, never treated as zero or unlimited."""
    guard = PaymentLedgerGuard(MissingCostStore())  # type: ignore[arg-type]
    with pytest.raises(InvariantViolationException):
        await guard.check_payment(uuid4(), Decimal("5.00"))
