"""Payment endpoints."""

from uuid import UUID

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from clinic_booking.dependencies import Coordinator
from clinic_booking.middleware.error_handler import rejection_response
from clinic_booking.schemas.payments import PaymentResponse, PaymentUpdate

router = APIRouter()


@router.get(
    "/payments/{payment_id}",
    response_model=PaymentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get payment by ID",
)
async def get_payment(
    payment_id: UUID,
    coordinator: Coordinator,
) -> PaymentResponse:
    """Get a specific payment by ID."""
    return await coordinator.get_payment(payment_id)


@router.patch(
    "/payments/{payment_id}",
    response_model=PaymentResponse,
    status_code=status.HTTP_200_OK,
    responses={status.HTTP_409_CONFLICT: {"description": "Overpayment or concurrent conflict"}},
    summary="Correct payment",
)
async def update_payment(
    payment_id: UUID,
    data: PaymentUpdate,
    request: Request,
    coordinator: Coordinator,
) -> PaymentResponse | JSONResponse:
    """
    Correct the amount of a recorded payment.

    Args:
        payment_id: Payment ID
        data: Corrected payment data
        request: Request object
        coordinator: Booking coordinator

    Returns:
        Updated payment, or the rejection
    """
    result = await coordinator.update_payment(payment_id, data)
    if not result.accepted:
        return rejection_response(request, result.rejection)
    return await coordinator.get_payment(payment_id)
