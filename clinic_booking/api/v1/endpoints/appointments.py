"""Appointment endpoints."""

from uuid import UUID

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from clinic_booking.dependencies import Coordinator
from clinic_booking.middleware.error_handler import rejection_response
from clinic_booking.schemas.appointments import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
)
from clinic_booking.schemas.payments import PaymentCreate, PaymentResponse

router = APIRouter()

REJECTION_RESPONSES = {
    status.HTTP_409_CONFLICT: {"description": "Booking rejected or concurrent conflict"},
}


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=REJECTION_RESPONSES,
    summary="Book appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    request: Request,
    coordinator: Coordinator,
) -> AppointmentResponse | JSONResponse:
    """
    Book a new appointment.

    Rejected with 409 when the doctor or room is already booked for an
    overlapping time, or the slot is outside the doctor's schedule.

    Args:
        data: Appointment creation data
        request: Request object
        coordinator: Booking coordinator

    Returns:
        Created appointment, or the rejection
    """
    result = await coordinator.create_appointment(data)
    if not result.accepted:
        return rejection_response(request, result.rejection)
    return await coordinator.get_appointment(result.id)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    coordinator: Coordinator,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    return await coordinator.get_appointment(appointment_id)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    responses=REJECTION_RESPONSES,
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    request: Request,
    coordinator: Coordinator,
) -> AppointmentResponse | JSONResponse:
    """
    Reschedule, re-price or change the status of an appointment.

    Args:
        appointment_id: Appointment ID
        data: Update data
        request: Request object
        coordinator: Booking coordinator

    Returns:
        Updated appointment, or the rejection
    """
    result = await coordinator.update_appointment(appointment_id, data)
    if not result.accepted:
        return rejection_response(request, result.rejection)
    return await coordinator.get_appointment(appointment_id)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: UUID,
    coordinator: Coordinator,
) -> Response:
    """Delete an appointment together with its payments."""
    await coordinator.delete_appointment(appointment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{appointment_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=REJECTION_RESPONSES,
    summary="Record payment",
)
async def record_payment(
    appointment_id: UUID,
    data: PaymentCreate,
    request: Request,
    coordinator: Coordinator,
) -> PaymentResponse | JSONResponse:
    """
    Record a payment for an appointment.

    Rejected with 409 when the payments would exceed the appointment's total
    cost.

    Args:
        appointment_id: Appointment ID
        data: Payment data
        request: Request object
        coordinator: Booking coordinator

    Returns:
        Recorded payment, or the rejection
    """
    result = await coordinator.record_payment(appointment_id, data)
    if not result.accepted:
        return rejection_response(request, result.rejection)
    return await coordinator.get_payment(result.id)


@router.get(
    "/{appointment_id}/payments",
    response_model=list[PaymentResponse],
    status_code=status.HTTP_200_OK,
    summary="List appointment payments",
)
async def list_payments(
    appointment_id: UUID,
    coordinator: Coordinator,
) -> list[PaymentResponse]:
    """List the payments recorded for an appointment."""
    return await coordinator.list_payments(appointment_id)
