"""Doctor schedule endpoints."""

from uuid import UUID

from fastapi import APIRouter, Response, status

from clinic_booking.dependencies import Schedules
from clinic_booking.schemas.schedules import ScheduleEntryCreate, ScheduleEntryResponse

router = APIRouter()


@router.get(
    "/doctors/{doctor_id}/schedules",
    response_model=list[ScheduleEntryResponse],
    status_code=status.HTTP_200_OK,
    summary="List doctor schedule",
)
async def list_schedule(
    doctor_id: UUID,
    schedule_service: Schedules,
) -> list[ScheduleEntryResponse]:
    """List a doctor's recurring availability windows."""
    return await schedule_service.list_entries(doctor_id)


@router.post(
    "/doctors/{doctor_id}/schedules",
    response_model=ScheduleEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add schedule entry",
)
async def add_schedule_entry(
    doctor_id: UUID,
    data: ScheduleEntryCreate,
    schedule_service: Schedules,
) -> ScheduleEntryResponse:
    """
    Add a recurring availability window for a doctor.

    Args:
        doctor_id: Doctor ID
        data: Window to add
        schedule_service: Schedule service

    Returns:
        Created schedule entry
    """
    return await schedule_service.add_entry(doctor_id, data)


@router.delete(
    "/schedules/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove schedule entry",
)
async def remove_schedule_entry(
    schedule_id: UUID,
    schedule_service: Schedules,
) -> Response:
    """Remove a schedule entry."""
    await schedule_service.remove_entry(schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
