"""API v1 router configuration."""

from fastapi import APIRouter

from clinic_booking.api.v1.endpoints import appointments, health, payments, schedules

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(payments.router, tags=["Payments"])
api_router.include_router(schedules.router, tags=["Schedules"])
