"""Database models."""

from clinic_booking.models.appointments import appointments
from clinic_booking.models.base import metadata
from clinic_booking.models.doctors import doctors
from clinic_booking.models.payments import payments
from clinic_booking.models.rooms import rooms
from clinic_booking.models.schedules import schedules

__all__ = [
    "appointments",
    "doctors",
    "metadata",
    "payments",
    "rooms",
    "schedules",
]
