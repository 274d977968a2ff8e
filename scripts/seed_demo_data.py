"""Seed a doctor, a room and a weekday schedule for local testing."""

import asyncio
from datetime import time
from uuid import uuid4

from sqlalchemy import insert

from clinic_booking.database import engine
from clinic_booking.models import doctors, rooms, schedules
from clinic_booking.schemas.schedules import DayOfWeek

WORKING_DAYS = [
    DayOfWeek.MONDAY,
    DayOfWeek.TUESDAY,
    DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY,
    DayOfWeek.FRIDAY,
]


async def seed() -> None:
    """Insert demo rows and print their IDs."""
    clinic_id = uuid4()
    doctor_id = uuid4()
    room_id = uuid4()

    async with engine.begin() as conn:
        await conn.execute(
            insert(doctors).values(
                id=doctor_id,
                first_name="Amina",
                last_name="Okafor",
                license_number=f"LIC-{doctor_id.hex[:8]}",
                clinic_id=clinic_id,
            )
        )
        await conn.execute(
            insert(rooms).values(id=room_id, clinic_id=clinic_id, room_number="101")
        )
        await conn.execute(
            insert(schedules),
            [
                {
                    "doctor_id": doctor_id,
                    "day_of_week": day.value,
                    "start_time": time(9, 0),
                    "end_time": time(17, 0),
                }
                for day in WORKING_DAYS
            ],
        )

    await engine.dispose()
    print(f"clinic_id={clinic_id}")
    print(f"doctor_id={doctor_id}")
    print(f"room_id={room_id}")


if __name__ == "__main__":
    asyncio.run(seed())
