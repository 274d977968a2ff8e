"""Doctor weekly availability (schedule) table model."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    String,
    Table,
    Time,
    UniqueConstraint,
    Uuid,
)

from clinic_booking.models.base import metadata

schedules = Table(
    "schedules",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # Monday .. Sunday
    Column("day_of_week", String(9), nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    CheckConstraint("end_time > start_time", name="schedules_time_check"),
    CheckConstraint(
        "day_of_week IN ('Monday', 'Tuesday', 'Wednesday', 'Thursday', "
        "'Friday', 'Saturday', 'Sunday')",
        name="schedules_day_of_week_check",
    ),
    UniqueConstraint("doctor_id", "day_of_week", "start_time", name="uq_schedules_doctor_day_start"),
)
