"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Table,
    Time,
    Uuid,
    func,
    text,
)

from clinic_booking.models.base import metadata

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column("patient_id", Uuid, nullable=False),
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("clinic_id", Uuid, nullable=False),
    # Optional room assignment
    Column(
        "room_id",
        Uuid,
        ForeignKey("rooms.id", ondelete="SET NULL"),
        nullable=True,
    ),
    # Slot
    Column("appointment_date", Date, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    # Financial ceiling for payments
    Column("total_cost", Numeric(10, 2), nullable=False, server_default=text("0.00")),
    # Status management
    Column("status", String(20), nullable=False, server_default="scheduled"),
    Column("reason", String(255), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    # Constraints
    CheckConstraint("end_time > start_time", name="appointments_time_check"),
    CheckConstraint("total_cost >= 0", name="appointments_total_cost_check"),
    CheckConstraint(
        "status IN ('scheduled', 'completed', 'cancelled', 'no_show')",
        name="appointments_status_check",
    ),
)

# Overlap queries are always scoped to one doctor or room on one day
Index("idx_appointments_doctor_date", appointments.c.doctor_id, appointments.c.appointment_date)
Index("idx_appointments_room_date", appointments.c.room_id, appointments.c.appointment_date)
Index("idx_appointments_patient_id", appointments.c.patient_id)
