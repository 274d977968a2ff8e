"""Doctors table model using SQLAlchemy Core.

Only the identity is consumed by the booking core: it is the lock target that
serializes bookings for one doctor and the parent of schedule entries.
"""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    String,
    Table,
    Uuid,
    func,
    text,
)

from clinic_booking.models.base import metadata

doctors = Table(
    "doctors",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("license_number", String(100), nullable=False, unique=True),
    # Primary clinic affiliation
    Column("clinic_id", Uuid, nullable=True),
    Column("active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
