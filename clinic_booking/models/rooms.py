"""Rooms table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    String,
    Table,
    UniqueConstraint,
    Uuid,
)

from clinic_booking.models.base import metadata

rooms = Table(
    "rooms",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("clinic_id", Uuid, nullable=False),
    Column("room_number", String(50), nullable=False),
    Column("room_type", String(20), nullable=False, server_default="consultation"),
    CheckConstraint("room_number <> ''", name="rooms_room_number_check"),
    CheckConstraint(
        "room_type IN ('consultation', 'lab', 'surgery', 'other')",
        name="rooms_room_type_check",
    ),
    # Room numbers are unique per clinic
    UniqueConstraint("clinic_id", "room_number", name="uq_rooms_clinic_room_number"),
)
