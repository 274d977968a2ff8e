"""Payments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Table,
    Uuid,
    func,
)

from clinic_booking.models.base import metadata

payments = Table(
    "payments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Appointment is the aggregate root; payments go with it
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("amount", Numeric(10, 2), nullable=False),
    Column("method", String(20), nullable=False),
    Column("paid_on", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("reference", String(255), nullable=True),
    Column("processed_by", String(150), nullable=True),
    CheckConstraint("amount >= 0", name="payments_amount_check"),
    CheckConstraint(
        "method IN ('cash', 'card', 'mobile_money', 'insurance', 'other')",
        name="payments_method_check",
    ),
)

Index("idx_payments_appointment_id", payments.c.appointment_id)
Index("idx_payments_paid_on", payments.c.paid_on)
