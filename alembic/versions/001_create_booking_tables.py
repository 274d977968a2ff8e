"""Create booking tables - doctors, rooms, schedules, appointments, payments.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "doctors",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("license_number", sa.String(length=100), nullable=False),
        sa.Column("clinic_id", sa.Uuid(), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("license_number"),
    )

    op.create_table(
        "rooms",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("clinic_id", sa.Uuid(), nullable=False),
        sa.Column("room_number", sa.String(length=50), nullable=False),
        sa.Column("room_type", sa.String(length=20), server_default="consultation", nullable=False),
        sa.CheckConstraint("room_number <> ''", name="rooms_room_number_check"),
        sa.CheckConstraint(
            "room_type IN ('consultation', 'lab', 'surgery', 'other')",
            name="rooms_room_type_check",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("clinic_id", "room_number", name="uq_rooms_clinic_room_number"),
    )

    op.create_table(
        "schedules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("doctor_id", sa.Uuid(), nullable=False),
        sa.Column("day_of_week", sa.String(length=9), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.CheckConstraint("end_time > start_time", name="schedules_time_check"),
        sa.CheckConstraint(
            "day_of_week IN ('Monday', 'Tuesday', 'Wednesday', 'Thursday', "
            "'Friday', 'Saturday', 'Sunday')",
            name="schedules_day_of_week_check",
        ),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "doctor_id", "day_of_week", "start_time", name="uq_schedules_doctor_day_start"
        ),
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("patient_id", sa.Uuid(), nullable=False),
        sa.Column("doctor_id", sa.Uuid(), nullable=False),
        sa.Column("clinic_id", sa.Uuid(), nullable=False),
        sa.Column("room_id", sa.Uuid(), nullable=True),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column(
            "total_cost", sa.Numeric(10, 2), server_default=sa.text("0.00"), nullable=False
        ),
        sa.Column("status", sa.String(length=20), server_default="scheduled", nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("end_time > start_time", name="appointments_time_check"),
        sa.CheckConstraint("total_cost >= 0", name="appointments_total_cost_check"),
        sa.CheckConstraint(
            "status IN ('scheduled', 'completed', 'cancelled', 'no_show')",
            name="appointments_status_check",
        ),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_appointments_doctor_date", "appointments", ["doctor_id", "appointment_date"]
    )
    op.create_index("idx_appointments_room_date", "appointments", ["room_id", "appointment_date"])
    op.create_index("idx_appointments_patient_id", "appointments", ["patient_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("appointment_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("method", sa.String(length=20), nullable=False),
        sa.Column(
            "paid_on", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("reference", sa.String(length=255), nullable=True),
        sa.Column("processed_by", sa.String(length=150), nullable=True),
        sa.CheckConstraint("amount >= 0", name="payments_amount_check"),
        sa.CheckConstraint(
            "method IN ('cash', 'card', 'mobile_money', 'insurance', 'other')",
            name="payments_method_check",
        ),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_payments_appointment_id", "payments", ["appointment_id"])
    op.create_index("idx_payments_paid_on", "payments", ["paid_on"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_payments_paid_on", table_name="payments")
    op.drop_index("idx_payments_appointment_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("idx_appointments_patient_id", table_name="appointments")
    op.drop_index("idx_appointments_room_date", table_name="appointments")
    op.drop_index("idx_appointments_doctor_date", table_name="appointments")
    op.drop_table("appointments")

    op.drop_table("schedules")
    op.drop_table("rooms")
    op.drop_table("doctors")
