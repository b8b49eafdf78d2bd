"""Create businesses, consultants, bookings and year_counters tables

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy stores enum member names
consultant_status = sa.Enum("ACTIVE", "INACTIVE", name="consultantstatus")
booking_status = sa.Enum("DRAFT", "PENDING", "CONFIRMED", "COMPLETED", "CANCELLED", name="bookingstatus")
payment_status = sa.Enum("PENDING", "COMPLETED", "FAILED", name="paymentstatus")


def upgrade() -> None:
    op.create_table(
        "businesses",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("reference_prefix", sa.String, nullable=False, server_default="NAB"),
        sa.Column("timezone", sa.String, nullable=True, server_default="Asia/Kolkata"),
        sa.Column("admin_email", sa.String, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("business_address", sa.String, nullable=True),
        sa.Column("advance_booking_days", sa.Integer, server_default="15"),
        sa.Column("slot_durations", sa.JSON, nullable=True),
        sa.Column("weekly_schedule", sa.JSON, nullable=True),
        sa.Column("off_days", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "consultants",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("business_id", sa.String, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("email", sa.String, nullable=False),
        sa.Column("phone", sa.String, nullable=True),
        sa.Column("specialization", sa.String, nullable=True),
        sa.Column("experience", sa.String, nullable=True),
        sa.Column("status", consultant_status, nullable=False, server_default="ACTIVE", index=True),
        sa.Column("unavailable_slots", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )

    reminder_columns = []
    for label in ("12hr", "1hr", "1min"):
        reminder_columns += [
            sa.Column(f"reminder_{label}_sent", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column(f"reminder_{label}_sent_at", sa.DateTime, nullable=True),
            sa.Column(f"reminder_{label}_message_id", sa.String, nullable=True),
        ]

    op.create_table(
        "bookings",
        sa.Column("reference_id", sa.String, primary_key=True),
        sa.Column("business_id", sa.String, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("customer_name", sa.String, nullable=False),
        sa.Column("customer_email", sa.String, nullable=False),
        sa.Column("customer_phone", sa.String, nullable=False),
        sa.Column("consult_note", sa.Text, nullable=True),
        sa.Column("assigned_consultant", sa.String, nullable=False, server_default="", index=True),
        sa.Column("consultant_name", sa.String, nullable=True),
        sa.Column("consultant_email", sa.String, nullable=True),
        sa.Column("date", sa.Date, nullable=False, index=True),
        sa.Column("time_slot", sa.String(5), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("payment_order_id", sa.String, nullable=True, index=True),
        sa.Column("payment_id", sa.String, nullable=True),
        sa.Column("payment_status", payment_status, nullable=False, server_default="PENDING", index=True),
        sa.Column("status", booking_status, nullable=False, server_default="DRAFT", index=True),
        sa.Column("meet_link", sa.String, nullable=True),
        sa.Column("meet_event_id", sa.String, nullable=True),
        sa.Column("confirmation_sent", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("confirmation_sent_at", sa.DateTime, nullable=True),
        sa.Column("confirmation_message_id", sa.String, nullable=True),
        *reminder_columns,
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("cancelled_at", sa.DateTime, nullable=True),
    )
    # Reminder scan: date + payment status + status per business
    op.create_index("ix_bookings_reminder_scan", "bookings", ["business_id", "date", "payment_status", "status"])

    op.create_table(
        "year_counters",
        sa.Column("business_id", sa.String, sa.ForeignKey("businesses.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("counter", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("year_counters")
    op.drop_index("ix_bookings_reminder_scan", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("consultants")
    op.drop_table("businesses")
    payment_status.drop(op.get_bind(), checkfirst=True)
    booking_status.drop(op.get_bind(), checkfirst=True)
    consultant_status.drop(op.get_bind(), checkfirst=True)
