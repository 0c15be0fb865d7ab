"""Initial schema - schedule rules, bookings, courses, giftcard ledger, overrides

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Weekly studio rules live in scheduling_rules with product_id NULL; product
rules (introductory classes, couples experiences) carry their product_id.
Giftcard holds reserve balance without debiting it; giftcard_audit and
booking_overrides are append-only.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PRODUCT_TYPES = (
    "CLASS_PACKAGE",
    "SINGLE_CLASS",
    "INTRODUCTORY_CLASS",
    "COUPLES_EXPERIENCE",
    "CUSTOM_EXPERIENCE",
    "GROUP_CLASS",
    "OPEN_STUDIO_SUBSCRIPTION",
)
BOOKING_STATUSES = ("active", "paid", "expired", "cancelled")
BOOKING_SOURCES = ("customer", "admin")
AUDIT_EVENTS = ("hold_created", "hold_consumed", "hold_released", "hold_expired")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

    op.create_table(
        "instructors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("product_type", sa.Enum(*PRODUCT_TYPES, name="product_type"), nullable=False),
        sa.Column("technique", sa.String(30), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "scheduling_rules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("time", sa.String(5), nullable=False),
        sa.Column("instructor_id", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("technique", sa.String(30), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "product_id", "day_of_week", "time", "instructor_id", "technique", name="uq_scheduling_rule_slot"
        ),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_scheduling_rules_day"),
        sa.CheckConstraint("capacity > 0", name="ck_scheduling_rules_capacity"),
    )
    op.create_index("ix_scheduling_rules_day", "scheduling_rules", ["day_of_week"])

    op.create_table(
        "session_overrides",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("override_date", sa.Date(), nullable=False),
        sa.Column("sessions", json_type, nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "override_date", name="uq_session_override_day"),
    )
    op.create_index("ix_session_overrides_date", "session_overrides", ["override_date"])

    op.create_table(
        "technique_capacities",
        sa.Column("technique", sa.String(30), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("technique"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_code", sa.String(32), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_type", sa.String(40), nullable=False),
        sa.Column("technique", sa.String(30), nullable=True),
        sa.Column("participants", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("customer_email", sa.String(320), nullable=False),
        sa.Column(
            "status", sa.Enum(*BOOKING_STATUSES, name="booking_status"), nullable=False, server_default="active"
        ),
        sa.Column(
            "source", sa.Enum(*BOOKING_SOURCES, name="booking_source"), nullable=False, server_default="customer"
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_no_refund", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_details", json_type, nullable=False, server_default="[]"),
        sa.Column("client_note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_code"),
    )
    op.create_index("ix_bookings_status", "bookings", ["status"])

    op.create_table(
        "booking_slots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("slot_time", sa.String(5), nullable=False),
        sa.Column("instructor_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_booking_slots_date_time", "booking_slots", ["slot_date", "slot_time"])

    op.create_table(
        "course_schedules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "course_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("course_schedule_id", sa.Integer(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["course_schedule_id"], ["course_schedules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_course_sessions_date", "course_sessions", ["scheduled_date"])

    op.create_table(
        "giftcards",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(40), nullable=False),
        sa.Column("balance", sa.Numeric(10, 2), nullable=False),
        sa.Column("initial_value", sa.Numeric(10, 2), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("extra", json_type, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sa.CheckConstraint("balance >= 0", name="ck_giftcards_balance"),
    )

    op.create_table(
        "giftcard_holds",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("giftcard_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("booking_temp_ref", sa.String(64), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["giftcard_id"], ["giftcards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount > 0", name="ck_giftcard_holds_amount"),
    )
    op.create_index("ix_giftcard_holds_giftcard", "giftcard_holds", ["giftcard_id"])

    op.create_table(
        "giftcard_audit",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("giftcard_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.Enum(*AUDIT_EVENTS, name="giftcard_audit_event"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("hold_id", sa.String(36), nullable=True),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("booking_temp_ref", sa.String(64), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("extra", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["giftcard_id"], ["giftcards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_giftcard_audit_giftcard", "giftcard_audit", ["giftcard_id"])

    op.create_table(
        "booking_overrides",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("overridden_by", sa.String(200), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("extra", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_booking_overrides_booking", "booking_overrides", ["booking_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_booking_overrides_booking", table_name="booking_overrides")
    op.drop_table("booking_overrides")
    op.drop_index("ix_giftcard_audit_giftcard", table_name="giftcard_audit")
    op.drop_table("giftcard_audit")
    op.drop_index("ix_giftcard_holds_giftcard", table_name="giftcard_holds")
    op.drop_table("giftcard_holds")
    op.drop_table("giftcards")
    op.drop_index("ix_course_sessions_date", table_name="course_sessions")
    op.drop_table("course_sessions")
    op.drop_table("course_schedules")
    op.drop_index("ix_booking_slots_date_time", table_name="booking_slots")
    op.drop_table("booking_slots")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("technique_capacities")
    op.drop_index("ix_session_overrides_date", table_name="session_overrides")
    op.drop_table("session_overrides")
    op.drop_index("ix_scheduling_rules_day", table_name="scheduling_rules")
    op.drop_table("scheduling_rules")
    op.drop_table("products")
    op.drop_table("instructors")

    bind = op.get_bind()
    for name in ("giftcard_audit_event", "booking_source", "booking_status", "product_type"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
