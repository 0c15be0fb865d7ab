"""Booking model.

A booking occupies one or more (date, time) slots for a number of
participants. Its occupied slots are what the capacity aggregator counts.
"""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claybook.models.base import Base, JSONType, TimestampMixin


class BookingStatus(str, enum.Enum):
    ACTIVE = "active"      # Pre-reservation or confirmed, still occupying capacity
    PAID = "paid"
    EXPIRED = "expired"    # Unpaid pre-reservation that timed out
    CANCELLED = "cancelled"


class BookingSource(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


# Statuses that no longer hold a seat.
RELEASED_STATUSES = (BookingStatus.EXPIRED, BookingStatus.CANCELLED)


class Booking(TimestampMixin, Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="SET NULL"))
    product_type: Mapped[str] = mapped_column(String(40), nullable=False)
    technique: Mapped[str | None] = mapped_column(String(30))
    participants: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Customer
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(320), nullable=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [x.value for x in e]),
        default=BookingStatus.ACTIVE,
        nullable=False,
    )
    source: Mapped[BookingSource] = mapped_column(
        Enum(BookingSource, name="booking_source", values_callable=lambda e: [x.value for x in e]),
        default=BookingSource.CUSTOMER,
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    accepted_no_refund: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Payment
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment_details: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    client_note: Mapped[str | None] = mapped_column(Text)

    slots: Mapped[list["BookingSlot"]] = relationship(
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BookingSlot.id",
    )

    __table_args__ = (Index("ix_bookings_status", "status"),)

    def __repr__(self) -> str:
        return f"<Booking {self.booking_code} {self.technique} x{self.participants} {self.status.value}>"


class BookingSlot(Base):
    """One occupied (date, time) pair of a booking."""

    __tablename__ = "booking_slots"

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot_time: Mapped[str] = mapped_column(String(5), nullable=False)  # "HH:MM"
    instructor_id: Mapped[int | None] = mapped_column(Integer)

    booking: Mapped["Booking"] = relationship(back_populates="slots")

    __table_args__ = (Index("ix_booking_slots_date_time", "slot_date", "slot_time"),)

    def __repr__(self) -> str:
        return f"<BookingSlot {self.slot_date} {self.slot_time} booking={self.booking_id}>"
