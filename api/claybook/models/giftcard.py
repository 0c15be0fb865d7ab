"""Giftcard balance, soft holds and the append-only audit log."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claybook.models.base import Base, JSONType, TimestampMixin, utcnow


class AuditEvent(str, enum.Enum):
    HOLD_CREATED = "hold_created"
    HOLD_CONSUMED = "hold_consumed"
    HOLD_RELEASED = "hold_released"
    HOLD_EXPIRED = "hold_expired"


class Giftcard(TimestampMixin, Base):
    __tablename__ = "giftcards"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    initial_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    extra: Mapped[dict | None] = mapped_column(JSONType, default=dict)

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_giftcards_balance"),)

    def __repr__(self) -> str:
        return f"<Giftcard {self.code} balance={self.balance}>"


class GiftcardHold(TimestampMixin, Base):
    """A reservation against a giftcard balance that has not been debited yet."""

    __tablename__ = "giftcard_holds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    giftcard_id: Mapped[int] = mapped_column(ForeignKey("giftcards.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    booking_id: Mapped[int | None] = mapped_column(ForeignKey("bookings.id", ondelete="SET NULL"))
    booking_temp_ref: Mapped[str | None] = mapped_column(String(64))
    user_id: Mapped[str | None] = mapped_column(String(64))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    giftcard: Mapped["Giftcard"] = relationship(lazy="raise")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_giftcard_holds_amount"),
        Index("ix_giftcard_holds_giftcard", "giftcard_id"),
    )

    def __repr__(self) -> str:
        return f"<GiftcardHold {self.id} giftcard={self.giftcard_id} amount={self.amount}>"


class GiftcardAuditEntry(Base):
    """Immutable record of a hold lifecycle event."""

    __tablename__ = "giftcard_audit"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    giftcard_id: Mapped[int] = mapped_column(ForeignKey("giftcards.id", ondelete="CASCADE"), nullable=False)
    event_type: Mapped[AuditEvent] = mapped_column(
        Enum(AuditEvent, name="giftcard_audit_event", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    hold_id: Mapped[str | None] = mapped_column(String(36))
    booking_id: Mapped[int | None] = mapped_column(ForeignKey("bookings.id", ondelete="SET NULL"))
    booking_temp_ref: Mapped[str | None] = mapped_column(String(64))
    user_id: Mapped[str | None] = mapped_column(String(64))
    extra: Mapped[dict | None] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_giftcard_audit_giftcard", "giftcard_id"),)

    def __repr__(self) -> str:
        return f"<GiftcardAuditEntry {self.event_type.value} {self.amount} giftcard={self.giftcard_id}>"
