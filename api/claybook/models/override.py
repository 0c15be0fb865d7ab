"""Admin override audit records."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from claybook.models.base import Base, JSONType, utcnow


class BookingOverrideRecord(Base):
    """Why an admin proceeded past a validation warning. Append-only."""

    __tablename__ = "booking_overrides"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    overridden_by: Mapped[str] = mapped_column(String(200), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    extra: Mapped[dict | None] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_booking_overrides_booking", "booking_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<BookingOverrideRecord booking={self.booking_id} by={self.overridden_by}>"
