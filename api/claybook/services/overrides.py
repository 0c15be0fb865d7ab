"""Admin override authorizer.

Records why an admin went ahead past a validation warning. The record is
audit-only: the booking itself is not modified, and a booking keeps every
record it ever received.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.models.booking import Booking
from claybook.models.override import BookingOverrideRecord

logger = logging.getLogger(__name__)


class OverrideError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


async def authorize_override(
    db: AsyncSession,
    booking_id: int,
    overridden_by: str,
    reason: str,
    metadata: dict | None = None,
) -> BookingOverrideRecord:
    """Append an override record for a booking."""
    reason = (reason or "").strip()
    overridden_by = (overridden_by or "").strip()
    if not reason:
        raise OverrideError("An override reason is required")
    if not overridden_by:
        raise OverrideError("The authorizing admin is required")

    exists = await db.execute(select(Booking.id).where(Booking.id == booking_id))
    if exists.scalar_one_or_none() is None:
        raise OverrideError("Booking not found", status_code=404)

    record = BookingOverrideRecord(
        booking_id=booking_id,
        overridden_by=overridden_by,
        reason=reason,
        extra=metadata or {},
    )
    db.add(record)
    await db.flush()

    logger.info("Override recorded for booking %d by %s", booking_id, overridden_by)
    return record


async def list_overrides(db: AsyncSession, booking_id: int) -> list[BookingOverrideRecord]:
    """Chronological override trail for one booking."""
    result = await db.execute(
        select(BookingOverrideRecord)
        .where(BookingOverrideRecord.booking_id == booking_id)
        .order_by(BookingOverrideRecord.created_at, BookingOverrideRecord.id)
    )
    return list(result.scalars().all())
