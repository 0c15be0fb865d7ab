"""All models imported here for Alembic autogenerate discovery."""

from claybook.models.base import Base
from claybook.models.booking import RELEASED_STATUSES, Booking, BookingSlot, BookingSource, BookingStatus
from claybook.models.course import CourseSchedule, CourseSession
from claybook.models.giftcard import AuditEvent, Giftcard, GiftcardAuditEntry, GiftcardHold
from claybook.models.override import BookingOverrideRecord
from claybook.models.schedule import (
    Instructor,
    Product,
    ProductType,
    SchedulingRule,
    SessionOverride,
    Technique,
    TechniqueCapacity,
)

__all__ = [
    "Base",
    "Booking",
    "BookingSlot",
    "BookingSource",
    "BookingStatus",
    "RELEASED_STATUSES",
    "CourseSchedule",
    "CourseSession",
    "Giftcard",
    "GiftcardHold",
    "GiftcardAuditEntry",
    "AuditEvent",
    "BookingOverrideRecord",
    "Instructor",
    "Product",
    "ProductType",
    "SchedulingRule",
    "SessionOverride",
    "Technique",
    "TechniqueCapacity",
]
