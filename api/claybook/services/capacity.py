"""Capacity aggregation for a (date, time, technique) slot.

Every session runs settings.session_minutes long, so a booking starting at
10:30 still occupies seats at an 11:00 check. Counting is done in pure
functions over plain snapshots; the async loaders below produce those
snapshots from the database.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime

from sqlalchemy import and_, not_, select
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.config import settings
from claybook.models.booking import RELEASED_STATUSES, Booking, BookingSlot, BookingStatus
from claybook.models.course import CourseSchedule, CourseSession
from claybook.services.operating_hours import normalize_time, overlaps, time_to_minutes
from claybook.services.schedule import StudioSchedule, load_studio_schedule, techniques_share_pool

logger = logging.getLogger(__name__)

COURSE_CONFLICT = "course_conflict"
FIXED_CLASS_CONFLICT = "fixed_class_conflict"


@dataclass(frozen=True)
class SlotOccupancy:
    """One booked (date, time) pair, flattened with what counting needs."""

    booking_id: int
    product_id: int | None
    technique: str | None
    participants: int
    is_paid: bool
    slot_date: date
    slot_time: str


@dataclass(frozen=True)
class CourseBlock:
    day: date
    start: str
    end: str


@dataclass(frozen=True)
class SlotCapacity:
    available: bool
    booked: int
    max: int
    available_capacity: int
    message: str
    blocked_reason: str | None = None


def overlapping_participants(
    day: date,
    time: str,
    technique: str | None,
    occupancies: Iterable[SlotOccupancy],
    session_minutes: int | None = None,
) -> int:
    """Participants of the same pool whose session overlaps [time, time + session)."""
    length = session_minutes or settings.session_minutes
    start = time_to_minutes(time)
    total = 0
    for occ in occupancies:
        if occ.slot_date != day or not techniques_share_pool(occ.technique, technique):
            continue
        occ_start = time_to_minutes(occ.slot_time)
        if overlaps(start, start + length, occ_start, occ_start + length):
            total += occ.participants or 1
    return total


def exact_participants(
    day: date, time: str, technique: str | None, occupancies: Iterable[SlotOccupancy]
) -> int:
    return sum(
        occ.participants or 1
        for occ in occupancies
        if occ.slot_date == day and occ.slot_time == time and techniques_share_pool(occ.technique, technique)
    )


def has_course_conflict(
    day: date, time: str, course_blocks: Iterable[CourseBlock], session_minutes: int | None = None
) -> bool:
    length = session_minutes or settings.session_minutes
    start = time_to_minutes(time)
    return any(
        overlaps(start, start + length, time_to_minutes(block.start), time_to_minutes(block.end))
        for block in course_blocks
        if block.day == day
    )


def compute_slot_capacity(
    day: date,
    time: str,
    technique: str,
    participants: int,
    schedule: StudioSchedule,
    occupancies: Iterable[SlotOccupancy],
    course_blocks: Iterable[CourseBlock] = (),
) -> SlotCapacity:
    """Booked-vs-max for one slot.

    booked is the head count starting at exactly this time; the remaining
    capacity subtracts everyone whose session overlaps it. A course running
    over the slot blocks it outright.
    """
    time = normalize_time(time)
    occupancies = list(occupancies)
    max_capacity = schedule.resolve_capacity(day, time, technique)

    if has_course_conflict(day, time, course_blocks):
        return SlotCapacity(
            available=False,
            booked=max_capacity,
            max=max_capacity,
            available_capacity=0,
            message="This time is reserved for a course.",
            blocked_reason=COURSE_CONFLICT,
        )

    booked = exact_participants(day, time, technique, occupancies)
    overlapping = overlapping_participants(day, time, technique, occupancies)
    remaining = max(0, max_capacity - overlapping)
    available = remaining >= participants

    if available:
        message = f"{remaining} of {max_capacity} spots available."
    else:
        message = f"Not enough spots for {participants} participants ({remaining} left)."

    return SlotCapacity(
        available=available,
        booked=booked,
        max=max_capacity,
        available_capacity=remaining,
        message=message,
    )


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


def _is_holding_seats(now: datetime):
    """SQL condition: booking still occupies its slots at `now`."""
    lapsed_prereservation = and_(
        Booking.status == BookingStatus.ACTIVE,
        Booking.is_paid.is_(False),
        Booking.expires_at.is_not(None),
        Booking.expires_at < now,
    )
    return and_(Booking.status.not_in(RELEASED_STATUSES), not_(lapsed_prereservation))


async def load_occupancies(
    db: AsyncSession, start: date, end: date, product_id: int | None = None
) -> list[SlotOccupancy]:
    """Booked slots with start <= date <= end for bookings that still hold seats."""
    now = datetime.now(UTC)
    query = (
        select(
            Booking.id,
            Booking.product_id,
            Booking.technique,
            Booking.participants,
            Booking.is_paid,
            BookingSlot.slot_date,
            BookingSlot.slot_time,
        )
        .join(BookingSlot, BookingSlot.booking_id == Booking.id)
        .where(
            BookingSlot.slot_date >= start,
            BookingSlot.slot_date <= end,
            _is_holding_seats(now),
        )
    )
    if product_id is not None:
        query = query.where(Booking.product_id == product_id)

    result = await db.execute(query)
    return [
        SlotOccupancy(
            booking_id=row.id,
            product_id=row.product_id,
            technique=row.technique,
            participants=row.participants,
            is_paid=row.is_paid,
            slot_date=row.slot_date,
            slot_time=normalize_time(row.slot_time),
        )
        for row in result
    ]


async def load_course_blocks(db: AsyncSession, start: date, end: date) -> list[CourseBlock]:
    """Non-cancelled sessions of active courses in the date range."""
    result = await db.execute(
        select(CourseSession.scheduled_date, CourseSession.start_time, CourseSession.end_time)
        .join(CourseSchedule, CourseSchedule.id == CourseSession.course_schedule_id)
        .where(
            CourseSchedule.is_active.is_(True),
            CourseSession.status != "cancelled",
            CourseSession.scheduled_date >= start,
            CourseSession.scheduled_date <= end,
        )
    )
    return [
        CourseBlock(day=row.scheduled_date, start=normalize_time(row.start_time), end=normalize_time(row.end_time))
        for row in result
    ]


async def check_slot_availability(
    db: AsyncSession,
    day: date,
    time: str,
    technique: str,
    participants: int,
    schedule: StudioSchedule | None = None,
) -> SlotCapacity:
    """Live capacity for one slot, read fresh on every call."""
    if schedule is None:
        schedule = await load_studio_schedule(db)
    occupancies = await load_occupancies(db, day, day)
    course_blocks = await load_course_blocks(db, day, day)
    result = compute_slot_capacity(day, time, technique, participants, schedule, occupancies, course_blocks)
    logger.debug(
        "Capacity %s %s %s x%d: booked=%d max=%d left=%d",
        day.isoformat(),
        time,
        technique,
        participants,
        result.booked,
        result.max,
        result.available_capacity,
    )
    return result
