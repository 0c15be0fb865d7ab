"""Capacity aggregation tests."""

from datetime import UTC, date, datetime, timedelta

import pytest

from claybook.models import BookingStatus, CourseSchedule, CourseSession
from claybook.services.capacity import (
    COURSE_CONFLICT,
    CourseBlock,
    SlotOccupancy,
    check_slot_availability,
    compute_slot_capacity,
    load_occupancies,
)
from claybook.services.schedule import SlotRule, StudioSchedule

SATURDAY = date(2030, 6, 8)


def occ(time, participants, technique="potters_wheel", day=SATURDAY, booking_id=1):
    return SlotOccupancy(
        booking_id=booking_id,
        product_id=None,
        technique=technique,
        participants=participants,
        is_paid=True,
        slot_date=day,
        slot_time=time,
    )


class TestComputeSlotCapacity:
    schedule = StudioSchedule(weekly={6: [SlotRule("10:00", 1, 6)]})

    def test_empty_slot(self):
        result = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 4, self.schedule, [])
        assert result.available is True
        assert (result.booked, result.max, result.available_capacity) == (0, 6, 6)

    def test_exact_fit(self):
        result = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 2, self.schedule, [occ("10:00", 4)])
        assert result.available is True
        assert result.available_capacity == 2

    def test_over_capacity(self):
        result = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 2, self.schedule, [occ("10:00", 5)])
        assert result.available is False
        assert result.booked == 5
        assert result.available_capacity == 1

    def test_overlapping_session_counts_against_remaining(self):
        # a 09:00 booking runs until 11:00, so it still holds seats at 10:00
        result = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 3, self.schedule, [occ("09:00", 4)])
        assert result.booked == 0
        assert result.available_capacity == 2
        assert result.available is False

    def test_other_pool_not_counted(self):
        bookings = [occ("10:00", 5, technique="painting")]
        result = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 4, self.schedule, bookings)
        assert result.booked == 0
        assert result.available is True

    def test_hand_work_techniques_share_seats(self):
        schedule = StudioSchedule(capacities={"potters_wheel": 8, "molding": 10})
        bookings = [occ("14:00", 6, technique="painting")]
        result = compute_slot_capacity(SATURDAY, "14:00", "hand_modeling", 5, schedule, bookings)
        assert result.max == 10
        assert result.booked == 6
        assert result.available is False

    def test_course_conflict_blocks_outright(self):
        blocks = [CourseBlock(day=SATURDAY, start="09:00", end="11:00")]
        result = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 1, self.schedule, [], blocks)
        assert result.available is False
        assert result.blocked_reason == COURSE_CONFLICT
        assert result.available_capacity == 0

    def test_course_on_other_day_ignored(self):
        blocks = [CourseBlock(day=SATURDAY + timedelta(days=1), start="09:00", end="11:00")]
        result = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 1, self.schedule, [], blocks)
        assert result.blocked_reason is None

    def test_idempotent(self):
        bookings = [occ("10:00", 3)]
        first = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 2, self.schedule, bookings)
        second = compute_slot_capacity(SATURDAY, "10:00", "potters_wheel", 2, self.schedule, bookings)
        assert first == second


# ---------------------------------------------------------------------------
# Integration tests: live counts from the database
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_saturday_rule_empty(db, studio, upcoming):
    saturday = upcoming(6)
    result = await check_slot_availability(db, saturday, "10:00", "potters_wheel", 4)
    assert result.available is True
    assert (result.booked, result.max, result.available_capacity) == (0, 6, 6)
    await db.rollback()


@pytest.mark.asyncio
async def test_saturday_rule_five_paid_plus_two(db, studio, upcoming, booking_row):
    saturday = upcoming(6)
    await booking_row(saturday, "10:00", participants=5)

    result = await check_slot_availability(db, saturday, "10:00", "potters_wheel", 2)
    assert result.available is False
    assert result.booked == 5
    assert result.max == 6
    await db.rollback()


@pytest.mark.asyncio
async def test_released_bookings_free_their_seats(db, studio, upcoming, booking_row):
    saturday = upcoming(6)
    lapsed = datetime.now(UTC) - timedelta(minutes=1)
    await booking_row(saturday, "10:00", participants=2, status=BookingStatus.CANCELLED)
    await booking_row(saturday, "10:00", participants=2, status=BookingStatus.EXPIRED)
    await booking_row(saturday, "10:00", participants=2, is_paid=False, expires_at=lapsed)
    await booking_row(saturday, "10:00", participants=1, is_paid=False)

    occupancies = await load_occupancies(db, saturday, saturday)
    assert [o.participants for o in occupancies] == [1]

    result = await check_slot_availability(db, saturday, "10:00", "potters_wheel", 1)
    assert result.booked == 1
    await db.rollback()


@pytest.mark.asyncio
async def test_course_session_blocks_slot(db, studio, upcoming):
    saturday = upcoming(6)
    course = CourseSchedule(name="Wheel Fundamentals")
    db.add(course)
    await db.flush()
    db.add(CourseSession(course_schedule_id=course.id, scheduled_date=saturday, start_time="09:00", end_time="11:00"))
    await db.commit()

    result = await check_slot_availability(db, saturday, "10:00", "potters_wheel", 1)
    assert result.blocked_reason == COURSE_CONFLICT
    assert result.available is False

    # a slot starting after the course ends is free
    later = await check_slot_availability(db, saturday, "12:00", "potters_wheel", 1)
    assert later.blocked_reason is None
    await db.rollback()


@pytest.mark.asyncio
async def test_inactive_course_ignored(db, studio, upcoming):
    saturday = upcoming(6)
    course = CourseSchedule(name="Archived", is_active=False)
    db.add(course)
    await db.flush()
    db.add(CourseSession(course_schedule_id=course.id, scheduled_date=saturday, start_time="09:00", end_time="11:00"))
    await db.commit()

    result = await check_slot_availability(db, saturday, "10:00", "potters_wheel", 1)
    assert result.blocked_reason is None
    await db.rollback()
