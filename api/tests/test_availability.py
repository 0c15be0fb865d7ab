"""Availability search tests: experiences and group classes."""

from datetime import date, timedelta

import pytest

from claybook.services.availability import (
    candidate_times,
    find_experience_slots,
    find_group_class_slots,
    get_available_slots_for_experience,
    get_group_class_slots,
    is_fixed_class_conflict,
)
from claybook.services.booking_rules import check_customer_booking, validate_admin_booking
from claybook.services.capacity import (
    COURSE_CONFLICT,
    FIXED_CLASS_CONFLICT,
    CourseBlock,
    SlotOccupancy,
    check_slot_availability,
)
from claybook.services.operating_hours import business_hours_for_day
from claybook.services.schedule import DayOverride, SlotRule, StudioSchedule

MONDAY = date(2030, 6, 3)
TUESDAY = date(2030, 6, 4)


def studio_schedule(**kwargs) -> StudioSchedule:
    weekly = {
        1: [SlotRule("10:00", 2, 22, "painting"), SlotRule("12:00", 2, 22, "hand_modeling")],
        2: [SlotRule("10:00", 1, 8, "potters_wheel"), SlotRule("17:00", 2, 22, "hand_modeling")],
    }
    return StudioSchedule(weekly=weekly, **kwargs)


class TestCandidateTimes:
    def test_single_potter_gets_fixed_classes_only(self):
        assert candidate_times(TUESDAY, "potters_wheel", 1, studio_schedule()) == ["10:00"]

    def test_pair_adds_introductory_class(self):
        assert candidate_times(TUESDAY, "potters_wheel", 2, studio_schedule()) == ["10:00", "19:00"]

    def test_small_group_times_subset_of_large_group(self):
        schedule = studio_schedule()
        small = set(candidate_times(TUESDAY, "potters_wheel", 2, schedule))
        large = set(candidate_times(TUESDAY, "potters_wheel", 3, schedule))
        assert small <= large
        assert set(business_hours_for_day(TUESDAY)) <= large

    def test_solo_hand_modeling_fixed_times_only(self):
        assert candidate_times(TUESDAY, "hand_modeling", 1, studio_schedule()) == ["17:00"]

    def test_hand_work_group_gets_business_hours(self):
        times = candidate_times(TUESDAY, "hand_modeling", 2, studio_schedule())
        assert times == sorted(set(business_hours_for_day(TUESDAY)) | {"17:00"})

    def test_monday_painting_blocked(self):
        assert candidate_times(MONDAY, "painting", 1, studio_schedule()) == []
        assert candidate_times(MONDAY, "painting", 4, studio_schedule()) == []

    def test_monday_hand_modeling_still_offered(self):
        assert candidate_times(MONDAY, "hand_modeling", 1, studio_schedule()) == ["10:00", "12:00"]

    def test_monday_painting_allowed_with_override(self):
        override = DayOverride(sessions=(SlotRule("11:00", 2, 10, "painting"),))
        schedule = studio_schedule(overrides={MONDAY: override})
        assert candidate_times(MONDAY, "painting", 1, schedule) == ["11:00"]

    def test_closed_day(self):
        schedule = studio_schedule(overrides={TUESDAY: DayOverride(sessions=None)})
        assert candidate_times(TUESDAY, "potters_wheel", 5, schedule) == []

    def test_rule_without_technique_is_fixed_for_every_pool(self):
        saturday = date(2030, 6, 8)
        schedule = StudioSchedule(weekly={6: [SlotRule("10:00", 1, 6)]})
        assert candidate_times(saturday, "potters_wheel", 1, schedule) == ["10:00"]
        assert candidate_times(saturday, "painting", 1, schedule) == ["10:00"]


class TestFixedClassConflict:
    def test_window_before_and_after(self):
        assert is_fixed_class_conflict("08:30", ["10:00"])
        assert is_fixed_class_conflict("11:30", ["10:00"])

    def test_same_start_is_not_a_conflict(self):
        assert not is_fixed_class_conflict("10:00", ["10:00"])

    def test_outside_window(self):
        assert not is_fixed_class_conflict("12:00", ["10:00"])
        assert not is_fixed_class_conflict("07:30", ["10:00"])


class TestFindExperienceSlots:
    def test_fixed_wheel_class_counts_one_participant(self):
        slots = find_experience_slots("potters_wheel", 1, TUESDAY, 1, studio_schedule(), [], [])
        [slot] = slots
        assert (slot.time, slot.total, slot.available, slot.can_book) == ("10:00", 8, 7, True)

    def test_large_group_near_fixed_class_blocked(self):
        found = find_experience_slots("potters_wheel", 4, TUESDAY, 1, studio_schedule(), [], [])
        slots = {s.time: s for s in found}
        assert slots["11:00"].blocked_reason == FIXED_CLASS_CONFLICT
        assert not slots["11:00"].can_book
        assert slots["12:00"].can_book
        # the 19:00 introductory class blocks the two hours before it
        assert slots["17:30"].blocked_reason == FIXED_CLASS_CONFLICT
        assert slots["19:00"].blocked_reason is None

    def test_course_blocks_slot(self):
        blocks = [CourseBlock(day=TUESDAY, start="09:00", end="11:00")]
        [slot] = find_experience_slots("potters_wheel", 1, TUESDAY, 1, studio_schedule(), [], blocks)
        assert slot.blocked_reason == COURSE_CONFLICT
        assert slot.available == 0

    def test_not_enough_room(self):
        occupancies = [
            SlotOccupancy(
                booking_id=1,
                product_id=None,
                technique="potters_wheel",
                participants=7,
                is_paid=True,
                slot_date=TUESDAY,
                slot_time="10:00",
            )
        ]
        found = find_experience_slots("potters_wheel", 2, TUESDAY, 1, studio_schedule(), occupancies, [])
        slots = {s.time: s for s in found}
        assert slots["10:00"].available == 1
        assert not slots["10:00"].can_book

    def test_instructor_names(self):
        [slot] = find_experience_slots("potters_wheel", 1, TUESDAY, 1, studio_schedule(), [], [], {1: "Alma"})
        assert slot.instructor == "Alma"
        assert slot.instructor_id == 1


class TestGroupClassSlots:
    def test_requires_two_participants(self):
        with pytest.raises(ValueError):
            find_group_class_slots(1, 0, 0, TUESDAY, 1, studio_schedule(), [], [])

    def test_mixed_group(self):
        slots = {s.time: s for s in find_group_class_slots(2, 2, 0, TUESDAY, 1, studio_schedule(), [], [])}

        ten = slots["10:00"]
        assert ten.can_book
        assert ten.potters_wheel.available == 7
        assert ten.hand_work.total == 22

        eleven = slots["11:00"]
        assert eleven.blocked_reason == FIXED_CLASS_CONFLICT
        assert not eleven.can_book

    def test_small_group_limited_to_fixed_wheel_times(self):
        slots = {s.time: s for s in find_group_class_slots(1, 1, 0, TUESDAY, 1, studio_schedule(), [], [])}
        assert slots["10:00"].can_book
        assert slots["13:00"].blocked_reason == FIXED_CLASS_CONFLICT

    def test_hand_work_only(self):
        slots = find_group_class_slots(0, 1, 1, TUESDAY, 1, studio_schedule(), [], [])
        assert all(s.potters_wheel is None for s in slots)
        assert all(s.can_book for s in slots)

    def test_no_group_classes_on_monday(self):
        assert find_group_class_slots(0, 0, 2, MONDAY, 1, studio_schedule(), [], []) == []

    def test_closed_day_skipped(self):
        schedule = studio_schedule(overrides={TUESDAY: DayOverride(sessions=None)})
        assert find_group_class_slots(2, 0, 0, TUESDAY, 1, schedule, [], []) == []


# ---------------------------------------------------------------------------
# Integration tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_experience_search_bookable_only(db, studio, upcoming, booking_row):
    tuesday = upcoming(2)
    await booking_row(tuesday, "10:00", participants=8)

    slots = await get_available_slots_for_experience(db, "potters_wheel", 1, start=tuesday, days_ahead=1)
    assert slots == []

    everything = await get_available_slots_for_experience(
        db, "potters_wheel", 1, start=tuesday, days_ahead=1, include_unavailable=True
    )
    assert [(s.time, s.can_book) for s in everything] == [("10:00", False)]
    assert everything[0].instructor == "Alma"
    await db.rollback()


@pytest.mark.asyncio
async def test_experience_search_window(db, studio, upcoming):
    saturday = upcoming(6)
    slots = await get_available_slots_for_experience(db, "painting", 2, start=saturday, days_ahead=2)
    days = {s.date for s in slots}
    assert days <= {saturday, saturday + timedelta(days=1)}
    assert saturday in days
    await db.rollback()


@pytest.mark.asyncio
async def test_general_session_agrees_across_checks(db, studio, upcoming):
    saturday = upcoming(6)

    capacity = await check_slot_availability(db, saturday, "10:00", "potters_wheel", 2)
    assert capacity.available

    slots = await get_available_slots_for_experience(db, "potters_wheel", 2, start=saturday, days_ahead=1)
    assert [(s.time, s.can_book, s.instructor) for s in slots] == [("10:00", True, "Alma")]

    assert (await validate_admin_booking(db, saturday, "10:00", "potters_wheel", 2)).is_valid
    assert await check_customer_booking(db, saturday, "10:00", "potters_wheel", 2) == []
    await db.rollback()


@pytest.mark.asyncio
async def test_experience_search_rejects_zero_participants(db):
    with pytest.raises(ValueError):
        await get_available_slots_for_experience(db, "potters_wheel", 0)


@pytest.mark.asyncio
async def test_group_class_search(db, studio, upcoming):
    tuesday = upcoming(2)
    slots = await get_group_class_slots(db, potters_wheel=3, start=tuesday, days_ahead=1)
    assert slots
    assert all(s.date == tuesday for s in slots)
    assert any(s.can_book for s in slots)
    await db.rollback()
