"""Availability search for experiences and group classes.

Business rules applied on top of raw capacity:
  * potter's wheel groups under 3 only get pre-established class times
    (weekly rules plus the Tuesday/Wednesday introductory classes);
  * larger wheel groups may pick any operating-hours start, except within a
    session length of a fixed wheel class that starts at a different time;
  * painting is off on Mondays unless the date carries a schedule override;
  * a fixed wheel class always counts at least one participant, even before
    anyone has booked it.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.config import settings
from claybook.services.capacity import (
    COURSE_CONFLICT,
    FIXED_CLASS_CONFLICT,
    CourseBlock,
    SlotOccupancy,
    has_course_conflict,
    load_course_blocks,
    load_occupancies,
    overlapping_participants,
)
from claybook.services.operating_hours import MONDAY, business_hours_for_day, date_range, day_index, time_to_minutes
from claybook.services.schedule import (
    INTRO_WHEEL_TIMES,
    MOLDING,
    POTTERS_WHEEL,
    StudioSchedule,
    load_instructor_names,
    load_studio_schedule,
    technique_pool,
    techniques_share_pool,
)

logger = logging.getLogger(__name__)

SMALL_GROUP_LIMIT = 3
MIN_GROUP_PARTICIPANTS = 2


@dataclass(frozen=True)
class ExperienceSlot:
    date: date
    time: str
    available: int
    total: int
    can_book: bool
    instructor: str
    instructor_id: int
    technique: str
    blocked_reason: str | None = None


@dataclass(frozen=True)
class PoolAvailability:
    requested: int
    booked: int
    total: int
    available: int
    blocked: bool = False


@dataclass(frozen=True)
class GroupClassSlot:
    date: date
    time: str
    can_book: bool
    potters_wheel: PoolAvailability | None
    hand_work: PoolAvailability | None
    blocked_reason: str | None = None


def painting_blocked(day: date, schedule: StudioSchedule) -> bool:
    """Painting is closed on Mondays unless the admin opened the date with an override."""
    return day_index(day) == MONDAY and schedule.override_for(day) is None


def is_fixed_class_conflict(time: str, fixed_times: list[str], session_minutes: int | None = None) -> bool:
    """True when `time` starts inside another fixed class's window, before or after it."""
    length = session_minutes or settings.session_minutes
    start = time_to_minutes(time)
    for fixed in fixed_times:
        fixed_start = time_to_minutes(fixed)
        if start == fixed_start:
            continue
        if fixed_start - length <= start < fixed_start + length:
            return True
    return False


def _instructor_for(day: date, time: str, pool: str, schedule: StudioSchedule) -> int:
    for session in schedule.sessions_for(day):
        if session.time == time and techniques_share_pool(session.technique, pool):
            return session.instructor_id
    return 0


def candidate_times(day: date, technique: str, participants: int, schedule: StudioSchedule) -> list[str]:
    """Start times offered to a group of this size on this date (before capacity)."""
    if schedule.is_closed(day):
        return []
    if technique == "painting" and painting_blocked(day, schedule):
        return []

    pool = technique_pool(technique)
    times = set(schedule.fixed_times(day, pool))

    if pool == POTTERS_WHEEL:
        intro = INTRO_WHEEL_TIMES.get(day_index(day))
        if intro and participants >= MIN_GROUP_PARTICIPANTS:
            times.add(intro)
        if participants >= SMALL_GROUP_LIMIT:
            times.update(business_hours_for_day(day))
    elif participants >= MIN_GROUP_PARTICIPANTS:
        times.update(business_hours_for_day(day))

    return sorted(times)


def find_experience_slots(
    technique: str,
    participants: int,
    start: date,
    days_ahead: int,
    schedule: StudioSchedule,
    occupancies: list[SlotOccupancy],
    course_blocks: list[CourseBlock],
    instructor_names: dict[int, str] | None = None,
) -> list[ExperienceSlot]:
    """Every candidate slot in the window, bookable or not."""
    instructor_names = instructor_names or {}
    pool = technique_pool(technique)
    slots: list[ExperienceSlot] = []

    for day in date_range(start, days_ahead):
        fixed = schedule.fixed_times(day, pool, include_intro=True)

        for time in candidate_times(day, technique, participants, schedule):
            max_capacity = schedule.resolve_capacity(day, time, technique)
            instructor_id = _instructor_for(day, time, pool, schedule)
            blocked_reason = None

            if has_course_conflict(day, time, course_blocks):
                blocked_reason = COURSE_CONFLICT
            elif pool == POTTERS_WHEEL and time not in fixed and is_fixed_class_conflict(time, fixed):
                blocked_reason = FIXED_CLASS_CONFLICT

            if blocked_reason:
                remaining = 0
            else:
                booked = overlapping_participants(day, time, technique, occupancies)
                if pool == POTTERS_WHEEL and time in fixed:
                    booked = max(booked, 1)
                remaining = max_capacity - booked

            slots.append(
                ExperienceSlot(
                    date=day,
                    time=time,
                    available=max(0, remaining),
                    total=max_capacity,
                    can_book=blocked_reason is None and remaining >= participants,
                    instructor=instructor_names.get(instructor_id, "Instructor"),
                    instructor_id=instructor_id,
                    technique=technique,
                    blocked_reason=blocked_reason,
                )
            )

    return slots


def _pool_availability(
    day: date,
    time: str,
    pool: str,
    requested: int,
    schedule: StudioSchedule,
    occupancies: list[SlotOccupancy],
    fixed: list[str],
    blocked: bool,
) -> PoolAvailability:
    total = schedule.resolve_capacity(day, time, pool)
    booked = overlapping_participants(day, time, pool, occupancies)
    if pool == POTTERS_WHEEL and time in fixed:
        booked = max(booked, 1)
    return PoolAvailability(
        requested=requested,
        booked=booked,
        total=total,
        available=0 if blocked else max(0, total - booked),
        blocked=blocked,
    )


def find_group_class_slots(
    potters_wheel: int,
    hand_modeling: int,
    painting: int,
    start: date,
    days_ahead: int,
    schedule: StudioSchedule,
    occupancies: list[SlotOccupancy],
    course_blocks: list[CourseBlock],
) -> list[GroupClassSlot]:
    """Operating-hours slots for a mixed-technique group, with per-pool capacity."""
    hand_work = hand_modeling + painting
    total_participants = potters_wheel + hand_work
    if total_participants < MIN_GROUP_PARTICIPANTS:
        raise ValueError(f"Group classes require at least {MIN_GROUP_PARTICIPANTS} participants")

    slots: list[GroupClassSlot] = []
    for day in date_range(start, days_ahead):
        if schedule.is_closed(day):
            continue
        fixed_potters = schedule.fixed_times(day, POTTERS_WHEEL, include_intro=True)

        for time in business_hours_for_day(day):
            blocked_reason = COURSE_CONFLICT if has_course_conflict(day, time, course_blocks) else None

            potters = None
            if potters_wheel > 0:
                restricted = (
                    time not in fixed_potters
                    if total_participants < SMALL_GROUP_LIMIT
                    else is_fixed_class_conflict(time, fixed_potters)
                )
                if restricted and blocked_reason is None:
                    blocked_reason = FIXED_CLASS_CONFLICT
                potters = _pool_availability(
                    day, time, POTTERS_WHEEL, potters_wheel, schedule, occupancies, fixed_potters,
                    blocked=blocked_reason is not None,
                )

            hand = None
            if hand_work > 0:
                hand_blocked = blocked_reason is not None or (painting > 0 and painting_blocked(day, schedule))
                hand = _pool_availability(
                    day, time, MOLDING, hand_work, schedule, occupancies, [], blocked=hand_blocked
                )

            fits = all(p is None or (not p.blocked and p.available >= p.requested) for p in (potters, hand))
            slots.append(
                GroupClassSlot(
                    date=day,
                    time=time,
                    can_book=blocked_reason is None and fits,
                    potters_wheel=potters,
                    hand_work=hand,
                    blocked_reason=blocked_reason,
                )
            )

    return slots


# ---------------------------------------------------------------------------
# Async entry points
# ---------------------------------------------------------------------------


async def _load_window(db: AsyncSession, start: date, days_ahead: int):
    # one day of margin either side, so overlapping sessions near midnight are never missed
    window_start = start - timedelta(days=1)
    window_end = start + timedelta(days=days_ahead + 1)
    schedule = await load_studio_schedule(db)
    occupancies = await load_occupancies(db, window_start, window_end)
    course_blocks = await load_course_blocks(db, window_start, window_end)
    return schedule, occupancies, course_blocks


async def get_available_slots_for_experience(
    db: AsyncSession,
    technique: str,
    participants: int,
    start: date | None = None,
    days_ahead: int | None = None,
    include_unavailable: bool = False,
) -> list[ExperienceSlot]:
    if participants < 1:
        raise ValueError("participants must be at least 1")
    start = start or date.today()
    days_ahead = days_ahead or settings.search_days_ahead

    schedule, occupancies, course_blocks = await _load_window(db, start, days_ahead)
    instructor_names = await load_instructor_names(db)
    slots = find_experience_slots(
        technique, participants, start, days_ahead, schedule, occupancies, course_blocks, instructor_names
    )
    bookable = [s for s in slots if s.can_book]
    logger.info(
        "Experience search %s x%d from %s (%d days): %d bookable of %d",
        technique,
        participants,
        start.isoformat(),
        days_ahead,
        len(bookable),
        len(slots),
    )
    return slots if include_unavailable else bookable


async def get_group_class_slots(
    db: AsyncSession,
    potters_wheel: int = 0,
    hand_modeling: int = 0,
    painting: int = 0,
    start: date | None = None,
    days_ahead: int | None = None,
) -> list[GroupClassSlot]:
    start = start or date.today()
    days_ahead = days_ahead or settings.search_days_ahead
    schedule, occupancies, course_blocks = await _load_window(db, start, days_ahead)
    return find_group_class_slots(
        potters_wheel, hand_modeling, painting, start, days_ahead, schedule, occupancies, course_blocks
    )
