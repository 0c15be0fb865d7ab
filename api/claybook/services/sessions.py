"""Session generation: rules + overrides -> concrete dated sessions.

Sessions are never stored. Each request expands the rule set over the
horizon and joins the result against current bookings.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.config import settings
from claybook.services.capacity import SlotOccupancy, load_occupancies
from claybook.services.operating_hours import date_range, day_index
from claybook.services.schedule import (
    SlotRule,
    StudioSchedule,
    load_product_schedule,
    load_studio_schedule,
    technique_pool,
    techniques_share_pool,
)

logger = logging.getLogger(__name__)

MONTHLY_WEEKS = 4


@dataclass(frozen=True)
class EnrichedSession:
    id: str
    date: date
    time: str
    instructor_id: int
    capacity: int
    is_override: bool
    paid_bookings_count: int
    total_bookings_count: int
    technique: str | None = None

    @property
    def is_full(self) -> bool:
        return self.paid_bookings_count >= self.capacity


def session_id(day: date, time: str, instructor_id: int) -> str:
    return f"{day.isoformat()}-{time.replace(':', '')}-{instructor_id}"


def _booking_counts(occupancies: Iterable[SlotOccupancy]) -> dict[tuple, tuple[set, set]]:
    """(product_id, date, time) -> (paid booking ids, all booking ids)."""
    counts: dict[tuple, tuple[set, set]] = defaultdict(lambda: (set(), set()))
    for occ in occupancies:
        paid, total = counts[(occ.product_id, occ.slot_date, occ.slot_time)]
        total.add(occ.booking_id)
        if occ.is_paid:
            paid.add(occ.booking_id)
    return counts


def generate_sessions(
    product_id: int,
    rules: Sequence[tuple[int, SlotRule]],
    overrides: Mapping[date, Sequence[SlotRule] | None],
    occupancies: Iterable[SlotOccupancy],
    horizon_days: int,
    today: date,
    include_full: bool = False,
) -> list[EnrichedSession]:
    """Expand a product's weekly rules over [today, today + horizon_days).

    An override of None closes its date; any other override replaces the
    weekly rules for that date. Counts are bookings, not participants.
    Without include_full, sessions whose paid bookings reached capacity are
    dropped.
    """
    counts = _booking_counts(o for o in occupancies if o.product_id == product_id)
    sessions: list[EnrichedSession] = []

    for day in date_range(today, horizon_days):
        if day in overrides:
            override = overrides[day]
            if override is None:
                continue
            candidates = [(slot, True) for slot in override]
        else:
            weekday = day_index(day)
            candidates = [(rule, False) for dow, rule in rules if dow == weekday]

        for slot, is_override in candidates:
            paid, total = counts.get((product_id, day, slot.time), (set(), set()))
            session = EnrichedSession(
                id=session_id(day, slot.time, slot.instructor_id),
                date=day,
                time=slot.time,
                instructor_id=slot.instructor_id,
                capacity=slot.capacity,
                is_override=is_override,
                paid_bookings_count=len(paid),
                total_bookings_count=len(total),
                technique=slot.technique,
            )
            if include_full or not session.is_full:
                sessions.append(session)

    sessions.sort(key=lambda s: (s.date, s.time))
    return sessions


def class_slots_for_date(
    day: date,
    schedule: StudioSchedule,
    occupancies: Iterable[SlotOccupancy],
    technique: str | None = None,
) -> list[EnrichedSession]:
    """Recurring studio class sessions on one date, with live booking counts."""
    override = schedule.override_for(day)
    if override is not None and override.is_closed:
        return []

    slots = schedule.sessions_for(day)
    if technique:
        slots = [s for s in slots if techniques_share_pool(s.technique, technique)]

    day_occupancies = [o for o in occupancies if o.slot_date == day]
    result = []
    for slot in slots:
        here = [
            o for o in day_occupancies
            if o.slot_time == slot.time and techniques_share_pool(o.technique, slot.technique)
        ]
        result.append(
            EnrichedSession(
                id=session_id(day, slot.time, slot.instructor_id),
                date=day,
                time=slot.time,
                instructor_id=slot.instructor_id,
                capacity=schedule.resolve_capacity(day, slot.time, slot.technique or technique or ""),
                is_override=override is not None,
                paid_bookings_count=len({o.booking_id for o in here if o.is_paid}),
                total_bookings_count=len({o.booking_id for o in here}),
                technique=slot.technique,
            )
        )
    return result


def check_monthly_availability(
    start: date,
    time: str,
    instructor_id: int,
    technique: str,
    schedule: StudioSchedule,
    occupancies: Iterable[SlotOccupancy],
) -> bool:
    """Does the same weekly slot exist with room in each of the next four weeks?"""
    occupancies = list(occupancies)
    for week in range(MONTHLY_WEEKS):
        day = start + timedelta(days=7 * week)
        match = next(
            (
                s
                for s in class_slots_for_date(day, schedule, occupancies, technique)
                if s.time == time and s.instructor_id == instructor_id
            ),
            None,
        )
        if match is None or match.is_full:
            return False
    return True


# ---------------------------------------------------------------------------
# Async entry points
# ---------------------------------------------------------------------------


async def get_product_sessions(
    db: AsyncSession,
    product_id: int,
    horizon_days: int | None = None,
    include_full: bool = False,
    today: date | None = None,
) -> list[EnrichedSession]:
    today = today or date.today()
    horizon = horizon_days or settings.session_horizon_days
    product_schedule = await load_product_schedule(db, product_id)
    occupancies = await load_occupancies(db, today, today + timedelta(days=horizon), product_id=product_id)
    sessions = generate_sessions(
        product_id,
        product_schedule.rules,
        product_schedule.overrides,
        occupancies,
        horizon,
        today,
        include_full=include_full,
    )
    logger.info("Generated %d sessions for product %d over %d days", len(sessions), product_id, horizon)
    return sessions


async def get_class_slots(db: AsyncSession, day: date, technique: str | None = None) -> list[EnrichedSession]:
    schedule = await load_studio_schedule(db)
    occupancies = await load_occupancies(db, day, day)
    return class_slots_for_date(day, schedule, occupancies, technique)


async def get_monthly_availability(
    db: AsyncSession, start: date, time: str, instructor_id: int, technique: str
) -> bool:
    schedule = await load_studio_schedule(db)
    end = start + timedelta(days=7 * (MONTHLY_WEEKS - 1))
    occupancies = await load_occupancies(db, start, end)
    return check_monthly_availability(start, time, instructor_id, technique, schedule, occupancies)
