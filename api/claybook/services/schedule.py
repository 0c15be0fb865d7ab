"""Schedule rule store: weekly rules, date overrides and technique capacities.

Reads produce plain snapshots (StudioSchedule, ProductSchedule) so the
session generator, capacity aggregator and availability rules can run as
pure functions over them. Writes are the admin's schedule management
operations; they flush and leave the commit to the request.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.config import settings
from claybook.models.schedule import Instructor, SchedulingRule, SessionOverride, TechniqueCapacity
from claybook.services.operating_hours import DAY_NAMES, TUESDAY, WEDNESDAY, day_index, normalize_time

logger = logging.getLogger(__name__)

POTTERS_WHEEL = "potters_wheel"
MOLDING = "molding"
HAND_WORK = frozenset({"hand_modeling", "painting", "molding"})

# Introductory wheel classes run every week outside the rule table:
# Tuesday 19:00 and Wednesday 11:00.
INTRO_WHEEL_TIMES = {TUESDAY: "19:00", WEDNESDAY: "11:00"}


def technique_pool(technique: str | None) -> str | None:
    """Hand modeling, painting and molding share one pool of seats."""
    if technique in HAND_WORK:
        return MOLDING
    return technique


def techniques_share_pool(a: str | None, b: str | None) -> bool:
    """A missing technique counts against whichever pool it is compared with."""
    if a is None or b is None:
        return True
    return technique_pool(a) == technique_pool(b)


def default_capacities() -> dict[str, int]:
    return {
        POTTERS_WHEEL: settings.potters_wheel_capacity,
        MOLDING: settings.molding_capacity,
        "introductory_class": settings.introductory_class_capacity,
    }


@dataclass(frozen=True)
class SlotRule:
    """One session definition, either from a weekly rule or an override entry."""

    time: str
    instructor_id: int
    capacity: int
    technique: str | None = None


@dataclass(frozen=True)
class DayOverride:
    """sessions=None closes the day; a list replaces the weekly rules."""

    sessions: tuple[SlotRule, ...] | None
    capacity: int | None = None

    @property
    def is_closed(self) -> bool:
        return self.sessions is None


@dataclass
class StudioSchedule:
    weekly: dict[int, list[SlotRule]] = field(default_factory=dict)
    overrides: dict[date, DayOverride] = field(default_factory=dict)
    capacities: dict[str, int] = field(default_factory=default_capacities)

    def override_for(self, day: date) -> DayOverride | None:
        return self.overrides.get(day)

    def sessions_for(self, day: date) -> list[SlotRule]:
        """Effective sessions for a date: the override wins over weekly rules."""
        override = self.overrides.get(day)
        if override is not None:
            return list(override.sessions or ())
        return list(self.weekly.get(day_index(day), []))

    def is_closed(self, day: date) -> bool:
        override = self.overrides.get(day)
        return override is not None and override.is_closed

    def fixed_times(self, day: date, pool: str, include_intro: bool = False) -> list[str]:
        """Pre-established class times for one pool on a date."""
        times = {s.time for s in self.sessions_for(day) if techniques_share_pool(s.technique, pool)}
        intro = INTRO_WHEEL_TIMES.get(day_index(day))
        if include_intro and pool == POTTERS_WHEEL and intro and not self.is_closed(day):
            times.add(intro)
        return sorted(times)

    def slot_capacity(self, day: date, time: str, technique: str) -> int | None:
        for session in self.sessions_for(day):
            if session.time == time and techniques_share_pool(session.technique, technique):
                return session.capacity
        return None

    def class_capacity(self, technique: str) -> int:
        pool = technique_pool(technique)
        cap = self.capacities.get(technique, self.capacities.get(pool))
        if cap is None:
            cap = default_capacities().get(pool, settings.molding_capacity)
        return cap

    def resolve_capacity(self, day: date, time: str, technique: str) -> int:
        """Day override cap, else the configured session's cap, else the technique's cap."""
        override = self.overrides.get(day)
        if override is not None and override.capacity:
            return override.capacity
        slot_cap = self.slot_capacity(day, time, technique)
        if slot_cap:
            return slot_cap
        return self.class_capacity(technique)


@dataclass
class ProductSchedule:
    """Rules and overrides for one scheduled product (intro class, couples)."""

    product_id: int
    rules: list[tuple[int, SlotRule]] = field(default_factory=list)  # (day index, rule)
    overrides: dict[date, tuple[SlotRule, ...] | None] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


def _slot_from_rule(rule: SchedulingRule) -> SlotRule:
    return SlotRule(
        time=normalize_time(rule.time),
        instructor_id=rule.instructor_id,
        capacity=rule.capacity,
        technique=rule.technique,
    )


def _slots_from_json(entries: list | None) -> tuple[SlotRule, ...] | None:
    if entries is None:
        return None
    return tuple(
        SlotRule(
            time=normalize_time(e["time"]),
            instructor_id=int(e.get("instructorId", e.get("instructor_id", 0))),
            capacity=int(e.get("capacity") or 0),
            technique=e.get("technique"),
        )
        for e in entries
    )


def slots_to_json(sessions: list[SlotRule] | tuple[SlotRule, ...] | None) -> list[dict] | None:
    if sessions is None:
        return None
    return [
        {"time": s.time, "instructorId": s.instructor_id, "capacity": s.capacity, "technique": s.technique}
        for s in sessions
    ]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def load_studio_schedule(db: AsyncSession) -> StudioSchedule:
    """Weekly studio rules, studio-wide overrides and capacities."""
    rules_result = await db.execute(
        select(SchedulingRule)
        .where(SchedulingRule.product_id.is_(None))
        .order_by(SchedulingRule.day_of_week, SchedulingRule.time)
    )
    weekly: dict[int, list[SlotRule]] = {i: [] for i in range(7)}
    for rule in rules_result.scalars():
        weekly[rule.day_of_week].append(_slot_from_rule(rule))

    overrides_result = await db.execute(select(SessionOverride).where(SessionOverride.product_id.is_(None)))
    overrides = {
        o.override_date: DayOverride(sessions=_slots_from_json(o.sessions), capacity=o.capacity)
        for o in overrides_result.scalars()
    }

    caps_result = await db.execute(select(TechniqueCapacity))
    capacities = default_capacities()
    capacities.update({c.technique: c.capacity for c in caps_result.scalars()})

    return StudioSchedule(weekly=weekly, overrides=overrides, capacities=capacities)


async def load_product_schedule(db: AsyncSession, product_id: int) -> ProductSchedule:
    rules_result = await db.execute(
        select(SchedulingRule)
        .where(SchedulingRule.product_id == product_id)
        .order_by(SchedulingRule.day_of_week, SchedulingRule.time)
    )
    rules = [(r.day_of_week, _slot_from_rule(r)) for r in rules_result.scalars()]

    overrides_result = await db.execute(select(SessionOverride).where(SessionOverride.product_id == product_id))
    overrides = {o.override_date: _slots_from_json(o.sessions) for o in overrides_result.scalars()}

    return ProductSchedule(product_id=product_id, rules=rules, overrides=overrides)


async def load_instructor_names(db: AsyncSession) -> dict[int, str]:
    result = await db.execute(select(Instructor.id, Instructor.name))
    return {row.id: row.name for row in result}


async def list_rules(db: AsyncSession, product_id: int | None = None) -> list[SchedulingRule]:
    condition = (
        SchedulingRule.product_id.is_(None) if product_id is None else SchedulingRule.product_id == product_id
    )
    result = await db.execute(
        select(SchedulingRule).where(condition).order_by(SchedulingRule.day_of_week, SchedulingRule.time)
    )
    return list(result.scalars().all())


async def list_overrides(
    db: AsyncSession, product_id: int | None = None, start: date | None = None, end: date | None = None
) -> list[SessionOverride]:
    condition = (
        SessionOverride.product_id.is_(None) if product_id is None else SessionOverride.product_id == product_id
    )
    query = select(SessionOverride).where(condition)
    if start is not None:
        query = query.where(SessionOverride.override_date >= start)
    if end is not None:
        query = query.where(SessionOverride.override_date <= end)
    result = await db.execute(query.order_by(SessionOverride.override_date))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Writes (admin schedule management)
# ---------------------------------------------------------------------------


async def upsert_rule(
    db: AsyncSession,
    day_of_week: int,
    time: str,
    instructor_id: int,
    capacity: int,
    technique: str | None = None,
    product_id: int | None = None,
) -> SchedulingRule:
    """Create a weekly rule, or update the capacity of the identical slot.

    Rules already expanded into past sessions keep their history in the
    bookings themselves, so an edit only changes future expansions.
    """
    if not 0 <= day_of_week <= 6:
        raise ValueError("day_of_week must be 0 (Sunday) to 6 (Saturday)")
    if capacity <= 0:
        raise ValueError("capacity must be positive")

    time = normalize_time(time)
    product_condition = (
        SchedulingRule.product_id.is_(None) if product_id is None else SchedulingRule.product_id == product_id
    )
    technique_condition = (
        SchedulingRule.technique.is_(None) if technique is None else SchedulingRule.technique == technique
    )
    result = await db.execute(
        select(SchedulingRule).where(
            product_condition,
            technique_condition,
            SchedulingRule.day_of_week == day_of_week,
            SchedulingRule.time == time,
            SchedulingRule.instructor_id == instructor_id,
        )
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        rule = SchedulingRule(
            product_id=product_id,
            day_of_week=day_of_week,
            time=time,
            instructor_id=instructor_id,
            capacity=capacity,
            technique=technique,
        )
        db.add(rule)
    else:
        rule.capacity = capacity

    await db.flush()
    logger.info("Scheduling rule saved: %s %s %s cap=%d", DAY_NAMES[day_of_week], time, technique, capacity)
    return rule


async def delete_rule(db: AsyncSession, rule_id: int) -> bool:
    result = await db.execute(delete(SchedulingRule).where(SchedulingRule.id == rule_id))
    return result.rowcount > 0


async def set_override(
    db: AsyncSession,
    override_date: date,
    sessions: list[SlotRule] | None,
    capacity: int | None = None,
    product_id: int | None = None,
) -> SessionOverride:
    """Replace (sessions=list) or close (sessions=None) one date."""
    product_condition = (
        SessionOverride.product_id.is_(None) if product_id is None else SessionOverride.product_id == product_id
    )
    result = await db.execute(
        select(SessionOverride).where(product_condition, SessionOverride.override_date == override_date)
    )
    override = result.scalar_one_or_none()
    payload = slots_to_json(sessions)
    if override is None:
        override = SessionOverride(
            product_id=product_id, override_date=override_date, sessions=payload, capacity=capacity
        )
        db.add(override)
    else:
        override.sessions = payload
        override.capacity = capacity

    await db.flush()
    logger.info(
        "Session override for %s: %s",
        override_date.isoformat(),
        "closed" if sessions is None else f"{len(sessions)} sessions",
    )
    return override


async def clear_override(db: AsyncSession, override_date: date, product_id: int | None = None) -> bool:
    product_condition = (
        SessionOverride.product_id.is_(None) if product_id is None else SessionOverride.product_id == product_id
    )
    result = await db.execute(
        delete(SessionOverride).where(product_condition, SessionOverride.override_date == override_date)
    )
    return result.rowcount > 0


async def set_capacity(db: AsyncSession, technique: str, capacity: int) -> TechniqueCapacity:
    if capacity <= 0:
        raise ValueError("capacity must be positive")
    row = await db.get(TechniqueCapacity, technique)
    if row is None:
        row = TechniqueCapacity(technique=technique, capacity=capacity)
        db.add(row)
    else:
        row.capacity = capacity
    await db.flush()
    return row
