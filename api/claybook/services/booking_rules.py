"""Booking rules enforcement.

All booking validation logic lives here, separate from the route handlers.
Each rule returns a ValidationIssue or None if the rule passes.

The admin path collects every issue and reports them with a severity:
errors (over capacity, course conflict, Monday painting) are hard stops,
warnings may be bypassed with a recorded reason. The customer path runs the
same rules but turns every issue into a flat BookingViolation.
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.config import settings
from claybook.services.availability import SMALL_GROUP_LIMIT, is_fixed_class_conflict, painting_blocked
from claybook.services.capacity import COURSE_CONFLICT, SlotCapacity, check_slot_availability
from claybook.services.operating_hours import SUNDAY, day_index, normalize_time
from claybook.services.schedule import POTTERS_WHEEL, StudioSchedule, load_studio_schedule, technique_pool


class BookingViolation(Exception):
    """Raised when a customer booking breaks a rule."""

    def __init__(self, rule: str, message: str):
        self.rule = rule
        self.message = message
        super().__init__(message)


class Severity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    rule: str
    severity: Severity
    message: str
    code: str


@dataclass(frozen=True)
class Allowed:
    pass


@dataclass(frozen=True)
class Blocked:
    errors: tuple[ValidationIssue, ...]


@dataclass(frozen=True)
class Overridable:
    warnings: tuple[ValidationIssue, ...]


Outcome = Allowed | Blocked | Overridable


@dataclass
class ValidationResult:
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [w for w in self.warnings if w.severity == Severity.ERROR]

    @property
    def is_valid(self) -> bool:
        return not self.warnings

    @property
    def can_continue_with_warnings(self) -> bool:
        return not self.errors

    @property
    def outcome(self) -> Outcome:
        if self.errors:
            return Blocked(tuple(self.errors))
        if self.warnings:
            return Overridable(tuple(self.warnings))
        return Allowed()


@dataclass(frozen=True)
class SlotRequest:
    """What is being booked for one (date, time)."""

    day: date
    time: str
    technique: str
    participants: int
    product_type: str | None = None


# ---------------------------------------------------------------------------
# Individual rules
# ---------------------------------------------------------------------------


def check_sunday(req: SlotRequest) -> ValidationIssue | None:
    if day_index(req.day) == SUNDAY:
        return ValidationIssue(
            "sunday_reservation",
            Severity.WARNING,
            "Sunday: bookings are not normally taken on this day.",
            "SUNDAY_BOOKING",
        )
    return None


def check_monday_painting(req: SlotRequest, schedule: StudioSchedule) -> ValidationIssue | None:
    """Painting is blocked on Mondays unless that date has a schedule override."""
    if req.technique == "painting" and painting_blocked(req.day, schedule):
        return ValidationIssue(
            "monday_painting",
            Severity.ERROR,
            "Painting is blocked on Mondays unless the week has a schedule exception.",
            "MONDAY_PAINTING_BLOCKED",
        )
    return None


def _is_fixed_time(req: SlotRequest, schedule: StudioSchedule) -> bool:
    pool = technique_pool(req.technique)
    return req.time in schedule.fixed_times(req.day, pool, include_intro=True)


def check_non_fixed_hour(req: SlotRequest, schedule: StudioSchedule) -> ValidationIssue | None:
    if req.product_type == "SINGLE_CLASS" and not _is_fixed_time(req, schedule):
        return ValidationIssue(
            "non_fixed_hour_single_class",
            Severity.WARNING,
            f"{req.time} is not a fixed class time on the calendar.",
            "NON_FIXED_HOUR",
        )
    return None


def check_capacity(req: SlotRequest, capacity: SlotCapacity) -> ValidationIssue | None:
    if capacity.blocked_reason is None and not capacity.available:
        return ValidationIssue(
            "over_capacity",
            Severity.ERROR,
            f"Over capacity: only {capacity.available_capacity} spots left, {req.participants} requested.",
            "OVER_CAPACITY",
        )
    return None


def check_course_conflict(capacity: SlotCapacity) -> ValidationIssue | None:
    if capacity.blocked_reason == COURSE_CONFLICT:
        return ValidationIssue(
            "course_conflict",
            Severity.ERROR,
            "Overlaps a running course session.",
            "COURSE_CONFLICT",
        )
    return None


def check_hand_modeling_single(req: SlotRequest, schedule: StudioSchedule) -> ValidationIssue | None:
    if req.technique == "hand_modeling" and req.participants == 1 and not _is_fixed_time(req, schedule):
        return ValidationIssue(
            "hand_modeling_single_person",
            Severity.WARNING,
            "Hand modeling for one person normally runs only at fixed class times.",
            "HAND_MOD_SINGLE_PERSON",
        )
    return None


def check_small_wheel_group(req: SlotRequest, schedule: StudioSchedule) -> ValidationIssue | None:
    """Wheel groups under 3 outside a pre-established class need an instructor slot opened for them."""
    if (
        technique_pool(req.technique) == POTTERS_WHEEL
        and req.participants < SMALL_GROUP_LIMIT
        and req.product_type != "SINGLE_CLASS"
        and not _is_fixed_time(req, schedule)
    ):
        return ValidationIssue(
            "small_group_potters_wheel",
            Severity.WARNING,
            f"Potter's wheel groups under {SMALL_GROUP_LIMIT} normally book fixed class times only.",
            "SMALL_GROUP_NON_FIXED",
        )
    return None


def check_fixed_class_overlap(req: SlotRequest, schedule: StudioSchedule) -> ValidationIssue | None:
    if technique_pool(req.technique) != POTTERS_WHEEL or req.participants < SMALL_GROUP_LIMIT:
        return None
    fixed = schedule.fixed_times(req.day, POTTERS_WHEEL, include_intro=True)
    if req.time not in fixed and is_fixed_class_conflict(req.time, fixed):
        return ValidationIssue(
            "fixed_class_conflict",
            Severity.WARNING,
            "Starts during a fixed potter's wheel class.",
            "FIXED_CLASS_CONFLICT",
        )
    return None


def evaluate_slot(req: SlotRequest, schedule: StudioSchedule, capacity: SlotCapacity) -> ValidationResult:
    """Run every rule for one slot. Pure: the caller supplies schedule and live capacity."""
    checks = [
        check_sunday(req),
        check_monday_painting(req, schedule),
        check_non_fixed_hour(req, schedule),
        check_capacity(req, capacity),
        check_course_conflict(capacity),
        check_hand_modeling_single(req, schedule),
        check_small_wheel_group(req, schedule),
        check_fixed_class_overlap(req, schedule),
    ]
    return ValidationResult(warnings=[c for c in checks if c is not None])


async def validate_admin_booking(
    db: AsyncSession,
    day: date,
    time: str,
    technique: str | None,
    participants: int,
    product_type: str | None = None,
    schedule: StudioSchedule | None = None,
) -> ValidationResult:
    """Admin-side validation for one slot: every issue, with its severity."""
    req = SlotRequest(
        day=day,
        time=normalize_time(time),
        technique=technique or POTTERS_WHEEL,
        participants=participants,
        product_type=product_type,
    )
    if schedule is None:
        schedule = await load_studio_schedule(db)
    capacity = await check_slot_availability(db, req.day, req.time, req.technique, participants, schedule=schedule)
    return evaluate_slot(req, schedule, capacity)


# ---------------------------------------------------------------------------
# Customer path
# ---------------------------------------------------------------------------

# Soft notices that do not stop a customer who picked a listed slot.
CUSTOMER_EXEMPT_CODES = frozenset({"SUNDAY_BOOKING"})

NOT_AVAILABLE = "The selected time is not available."


def customer_violations(result: ValidationResult, capacity: SlotCapacity) -> list[BookingViolation]:
    """Flatten admin-grade issues into customer-facing rejections."""
    violations = []
    for issue in result.warnings:
        if issue.code in CUSTOMER_EXEMPT_CODES:
            continue
        if issue.code == "OVER_CAPACITY":
            violations.append(
                BookingViolation(issue.rule, f"Only {capacity.available_capacity} spots are left at this time.")
            )
        else:
            violations.append(BookingViolation(issue.rule, NOT_AVAILABLE))
    return violations


async def check_customer_booking(
    db: AsyncSession,
    day: date,
    time: str,
    technique: str,
    participants: int,
    product_type: str | None = None,
    schedule: StudioSchedule | None = None,
) -> list[BookingViolation]:
    """Customer-side rules for one slot. Empty list means the slot can be booked."""
    req = SlotRequest(day, normalize_time(time), technique, participants, product_type)
    if schedule is None:
        schedule = await load_studio_schedule(db)
    capacity = await check_slot_availability(db, req.day, req.time, technique, participants, schedule=schedule)
    return customer_violations(evaluate_slot(req, schedule, capacity), capacity)


def slot_start(day: date, time: str) -> datetime:
    """Studio-local start of a slot as an aware datetime."""
    hours, minutes = normalize_time(time).split(":")
    return datetime(day.year, day.month, day.day, int(hours), int(minutes), tzinfo=ZoneInfo(settings.studio_timezone))


def slots_require_no_refund(
    slots: list[tuple[date, str]], now: datetime | None = None, horizon_hours: int | None = None
) -> bool:
    """True when any slot starts inside the no-refund horizon."""
    if not slots:
        return False
    now = now or datetime.now(ZoneInfo(settings.studio_timezone))
    horizon = timedelta(hours=horizon_hours if horizon_hours is not None else settings.no_refund_horizon_hours)
    return any(slot_start(day, time) - now < horizon for day, time in slots)
