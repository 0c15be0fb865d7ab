"""Booking persistence: the source of truth for who occupies a slot.

add_booking closes the check-then-insert window per (date, technique pool):
on PostgreSQL it takes a transaction-scoped advisory lock for every bucket
the booking touches, in sorted order, and re-runs the capacity rules while
holding them. Two checkouts for the same bucket therefore serialize and the
second one sees the first one's seats.
"""

import logging
import secrets
import uuid
import zlib
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.config import settings
from claybook.models.booking import Booking, BookingSlot, BookingSource, BookingStatus
from claybook.models.override import BookingOverrideRecord
from claybook.models.schedule import ProductType
from claybook.services.booking_rules import (
    NOT_AVAILABLE,
    BookingViolation,
    ValidationResult,
    check_customer_booking,
    slots_require_no_refund,
    validate_admin_booking,
)
from claybook.services.capacity import load_occupancies
from claybook.services.operating_hours import normalize_time
from claybook.services.overrides import authorize_override
from claybook.services.schedule import load_product_schedule, load_studio_schedule, technique_pool
from claybook.services.sessions import generate_sessions

logger = logging.getLogger(__name__)

BOOKING_CODE_PREFIX = "C-ALMA-"

# Products scheduled by their own rule set rather than the studio timetable.
PRODUCT_SCHEDULED_TYPES = frozenset({ProductType.INTRODUCTORY_CLASS.value, ProductType.COUPLES_EXPERIENCE.value})


class BookingNotFound(Exception):
    pass


class BookingRejected(Exception):
    """Customer booking refused; carries the flat violations."""

    def __init__(self, violations: list[BookingViolation]):
        self.violations = violations
        super().__init__("; ".join(v.message for v in violations))


class AdminBookingRejected(Exception):
    """Admin booking stopped by errors, or by warnings with no override reason."""

    def __init__(self, result: ValidationResult, override_required: bool = False):
        self.result = result
        self.override_required = override_required
        super().__init__("override reason required" if override_required else "booking blocked")


@dataclass
class NewBooking:
    product_type: str
    customer_name: str
    customer_email: str
    slots: list[tuple[date, str]]
    participants: int = 1
    technique: str | None = None
    product_id: int | None = None
    price: Decimal = Decimal("0")
    is_paid: bool = False
    accepted_no_refund: bool = False
    client_note: str | None = None
    source: BookingSource = BookingSource.CUSTOMER
    payment_details: list[dict] = field(default_factory=list)


def generate_booking_code() -> str:
    return BOOKING_CODE_PREFIX + secrets.token_hex(4).upper()


async def _lock_bucket(db: AsyncSession, day: date, pool: str) -> None:
    """Serialize capacity checks for one (date, pool). No-op outside PostgreSQL."""
    if db.get_bind().dialect.name != "postgresql":
        return
    key = zlib.crc32(f"{day.isoformat()}:{pool}".encode())
    await db.execute(select(func.pg_advisory_xact_lock(key)))


async def _lock_buckets(db: AsyncSession, data: NewBooking) -> None:
    pool = technique_pool(data.technique) or data.product_type
    for day in sorted({d for d, _ in data.slots}):
        await _lock_bucket(db, day, pool)


async def _check_product_sessions(db: AsyncSession, data: NewBooking) -> list[BookingViolation]:
    """Introductory and couples bookings must land on a generated, non-full session."""
    schedule = await load_product_schedule(db, data.product_id)
    violations = []
    for day, time in data.slots:
        occupancies = await load_occupancies(db, day, day, product_id=data.product_id)
        sessions = generate_sessions(data.product_id, schedule.rules, schedule.overrides, occupancies, 1, day)
        if not any(s.time == time for s in sessions):
            violations.append(BookingViolation("session_unavailable", NOT_AVAILABLE))
    return violations


async def _check_customer_rules(db: AsyncSession, data: NewBooking) -> list[BookingViolation]:
    violations: list[BookingViolation] = []
    if not data.slots:
        return [BookingViolation("no_slots", "Choose at least one date and time.")]

    if slots_require_no_refund(data.slots) and not data.accepted_no_refund:
        violations.append(
            BookingViolation(
                "no_refund_acceptance",
                f"Bookings starting within {settings.no_refund_horizon_hours} hours are non-refundable "
                "and must be accepted as such.",
            )
        )

    if data.product_type in PRODUCT_SCHEDULED_TYPES and data.product_id is not None:
        violations.extend(await _check_product_sessions(db, data))
        return violations

    if not data.technique:
        violations.append(BookingViolation("technique_required", "Choose a technique."))
        return violations

    schedule = await load_studio_schedule(db)
    for day, time in data.slots:
        violations.extend(
            await check_customer_booking(
                db, day, time, data.technique, data.participants, data.product_type, schedule=schedule
            )
        )
    return violations


def _build_booking(data: NewBooking) -> Booking:
    now = datetime.now(UTC)
    booking = Booking(
        booking_code=generate_booking_code(),
        product_id=data.product_id,
        product_type=data.product_type,
        technique=data.technique,
        participants=data.participants,
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        status=BookingStatus.PAID if data.is_paid else BookingStatus.ACTIVE,
        source=data.source,
        expires_at=None if data.is_paid else now + timedelta(minutes=settings.prereservation_minutes),
        accepted_no_refund=data.accepted_no_refund,
        price=data.price,
        is_paid=data.is_paid,
        payment_details=list(data.payment_details),
        client_note=data.client_note,
    )
    booking.slots = [BookingSlot(slot_date=day, slot_time=time) for day, time in data.slots]
    return booking


def _normalized(data: NewBooking) -> NewBooking:
    data.slots = sorted({(day, normalize_time(time)) for day, time in data.slots})
    return data


async def add_booking(db: AsyncSession, data: NewBooking) -> Booking:
    """Validate and insert a customer booking under the bucket locks."""
    data = _normalized(data)
    await _lock_buckets(db, data)

    violations = await _check_customer_rules(db, data)
    if violations:
        logger.info(
            "Booking rejected for %s: %s", data.customer_email, ", ".join(v.rule for v in violations)
        )
        raise BookingRejected(violations)

    booking = _build_booking(data)
    db.add(booking)
    await db.flush()
    logger.info("Booking %s created: %s x%d", booking.booking_code, data.technique, data.participants)
    return booking


async def validate_admin_slots(db: AsyncSession, data: NewBooking) -> ValidationResult:
    """Admin validation across every slot of a booking, issues merged in slot order."""
    schedule = await load_studio_schedule(db)
    merged = ValidationResult()
    for day, time in data.slots:
        result = await validate_admin_booking(
            db, day, time, data.technique, data.participants, data.product_type, schedule=schedule
        )
        for issue in result.warnings:
            if issue not in merged.warnings:
                merged.warnings.append(issue)
    return merged


async def create_admin_booking(
    db: AsyncSession, data: NewBooking, actor: str, override_reason: str | None = None
) -> tuple[Booking, ValidationResult, BookingOverrideRecord | None]:
    """Create a booking on the admin's behalf.

    Errors always stop it. Warnings stop it unless a reason is given, in which
    case the booking is created and the bypass recorded as an override.
    """
    data = _normalized(data)
    data.source = BookingSource.ADMIN
    await _lock_buckets(db, data)

    result = await validate_admin_slots(db, data)
    if not result.can_continue_with_warnings:
        raise AdminBookingRejected(result)
    reason = (override_reason or "").strip()
    if result.warnings and not reason:
        raise AdminBookingRejected(result, override_required=True)

    booking = _build_booking(data)
    db.add(booking)
    await db.flush()

    record = None
    if result.warnings:
        record = await authorize_override(
            db,
            booking.id,
            actor,
            reason,
            {"codes": [w.code for w in result.warnings], "slots": [f"{d.isoformat()} {t}" for d, t in data.slots]},
        )
    logger.info("Admin %s created booking %s (%d warnings)", actor, booking.booking_code, len(result.warnings))
    return booking, result, record


async def get_bookings(
    db: AsyncSession,
    status: BookingStatus | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[Booking]:
    query = select(Booking)
    if status is not None:
        query = query.where(Booking.status == status)
    if start is not None or end is not None:
        slot_query = select(BookingSlot.booking_id)
        if start is not None:
            slot_query = slot_query.where(BookingSlot.slot_date >= start)
        if end is not None:
            slot_query = slot_query.where(BookingSlot.slot_date <= end)
        query = query.where(Booking.id.in_(slot_query))
    result = await db.execute(query.order_by(Booking.created_at.desc(), Booking.id.desc()))
    return list(result.scalars().all())


async def get_booking(db: AsyncSession, booking_id: int) -> Booking | None:
    return await db.get(Booking, booking_id)


def total_paid(payment_details: list[dict]) -> Decimal:
    return sum((Decimal(str(p.get("amount", 0))) for p in payment_details), Decimal("0"))


async def add_payment_to_booking(
    db: AsyncSession,
    booking_id: int,
    amount: Decimal,
    method: str,
    extra: dict | None = None,
) -> Booking:
    """Append a payment and recompute is_paid. Flushes; the caller owns the transaction."""
    result = await db.execute(select(Booking).where(Booking.id == booking_id).with_for_update())
    booking = result.scalar_one_or_none()
    if booking is None:
        raise BookingNotFound(booking_id)

    payment = {
        "id": str(uuid.uuid4()),
        "amount": str(Decimal(amount).quantize(Decimal("0.01"))),
        "method": method,
        "receivedAt": datetime.now(UTC).isoformat(),
        **(extra or {}),
    }
    booking.payment_details = [*(booking.payment_details or []), payment]
    booking.is_paid = total_paid(booking.payment_details) >= booking.price
    if booking.is_paid:
        booking.status = BookingStatus.PAID
        booking.expires_at = None

    await db.flush()
    logger.info("Payment %s of %s applied to booking %s", payment["id"], payment["amount"], booking.booking_code)
    return booking


async def cancel_booking(db: AsyncSession, booking_id: int) -> Booking:
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    booking.status = BookingStatus.CANCELLED
    await db.flush()
    return booking


async def expire_stale_bookings(db: AsyncSession, now: datetime | None = None) -> int:
    """Mark unpaid pre-reservations past their expiry as expired. Returns the count."""
    now = now or datetime.now(UTC)
    result = await db.execute(
        update(Booking)
        .where(
            Booking.status == BookingStatus.ACTIVE,
            Booking.is_paid.is_(False),
            Booking.expires_at.is_not(None),
            Booking.expires_at < now,
        )
        .values(status=BookingStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("Expired %d unpaid pre-reservations", result.rowcount)
    return result.rowcount
