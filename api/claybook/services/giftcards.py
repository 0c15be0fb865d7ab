"""Giftcard hold/consume ledger.

A hold reserves part of a balance without touching it; consuming the hold
is the only thing that debits. Every mutation runs in one transaction that
this module commits or rolls back itself, and takes row locks with
SELECT ... FOR UPDATE. Consume locks the hold first and the giftcard second,
so concurrent consumes on one giftcard queue up behind each other and the
later one re-reads the already-debited balance.

Audit entries are best-effort: each is written inside a savepoint, and a
failed insert is logged without undoing the money movement.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import aiosmtplib
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.config import settings
from claybook.models.booking import Booking
from claybook.models.giftcard import AuditEvent, Giftcard, GiftcardAuditEntry, GiftcardHold
from claybook.services.bookings import BookingNotFound, add_payment_to_booking
from claybook.services.email import send_payment_receipt_email

logger = logging.getLogger(__name__)

GIFTCARD_PAYMENT_METHOD = "Giftcard"


class GiftcardError(Exception):
    """A ledger operation that was refused and rolled back."""

    def __init__(self, code: str, status_code: int = 400, details: dict | None = None):
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(code)


@dataclass(frozen=True)
class HoldResult:
    hold: GiftcardHold
    available: Decimal
    balance: Decimal


@dataclass(frozen=True)
class ConsumeResult:
    giftcard_id: int
    new_balance: Decimal
    amount: Decimal
    booking_id: int | None


@dataclass(frozen=True)
class GiftcardStatus:
    giftcard: Giftcard
    status: str
    held: Decimal

    @property
    def valid(self) -> bool:
        return self.status == "active"


def _aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


async def _record_audit(db: AsyncSession, **fields) -> None:
    try:
        async with db.begin_nested():
            db.add(GiftcardAuditEntry(**fields))
    except SQLAlchemyError:
        logger.warning(
            "Failed to write giftcard audit %s for giftcard %s",
            fields.get("event_type"),
            fields.get("giftcard_id"),
            exc_info=True,
        )


async def _fail(db: AsyncSession, code: str, status_code: int, **details) -> GiftcardError:
    await db.rollback()
    return GiftcardError(code, status_code, details)


async def _sum_open_holds(db: AsyncSession, giftcard_id: int, now: datetime) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(GiftcardHold.amount), 0)).where(
            GiftcardHold.giftcard_id == giftcard_id,
            or_(GiftcardHold.expires_at.is_(None), GiftcardHold.expires_at > now),
        )
    )
    return _money(result.scalar_one())


async def create_hold(
    db: AsyncSession,
    amount: Decimal,
    code: str | None = None,
    giftcard_id: int | None = None,
    ttl_minutes: int | None = None,
    booking_id: int | None = None,
    booking_temp_ref: str | None = None,
    user_id: str | None = None,
) -> HoldResult:
    """Reserve `amount` against a giftcard if unreserved balance covers it."""
    if amount is None or Decimal(amount) <= 0:
        raise await _fail(db, "invalid_amount", 400)
    if not code and giftcard_id is None:
        raise await _fail(db, "code_or_giftcard_required", 400)

    amount = _money(amount)
    now = datetime.now(UTC)
    condition = Giftcard.code == code if code else Giftcard.id == giftcard_id
    result = await db.execute(select(Giftcard).where(condition).with_for_update())
    giftcard = result.scalar_one_or_none()
    if giftcard is None:
        raise await _fail(db, "giftcard_not_found", 404)

    expires_at = _aware(giftcard.expires_at)
    if expires_at is not None and expires_at <= now:
        raise await _fail(db, "giftcard_expired", 400)

    balance = _money(giftcard.balance)
    available = balance - await _sum_open_holds(db, giftcard.id, now)
    if available < amount:
        raise await _fail(db, "insufficient_funds", 400, available=str(available), balance=str(balance))

    hold = GiftcardHold(
        giftcard_id=giftcard.id,
        amount=amount,
        booking_id=booking_id,
        booking_temp_ref=booking_temp_ref,
        user_id=user_id,
        expires_at=now + timedelta(minutes=ttl_minutes or settings.giftcard_hold_ttl_minutes),
    )
    db.add(hold)
    await db.flush()

    await _record_audit(
        db,
        giftcard_id=giftcard.id,
        event_type=AuditEvent.HOLD_CREATED,
        amount=amount,
        hold_id=hold.id,
        booking_id=booking_id,
        booking_temp_ref=booking_temp_ref,
        user_id=user_id,
    )
    await db.commit()

    logger.info("Hold %s of %s placed on giftcard %s", hold.id, amount, giftcard.code)
    return HoldResult(hold=hold, available=available - amount, balance=balance)


async def consume_hold(db: AsyncSession, hold_id: str) -> ConsumeResult:
    """Debit a hold's amount, delete the hold and pay the linked booking.

    The debit and the booking payment commit together; if the payment
    cannot be applied nothing is debited. The receipt email goes out after
    commit and its failure is only logged.
    """
    result = await db.execute(select(GiftcardHold).where(GiftcardHold.id == hold_id).with_for_update())
    hold = result.scalar_one_or_none()
    if hold is None:
        raise await _fail(db, "hold_not_found", 404)

    result = await db.execute(select(Giftcard).where(Giftcard.id == hold.giftcard_id).with_for_update())
    giftcard = result.scalar_one_or_none()
    if giftcard is None:
        raise await _fail(db, "giftcard_not_found", 404)

    amount = _money(hold.amount)
    balance = _money(giftcard.balance)
    if balance < amount:
        raise await _fail(db, "insufficient_funds", 400, available=str(balance))

    new_balance = balance - amount
    giftcard.balance = new_balance
    booking_id = hold.booking_id
    await db.delete(hold)
    await db.flush()

    await _record_audit(
        db,
        giftcard_id=giftcard.id,
        event_type=AuditEvent.HOLD_CONSUMED,
        amount=amount,
        hold_id=hold_id,
        booking_id=booking_id,
        booking_temp_ref=hold.booking_temp_ref,
        user_id=hold.user_id,
    )

    booking: Booking | None = None
    if booking_id is not None:
        try:
            booking = await add_payment_to_booking(
                db,
                booking_id,
                amount,
                GIFTCARD_PAYMENT_METHOD,
                extra={"giftcardId": giftcard.id, "holdId": hold_id},
            )
        except (BookingNotFound, SQLAlchemyError):
            logger.exception("Could not apply giftcard payment to booking %s; rolling back debit", booking_id)
            raise await _fail(db, "payment_apply_failed", 500, booking_id=booking_id)

    await db.commit()
    logger.info("Hold %s consumed: giftcard %s balance %s -> %s", hold_id, giftcard.code, balance, new_balance)

    if booking is not None:
        try:
            await send_payment_receipt_email(
                booking.customer_email,
                booking.customer_name,
                booking.booking_code,
                amount,
                GIFTCARD_PAYMENT_METHOD,
            )
        except (aiosmtplib.SMTPException, OSError):
            logger.warning("Receipt email for booking %s failed", booking.booking_code, exc_info=True)

    return ConsumeResult(giftcard_id=giftcard.id, new_balance=new_balance, amount=amount, booking_id=booking_id)


async def release_hold(db: AsyncSession, hold_id: str) -> GiftcardHold:
    """Abandon an open hold. The balance is untouched."""
    result = await db.execute(select(GiftcardHold).where(GiftcardHold.id == hold_id).with_for_update())
    hold = result.scalar_one_or_none()
    if hold is None:
        raise await _fail(db, "hold_not_found", 404)

    await db.delete(hold)
    await db.flush()
    await _record_audit(
        db,
        giftcard_id=hold.giftcard_id,
        event_type=AuditEvent.HOLD_RELEASED,
        amount=hold.amount,
        hold_id=hold.id,
        booking_id=hold.booking_id,
        booking_temp_ref=hold.booking_temp_ref,
        user_id=hold.user_id,
    )
    await db.commit()
    logger.info("Hold %s released", hold_id)
    return hold


async def expire_holds(db: AsyncSession, limit: int | None = None, now: datetime | None = None) -> int:
    """Delete holds past their expiry. Rows locked by a running consume are skipped."""
    now = now or datetime.now(UTC)
    query = (
        select(GiftcardHold)
        .where(GiftcardHold.expires_at.is_not(None), GiftcardHold.expires_at < now)
        .order_by(GiftcardHold.expires_at)
        .with_for_update(skip_locked=True)
    )
    if limit:
        query = query.limit(limit)
    holds = list((await db.execute(query)).scalars().all())

    for hold in holds:
        await db.delete(hold)
    await db.flush()
    for hold in holds:
        await _record_audit(
            db,
            giftcard_id=hold.giftcard_id,
            event_type=AuditEvent.HOLD_EXPIRED,
            amount=hold.amount,
            hold_id=hold.id,
            booking_id=hold.booking_id,
            booking_temp_ref=hold.booking_temp_ref,
            user_id=hold.user_id,
        )
    await db.commit()

    if holds:
        logger.info("Expired %d giftcard holds", len(holds))
    return len(holds)


async def validate_giftcard(db: AsyncSession, code: str) -> GiftcardStatus:
    """Look up a giftcard by code and classify it as active, expired or depleted."""
    result = await db.execute(select(Giftcard).where(Giftcard.code == code))
    giftcard = result.scalar_one_or_none()
    if giftcard is None:
        raise GiftcardError("giftcard_not_found", 404)

    now = datetime.now(UTC)
    held = await _sum_open_holds(db, giftcard.id, now)
    expires_at = _aware(giftcard.expires_at)
    if expires_at is not None and expires_at <= now:
        status = "expired"
    elif _money(giftcard.balance) <= 0:
        status = "depleted"
    else:
        status = "active"
    return GiftcardStatus(giftcard=giftcard, status=status, held=held)


async def list_audit(db: AsyncSession, giftcard_id: int) -> list[GiftcardAuditEntry]:
    result = await db.execute(
        select(GiftcardAuditEntry)
        .where(GiftcardAuditEntry.giftcard_id == giftcard_id)
        .order_by(GiftcardAuditEntry.created_at, GiftcardAuditEntry.id)
    )
    return list(result.scalars().all())
