"""Giftcard hold/consume ledger tests."""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import aiosmtplib
import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from claybook.models import AuditEvent, Booking, BookingStatus, Giftcard, GiftcardHold
from claybook.services.giftcards import (
    GiftcardError,
    _record_audit,
    consume_hold,
    create_hold,
    expire_holds,
    list_audit,
    release_hold,
    validate_giftcard,
)


@pytest.fixture
async def giftcard(db):
    card = Giftcard(code="CLAY-0050", balance=Decimal("50.00"), initial_value=Decimal("50.00"))
    db.add(card)
    await db.commit()
    return card


async def balance_of(session_factory, giftcard_id: int) -> Decimal:
    async with session_factory() as session:
        card = await session.get(Giftcard, giftcard_id)
        return card.balance


async def hold_exists(session_factory, hold_id: str) -> bool:
    async with session_factory() as session:
        return await session.get(GiftcardHold, hold_id) is not None


# ---------------------------------------------------------------------------
# Holds
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_hold_reserves_without_debit(db, session_factory, giftcard):
    result = await create_hold(db, Decimal("30"), code="CLAY-0050", user_id="u-1")

    assert result.hold.amount == Decimal("30.00")
    assert result.available == Decimal("20.00")
    assert result.balance == Decimal("50.00")
    assert result.hold.expires_at is not None
    assert await balance_of(session_factory, giftcard.id) == Decimal("50.00")


@pytest.mark.asyncio
async def test_create_hold_counts_open_holds(db, giftcard):
    await create_hold(db, Decimal("30"), code="CLAY-0050")

    with pytest.raises(GiftcardError) as exc_info:
        await create_hold(db, Decimal("30"), giftcard_id=giftcard.id)
    assert exc_info.value.code == "insufficient_funds"
    assert exc_info.value.status_code == 400
    assert exc_info.value.details == {"available": "20.00", "balance": "50.00"}


@pytest.mark.asyncio
async def test_expired_holds_do_not_reserve(db, giftcard):
    db.add(GiftcardHold(
        giftcard_id=giftcard.id,
        amount=Decimal("40"),
        expires_at=datetime.now(UTC) - timedelta(minutes=1),
    ))
    await db.commit()

    result = await create_hold(db, Decimal("50"), code="CLAY-0050")
    assert result.available == Decimal("0.00")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("kwargs", "code", "status_code"),
    [
        ({"amount": Decimal("0"), "code": "CLAY-0050"}, "invalid_amount", 400),
        ({"amount": Decimal("-5"), "code": "CLAY-0050"}, "invalid_amount", 400),
        ({"amount": Decimal("5")}, "code_or_giftcard_required", 400),
        ({"amount": Decimal("5"), "code": "NOPE"}, "giftcard_not_found", 404),
    ],
)
async def test_create_hold_refusals(db, giftcard, kwargs, code, status_code):
    with pytest.raises(GiftcardError) as exc_info:
        await create_hold(db, **kwargs)
    assert exc_info.value.code == code
    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_database_rejects_negative_balance_and_empty_holds(db, giftcard):
    giftcard_id = giftcard.id
    db.add(Giftcard(code="NEG", balance=Decimal("-0.01")))
    with pytest.raises(IntegrityError):
        await db.flush()
    await db.rollback()

    db.add(GiftcardHold(giftcard_id=giftcard_id, amount=Decimal("0")))
    with pytest.raises(IntegrityError):
        await db.flush()
    await db.rollback()


@pytest.mark.asyncio
async def test_create_hold_on_expired_card(db):
    db.add(Giftcard(code="OLD", balance=Decimal("20"), expires_at=datetime.now(UTC) - timedelta(days=1)))
    await db.commit()

    with pytest.raises(GiftcardError) as exc_info:
        await create_hold(db, Decimal("5"), code="OLD")
    assert exc_info.value.code == "giftcard_expired"


# ---------------------------------------------------------------------------
# Consume
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_consume_full_balance(db, session_factory, giftcard, mock_receipt):
    hold = (await create_hold(db, Decimal("50"), code="CLAY-0050")).hold

    result = await consume_hold(db, hold.id)

    assert result.giftcard_id == giftcard.id
    assert result.new_balance == Decimal("0.00")
    assert await balance_of(session_factory, giftcard.id) == Decimal("0.00")
    assert not await hold_exists(session_factory, hold.id)

    audit = await list_audit(db, giftcard.id)
    assert [a.event_type for a in audit] == [AuditEvent.HOLD_CREATED, AuditEvent.HOLD_CONSUMED]
    assert audit[-1].hold_id == hold.id
    assert audit[-1].amount == Decimal("50.00")
    mock_receipt.assert_not_awaited()


@pytest.mark.asyncio
async def test_consume_twice(db, giftcard, mock_receipt):
    hold = (await create_hold(db, Decimal("20"), code="CLAY-0050")).hold
    await consume_hold(db, hold.id)

    with pytest.raises(GiftcardError) as exc_info:
        await consume_hold(db, hold.id)
    assert exc_info.value.code == "hold_not_found"
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_concurrent_consumes_never_overdraw(db, session_factory, giftcard, mock_receipt):
    first = GiftcardHold(giftcard_id=giftcard.id, amount=Decimal("50"))
    second = GiftcardHold(giftcard_id=giftcard.id, amount=Decimal("50"))
    db.add_all([first, second])
    await db.commit()

    async def consume(hold_id):
        async with session_factory() as session:
            return await consume_hold(session, hold_id)

    results = await asyncio.gather(consume(first.id), consume(second.id), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, GiftcardError)]
    assert len(successes) == 1
    assert [f.code for f in failures] == ["insufficient_funds"]
    assert await balance_of(session_factory, giftcard.id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_consume_pays_linked_booking(db, session_factory, giftcard, mock_receipt, upcoming, booking_row):
    booking = await booking_row(upcoming(2), "10:00", is_paid=False)
    hold = (await create_hold(db, Decimal("50"), code="CLAY-0050", booking_id=booking.id)).hold

    result = await consume_hold(db, hold.id)
    assert result.booking_id == booking.id

    async with session_factory() as session:
        paid = await session.get(Booking, booking.id)
        assert paid.is_paid
        assert paid.status == BookingStatus.PAID
        [payment] = paid.payment_details
        assert payment["method"] == "Giftcard"
        assert payment["holdId"] == hold.id
        assert payment["amount"] == "50.00"

    mock_receipt.assert_awaited_once()
    assert mock_receipt.await_args.args[0] == "customer@example.com"


@pytest.mark.asyncio
async def test_consume_rolls_back_when_payment_fails(db, session_factory, giftcard, mock_receipt):
    giftcard_id = giftcard.id
    hold_id = (await create_hold(db, Decimal("20"), code="CLAY-0050", booking_id=9999)).hold.id

    with pytest.raises(GiftcardError) as exc_info:
        await consume_hold(db, hold_id)
    assert exc_info.value.code == "payment_apply_failed"
    assert exc_info.value.status_code == 500

    # the rollback expired everything loaded through db
    assert await balance_of(session_factory, giftcard_id) == Decimal("50.00")
    assert await hold_exists(session_factory, hold_id)


@pytest.mark.asyncio
async def test_receipt_failure_does_not_undo_consume(
    db, session_factory, giftcard, mock_receipt, upcoming, booking_row
):
    mock_receipt.side_effect = aiosmtplib.SMTPException("relay down")
    booking = await booking_row(upcoming(2), "10:00", is_paid=False)
    hold = (await create_hold(db, Decimal("50"), code="CLAY-0050", booking_id=booking.id)).hold

    result = await consume_hold(db, hold.id)
    assert result.new_balance == Decimal("0.00")
    assert await balance_of(session_factory, giftcard.id) == Decimal("0.00")


# ---------------------------------------------------------------------------
# Release, expiry, validation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_release_hold(db, session_factory, giftcard):
    giftcard_id = giftcard.id
    hold_id = (await create_hold(db, Decimal("20"), code="CLAY-0050")).hold.id

    await release_hold(db, hold_id)
    assert not await hold_exists(session_factory, hold_id)
    assert await balance_of(session_factory, giftcard_id) == Decimal("50.00")

    with pytest.raises(GiftcardError) as exc_info:
        await release_hold(db, hold_id)
    assert exc_info.value.code == "hold_not_found"

    # a released hold cannot be consumed
    with pytest.raises(GiftcardError):
        await consume_hold(db, hold_id)

    events = [a.event_type for a in await list_audit(db, giftcard_id)]
    assert events == [AuditEvent.HOLD_CREATED, AuditEvent.HOLD_RELEASED]


@pytest.mark.asyncio
async def test_expire_holds(db, session_factory, giftcard):
    hold = (await create_hold(db, Decimal("20"), code="CLAY-0050")).hold
    await create_hold(db, Decimal("10"), code="CLAY-0050", ttl_minutes=600)

    later = datetime.now(UTC) + timedelta(hours=1)
    assert await expire_holds(db, now=later) == 1
    assert not await hold_exists(session_factory, hold.id)
    assert await balance_of(session_factory, giftcard.id) == Decimal("50.00")

    events = [a.event_type for a in await list_audit(db, giftcard.id)]
    assert events.count(AuditEvent.HOLD_EXPIRED) == 1


@pytest.mark.asyncio
async def test_expire_holds_limit(db, giftcard):
    for _ in range(3):
        await create_hold(db, Decimal("5"), code="CLAY-0050")

    later = datetime.now(UTC) + timedelta(hours=1)
    assert await expire_holds(db, limit=2, now=later) == 2
    assert await expire_holds(db, now=later) == 1


@pytest.mark.asyncio
async def test_validate_giftcard(db, giftcard):
    await create_hold(db, Decimal("15"), code="CLAY-0050")
    db.add(Giftcard(code="EMPTY", balance=Decimal("0")))
    await db.commit()

    active = await validate_giftcard(db, "CLAY-0050")
    assert active.valid
    assert active.held == Decimal("15.00")

    empty = await validate_giftcard(db, "EMPTY")
    assert empty.status == "depleted"
    assert not empty.valid

    with pytest.raises(GiftcardError):
        await validate_giftcard(db, "MISSING")
    await db.rollback()


@pytest.mark.asyncio
async def test_failed_audit_write_is_tolerated(db, giftcard):
    await _record_audit(db, giftcard_id=None, event_type=AuditEvent.HOLD_CREATED, amount=Decimal("1"))
    card = (await db.execute(select(Giftcard).where(Giftcard.id == giftcard.id))).scalar_one()
    assert card.code == "CLAY-0050"
    assert await list_audit(db, giftcard.id) == []
    await db.rollback()
