"""Booking routes: customer checkout, admin creation with overrides, payments."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.database import get_db
from claybook.core.dependencies import get_admin_actor
from claybook.models.booking import BookingStatus
from claybook.schemas import (
    AdminBookingCreate,
    AdminBookingOut,
    AdminBookingRejectedOut,
    AdminValidateIn,
    AuthorizeOverrideOut,
    BookingCreate,
    BookingOut,
    OverrideIn,
    OverrideOut,
    PaymentIn,
    ValidationIssueOut,
    ValidationResultOut,
)
from claybook.services.booking_rules import ValidationResult, validate_admin_booking
from claybook.services.bookings import (
    AdminBookingRejected,
    BookingNotFound,
    BookingRejected,
    NewBooking,
    add_booking,
    add_payment_to_booking,
    cancel_booking,
    create_admin_booking,
    get_booking,
    get_bookings,
)
from claybook.services.operating_hours import normalize_time
from claybook.services.overrides import OverrideError, authorize_override, list_overrides

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _validation_out(result: ValidationResult) -> ValidationResultOut:
    return ValidationResultOut(
        is_valid=result.is_valid,
        warnings=[
            ValidationIssueOut(rule=w.rule, severity=w.severity.value, message=w.message, code=w.code)
            for w in result.warnings
        ],
        can_continue_with_warnings=result.can_continue_with_warnings,
        outcome=type(result.outcome).__name__.lower(),
    )


def _new_booking(body: BookingCreate, is_paid: bool = False) -> NewBooking:
    try:
        slots = [(s.date, normalize_time(s.time)) for s in body.slots]
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return NewBooking(
        product_id=body.product_id,
        product_type=body.product_type,
        technique=body.technique,
        participants=body.participants,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
        slots=slots,
        price=body.price,
        is_paid=is_paid,
        accepted_no_refund=body.accepted_no_refund,
        client_note=body.client_note,
    )


async def _get_or_404(db: AsyncSession, booking_id: int):
    booking = await get_booking(db, booking_id)
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(body: BookingCreate, db: AsyncSession = Depends(get_db)):
    try:
        booking = await add_booking(db, _new_booking(body))
    except BookingRejected as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[{"rule": v.rule, "message": v.message} for v in exc.violations],
        )
    return BookingOut.model_validate(booking)


@router.get("", response_model=list[BookingOut])
async def list_bookings(
    booking_status: BookingStatus | None = Query(default=None, alias="status"),
    start: date | None = None,
    end: date | None = None,
    _actor: str = Depends(get_admin_actor),
    db: AsyncSession = Depends(get_db),
):
    bookings = await get_bookings(db, status=booking_status, start=start, end=end)
    return [BookingOut.model_validate(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingOut)
async def read_booking(booking_id: int, _actor: str = Depends(get_admin_actor), db: AsyncSession = Depends(get_db)):
    return BookingOut.model_validate(await _get_or_404(db, booking_id))


@router.post("/admin/validate", response_model=ValidationResultOut)
async def validate_booking(
    body: AdminValidateIn, _actor: str = Depends(get_admin_actor), db: AsyncSession = Depends(get_db)
):
    try:
        time = normalize_time(body.time)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    result = await validate_admin_booking(
        db, body.date, time, body.technique, body.participants, body.product_type
    )
    return _validation_out(result)


@router.post("/admin", response_model=AdminBookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking_as_admin(
    body: AdminBookingCreate, actor: str = Depends(get_admin_actor), db: AsyncSession = Depends(get_db)
):
    try:
        booking, result, record = await create_admin_booking(
            db, _new_booking(body, is_paid=body.is_paid), actor, body.override_reason
        )
    except AdminBookingRejected as exc:
        if exc.override_required:
            code, error = status.HTTP_409_CONFLICT, "override_reason_required"
        else:
            code, error = status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_failed"
        content = AdminBookingRejectedOut(error=error, validation=_validation_out(exc.result))
        return JSONResponse(status_code=code, content=content.model_dump(mode="json", by_alias=True))

    return AdminBookingOut(
        booking=BookingOut.model_validate(booking),
        validation=_validation_out(result),
        override=OverrideOut.from_record(record) if record else None,
    )


@router.post("/{booking_id}/payments", response_model=BookingOut)
async def record_payment(
    booking_id: int, body: PaymentIn, _actor: str = Depends(get_admin_actor), db: AsyncSession = Depends(get_db)
):
    try:
        booking = await add_payment_to_booking(db, booking_id, body.amount, body.method)
    except BookingNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return BookingOut.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingOut)
async def cancel(booking_id: int, _actor: str = Depends(get_admin_actor), db: AsyncSession = Depends(get_db)):
    try:
        booking = await cancel_booking(db, booking_id)
    except BookingNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return BookingOut.model_validate(booking)


@router.get("/{booking_id}/overrides", response_model=list[OverrideOut])
async def booking_overrides(
    booking_id: int, _actor: str = Depends(get_admin_actor), db: AsyncSession = Depends(get_db)
):
    await _get_or_404(db, booking_id)
    return [OverrideOut.from_record(r) for r in await list_overrides(db, booking_id)]


@router.post("/{booking_id}/overrides", response_model=AuthorizeOverrideOut, status_code=status.HTTP_201_CREATED)
async def authorize(
    booking_id: int, body: OverrideIn, actor: str = Depends(get_admin_actor), db: AsyncSession = Depends(get_db)
):
    try:
        record = await authorize_override(db, booking_id, actor, body.reason, body.metadata)
    except OverrideError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    return AuthorizeOverrideOut(override=OverrideOut.from_record(record))
