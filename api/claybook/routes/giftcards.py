"""Giftcard hold/consume endpoints.

Failures answer {"success": false, "error": <code>} with the status the
ledger assigns: 404 for missing holds/giftcards, 400 for refusals and 500
when a consumed hold could not be applied to its booking.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.database import get_db
from claybook.core.dependencies import require_cleanup_secret
from claybook.schemas import (
    CleanupOut,
    ConsumeOut,
    GiftcardValidateOut,
    HoldCreate,
    HoldCreateOut,
    HoldOut,
    HoldRef,
    ReleaseOut,
)
from claybook.services.giftcards import (
    GiftcardError,
    consume_hold,
    create_hold,
    expire_holds,
    release_hold,
    validate_giftcard,
)

router = APIRouter(prefix="/giftcards", tags=["giftcards"])


def _error(exc: GiftcardError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.code, **exc.details})


@router.post("/create-hold", response_model=HoldCreateOut)
async def create_hold_route(body: HoldCreate, db: AsyncSession = Depends(get_db)):
    try:
        result = await create_hold(
            db,
            amount=body.amount,
            code=body.code,
            giftcard_id=body.giftcard_id,
            ttl_minutes=body.ttl_minutes,
            booking_id=body.booking_id,
            booking_temp_ref=body.booking_temp_ref,
            user_id=body.user_id,
        )
    except GiftcardError as exc:
        return _error(exc)
    return HoldCreateOut(hold=HoldOut.model_validate(result.hold), available=result.available, balance=result.balance)


@router.post("/consume", response_model=ConsumeOut)
async def consume_route(body: HoldRef, db: AsyncSession = Depends(get_db)):
    try:
        result = await consume_hold(db, body.hold_id)
    except GiftcardError as exc:
        return _error(exc)
    return ConsumeOut(giftcard_id=result.giftcard_id, new_balance=result.new_balance)


@router.post("/release-hold", response_model=ReleaseOut)
async def release_route(body: HoldRef, db: AsyncSession = Depends(get_db)):
    try:
        hold = await release_hold(db, body.hold_id)
    except GiftcardError as exc:
        return _error(exc)
    return ReleaseOut(hold_id=hold.id)


@router.post("/cleanup-expired", response_model=CleanupOut, dependencies=[Depends(require_cleanup_secret)])
async def cleanup_route(limit: int | None = Query(default=None, ge=1), db: AsyncSession = Depends(get_db)):
    expired = await expire_holds(db, limit=limit)
    return CleanupOut(expired=expired)


@router.get("/validate", response_model=GiftcardValidateOut)
async def validate_route(code: str, db: AsyncSession = Depends(get_db)):
    try:
        result = await validate_giftcard(db, code)
    except GiftcardError as exc:
        return _error(exc)
    card = result.giftcard
    return GiftcardValidateOut(
        valid=result.valid,
        code=card.code,
        status=result.status,
        balance=card.balance,
        available=max(card.balance - result.held, 0),
        initial_value=card.initial_value,
        expires_at=card.expires_at,
    )
