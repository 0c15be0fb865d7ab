"""Public read endpoint: GET /data?action=...

One URL with an action switch, so existing storefront clients keep working.
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.config import settings
from claybook.core.database import get_db
from claybook.schemas import (
    CapacityOut,
    ExperienceSearchOut,
    ExperienceSearchParams,
    ExperienceSlotOut,
    GroupClassSearchOut,
    GroupClassSlotOut,
    MonthlyAvailabilityOut,
    SessionOut,
    SlotAvailabilityOut,
)
from claybook.services.availability import get_available_slots_for_experience, get_group_class_slots
from claybook.services.capacity import check_slot_availability
from claybook.services.operating_hours import normalize_time, parse_date
from claybook.services.sessions import get_class_slots, get_monthly_availability, get_product_sessions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/data", tags=["data"])


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"success": False, "error": message})


def _parse_day(value: str | None, field: str) -> date:
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {field}: {value!r}")


def _parse_time(value: str | None) -> str:
    try:
        return normalize_time(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid time: {value!r}")


@router.get("")
async def data(
    action: str,
    date_: str | None = Query(default=None, alias="date"),
    time: str | None = None,
    technique: str | None = None,
    participants: int | None = Query(default=None, ge=1),
    start_date: str | None = Query(default=None, alias="startDate"),
    days_ahead: int | None = Query(default=None, alias="daysAhead", ge=1, le=366),
    include_unavailable: bool = Query(default=False, alias="includeUnavailable"),
    potters_wheel: int = Query(default=0, alias="pottersWheel", ge=0),
    hand_modeling: int = Query(default=0, alias="handModeling", ge=0),
    painting: int = Query(default=0, ge=0),
    product_id: int | None = Query(default=None, alias="productId"),
    instructor_id: int | None = Query(default=None, alias="instructorId"),
    include_full: bool = Query(default=False, alias="includeFull"),
    db: AsyncSession = Depends(get_db),
):
    if action == "checkSlotAvailability":
        if not (date_ and time and technique):
            return _bad_request("Missing required parameters: date, time, technique")
        result = await check_slot_availability(
            db, _parse_day(date_, "date"), _parse_time(time), technique, participants or 1
        )
        out = SlotAvailabilityOut(
            available=result.available,
            capacity=CapacityOut(booked=result.booked, max=result.max, available=result.available_capacity),
            message=result.message,
            blocked_reason=result.blocked_reason,
        )
        return out.model_dump(by_alias=True, exclude_none=True)

    if action == "getAvailableSlots":
        if not (technique and participants):
            return _bad_request("Missing required parameters: technique and participants")
        start = _parse_day(start_date, "startDate") if start_date else date.today()
        days = days_ahead or settings.search_days_ahead
        slots = await get_available_slots_for_experience(
            db, technique, participants, start, days, include_unavailable=include_unavailable
        )
        return ExperienceSearchOut(
            slots=[ExperienceSlotOut.model_validate(s) for s in slots],
            search_params=ExperienceSearchParams(
                technique=technique, participants=participants, start_date=start, days_ahead=days
            ),
        ).model_dump(mode="json", by_alias=True)

    if action == "getGroupClassSlots":
        start = _parse_day(start_date, "startDate") if start_date else date.today()
        try:
            slots = await get_group_class_slots(db, potters_wheel, hand_modeling, painting, start, days_ahead)
        except ValueError as exc:
            return _bad_request(str(exc))
        return GroupClassSearchOut(
            slots=[GroupClassSlotOut.model_validate(s) for s in slots]
        ).model_dump(mode="json", by_alias=True)

    if action == "getSessions":
        if product_id is None:
            return _bad_request("Missing required parameter: productId")
        sessions = await get_product_sessions(db, product_id, days_ahead, include_full=include_full)
        return [SessionOut.model_validate(s).model_dump(mode="json", by_alias=True) for s in sessions]

    if action == "getClassSlots":
        if not date_:
            return _bad_request("Missing required parameter: date")
        sessions = await get_class_slots(db, _parse_day(date_, "date"), technique)
        return [SessionOut.model_validate(s).model_dump(mode="json", by_alias=True) for s in sessions]

    if action == "checkMonthlyAvailability":
        if not (date_ and time and technique and instructor_id is not None):
            return _bad_request("Missing required parameters: date, time, technique, instructorId")
        available = await get_monthly_availability(
            db, _parse_day(date_, "date"), _parse_time(time), instructor_id, technique
        )
        return MonthlyAvailabilityOut(available=available).model_dump(by_alias=True)

    logger.info("Unknown data action %r", action)
    return _bad_request(f"Unknown action: {action}")
