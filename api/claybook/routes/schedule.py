"""Admin schedule management: weekly rules, date overrides, technique capacities."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from claybook.core.database import get_db
from claybook.core.dependencies import get_admin_actor
from claybook.schemas import (
    RuleIn,
    RuleOut,
    ScheduleOverrideIn,
    ScheduleOverrideOut,
    TechniqueCapacityIn,
    TechniqueCapacityOut,
)
from claybook.services import schedule as schedule_service
from claybook.services.operating_hours import normalize_time
from claybook.services.schedule import SlotRule

router = APIRouter(prefix="/schedule", tags=["schedule"], dependencies=[Depends(get_admin_actor)])


@router.get("/rules", response_model=list[RuleOut])
async def list_rules(product_id: int | None = None, db: AsyncSession = Depends(get_db)):
    return await schedule_service.list_rules(db, product_id)


@router.put("/rules", response_model=RuleOut)
async def upsert_rule(body: RuleIn, db: AsyncSession = Depends(get_db)):
    try:
        return await schedule_service.upsert_rule(
            db,
            day_of_week=body.day_of_week,
            time=body.time,
            instructor_id=body.instructor_id,
            capacity=body.capacity,
            technique=body.technique,
            product_id=body.product_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(rule_id: int, db: AsyncSession = Depends(get_db)):
    if not await schedule_service.delete_rule(db, rule_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")


@router.get("/overrides", response_model=list[ScheduleOverrideOut])
async def list_overrides(
    product_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await schedule_service.list_overrides(db, product_id, start, end)


@router.put("/overrides/{override_date}", response_model=ScheduleOverrideOut)
async def set_override(override_date: date, body: ScheduleOverrideIn, db: AsyncSession = Depends(get_db)):
    """Replace a day's sessions, or close the day when sessions is null."""
    sessions = None
    if body.sessions is not None:
        try:
            sessions = [
                SlotRule(
                    time=normalize_time(s.time),
                    instructor_id=s.instructor_id,
                    capacity=s.capacity,
                    technique=s.technique,
                )
                for s in body.sessions
            ]
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return await schedule_service.set_override(
        db, override_date, sessions, capacity=body.capacity, product_id=body.product_id
    )


@router.delete("/overrides/{override_date}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_override(override_date: date, product_id: int | None = None, db: AsyncSession = Depends(get_db)):
    if not await schedule_service.clear_override(db, override_date, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Override not found")


@router.put("/capacities/{technique}", response_model=TechniqueCapacityOut)
async def set_capacity(technique: str, body: TechniqueCapacityIn, db: AsyncSession = Depends(get_db)):
    return await schedule_service.set_capacity(db, technique, body.capacity)
