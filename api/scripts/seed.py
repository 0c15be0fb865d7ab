"""Seed the database with Claybook studio data.

Run with: python -m scripts.seed
Creates instructors, the weekly studio timetable, technique capacities,
the introductory and couples products with their own rules, a running
course and a test giftcard.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from claybook.core.database import async_session_factory, engine
from claybook.models import (
    Base,
    CourseSchedule,
    CourseSession,
    Giftcard,
    Instructor,
    Product,
    ProductType,
    SchedulingRule,
    TechniqueCapacity,
)
from claybook.services.operating_hours import FRIDAY, SATURDAY, THURSDAY, TUESDAY, WEDNESDAY

INSTRUCTORS = ["Alma", "Bruno", "Carla"]

# (day, time, instructor index, capacity, technique)
WEEKLY_RULES = [
    (TUESDAY, "10:00", 0, 8, "potters_wheel"),
    (TUESDAY, "17:00", 1, 22, "hand_modeling"),
    (WEDNESDAY, "17:00", 0, 8, "potters_wheel"),
    (THURSDAY, "10:00", 2, 22, "painting"),
    (THURSDAY, "17:00", 0, 8, "potters_wheel"),
    (FRIDAY, "17:00", 1, 22, "molding"),
    (SATURDAY, "10:00", 0, 8, "potters_wheel"),
    (SATURDAY, "10:00", 2, 22, "hand_modeling"),
    (SATURDAY, "15:00", 1, 8, "potters_wheel"),
]

CAPACITIES = {"potters_wheel": 8, "molding": 22, "introductory_class": 8}

PRODUCTS = [
    {
        "name": "Introduction to the Wheel",
        "product_type": ProductType.INTRODUCTORY_CLASS,
        "technique": "potters_wheel",
        "price": Decimal("55.00"),
        "rules": [(TUESDAY, "19:00", 0, 8), (WEDNESDAY, "11:00", 1, 8)],
    },
    {
        "name": "Couples Wheel Night",
        "product_type": ProductType.COUPLES_EXPERIENCE,
        "technique": "potters_wheel",
        "price": Decimal("90.00"),
        "rules": [(FRIDAY, "19:00", 0, 6), (SATURDAY, "18:00", 1, 6)],
    },
]


def _next_weekday(start: date, weekday: int) -> date:
    """weekday in Python numbering, Monday=0."""
    return start + timedelta(days=(weekday - start.weekday()) % 7)


async def seed():
    # Create tables (in dev; production uses Alembic migrations)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        result = await db.execute(select(Instructor).limit(1))
        if result.scalar_one_or_none():
            print("Database already seeded, skipping.")
            return

        instructors = [Instructor(name=name) for name in INSTRUCTORS]
        db.add_all(instructors)
        await db.flush()

        for day, time, who, capacity, technique in WEEKLY_RULES:
            db.add(SchedulingRule(
                day_of_week=day,
                time=time,
                instructor_id=instructors[who].id,
                capacity=capacity,
                technique=technique,
            ))

        for technique, capacity in CAPACITIES.items():
            db.add(TechniqueCapacity(technique=technique, capacity=capacity))

        for product_data in PRODUCTS:
            rules = product_data.pop("rules")
            product = Product(**product_data)
            db.add(product)
            await db.flush()
            for day, time, who, capacity in rules:
                db.add(SchedulingRule(
                    product_id=product.id,
                    day_of_week=day,
                    time=time,
                    instructor_id=instructors[who].id,
                    capacity=capacity,
                    technique=product.technique,
                ))

        # Four-week wheel course on Thursday mornings
        course = CourseSchedule(name="Wheel Fundamentals")
        db.add(course)
        await db.flush()
        first = _next_weekday(date.today(), 3)
        for week in range(4):
            db.add(CourseSession(
                course_schedule_id=course.id,
                scheduled_date=first + timedelta(weeks=week),
                start_time="09:00",
                end_time="11:00",
            ))

        db.add(Giftcard(code="CLAY-TEST-0100", balance=Decimal("100.00"), initial_value=Decimal("100.00")))

        await db.commit()

        print("Seeded: Claybook studio")
        print(f"  {len(INSTRUCTORS)} instructors")
        print(f"  {len(WEEKLY_RULES)} weekly rules")
        print(f"  {len(PRODUCTS)} products")
        print("  1 course (4 sessions)")
        print("  giftcard CLAY-TEST-0100 / 100.00")


if __name__ == "__main__":
    asyncio.run(seed())
