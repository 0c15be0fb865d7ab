"""Celery worker: periodic housekeeping for holds and pre-reservations.

Tasks are synchronous Celery tasks that drive the async services with
asyncio.run, each in its own database session. Every run ends by disposing
the connection pool, since each asyncio.run starts a fresh event loop.
"""

import asyncio
import logging

from celery import Celery

from claybook.core.config import settings
from claybook.core.database import async_session_factory, engine
from claybook.services.bookings import expire_stale_bookings
from claybook.services.giftcards import expire_holds

logger = logging.getLogger(__name__)

celery_app = Celery(
    "claybook",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.studio_timezone,
    enable_utc=True,
    beat_schedule={
        "expire-giftcard-holds": {
            "task": "claybook.worker.expire_giftcard_holds",
            "schedule": 300.0,
        },
        "expire-unpaid-bookings": {
            "task": "claybook.worker.expire_unpaid_bookings",
            "schedule": 900.0,
        },
    },
)


async def _expire_holds(limit: int | None) -> int:
    try:
        async with async_session_factory() as db:
            return await expire_holds(db, limit=limit)
    finally:
        # pooled connections belong to this task's event loop
        await engine.dispose()


async def _expire_bookings() -> int:
    try:
        async with async_session_factory() as db:
            count = await expire_stale_bookings(db)
            await db.commit()
            return count
    finally:
        await engine.dispose()


@celery_app.task(name="claybook.worker.expire_giftcard_holds")
def expire_giftcard_holds(limit: int | None = None) -> int:
    count = asyncio.run(_expire_holds(limit))
    logger.info("expire_giftcard_holds: %d removed", count)
    return count


@celery_app.task(name="claybook.worker.expire_unpaid_bookings")
def expire_unpaid_bookings() -> int:
    count = asyncio.run(_expire_bookings())
    logger.info("expire_unpaid_bookings: %d expired", count)
    return count
