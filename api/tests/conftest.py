"""Shared test fixtures.

Each test gets its own SQLite file. Transactions open with BEGIN IMMEDIATE so
concurrent sessions serialize on the write lock, which stands in for the
row locks PostgreSQL takes in production, and savepoints behave as they do
there.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from claybook.core.database import get_db
from claybook.main import app
from claybook.models import Base, Booking, BookingSlot, BookingStatus, Instructor, SchedulingRule
from claybook.services.operating_hours import day_index


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'claybook.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def mock_receipt():
    with patch("claybook.services.giftcards.send_payment_receipt_email", new_callable=AsyncMock) as mock_send:
        yield mock_send


@pytest.fixture
async def studio(db):
    """Two instructors and a small weekly timetable.

    Saturday 10:00 is a general session capped at 6; Tuesday has a wheel
    class at 10:00 and a hand-work class at 17:00.
    """
    alma = Instructor(name="Alma")
    bruno = Instructor(name="Bruno")
    db.add_all([alma, bruno])
    await db.flush()

    db.add_all([
        SchedulingRule(day_of_week=6, time="10:00", instructor_id=alma.id, capacity=6),
        SchedulingRule(day_of_week=2, time="10:00", instructor_id=alma.id, capacity=8, technique="potters_wheel"),
        SchedulingRule(day_of_week=2, time="17:00", instructor_id=bruno.id, capacity=22, technique="hand_modeling"),
    ])
    await db.commit()
    return {"alma": alma, "bruno": bruno}


@pytest.fixture
def upcoming():
    """Return a helper giving a date at least `weeks_ahead` weeks out on `weekday` (0=Sunday)."""

    def _upcoming(weekday: int, weeks_ahead: int = 2) -> date:
        start = date.today() + timedelta(weeks=weeks_ahead)
        return start + timedelta(days=(weekday - day_index(start)) % 7)

    return _upcoming


@pytest.fixture
def booking_row(db):
    """Return a helper that inserts a committed booking directly, bypassing the booking rules."""

    async def _booking_row(
        day: date,
        time: str,
        participants: int = 1,
        technique: str | None = "potters_wheel",
        is_paid: bool = True,
        status=None,
        expires_at=None,
        product_id: int | None = None,
        product_type: str = "CUSTOM_EXPERIENCE",
    ):
        booking = Booking(
            booking_code=f"C-TEST-{uuid.uuid4().hex[:8].upper()}",
            product_id=product_id,
            product_type=product_type,
            technique=technique,
            participants=participants,
            customer_name="Test Customer",
            customer_email="customer@example.com",
            status=status or (BookingStatus.PAID if is_paid else BookingStatus.ACTIVE),
            expires_at=expires_at,
            price=Decimal("50.00"),
            is_paid=is_paid,
            payment_details=[],
        )
        booking.slots = [BookingSlot(slot_date=day, slot_time=time)]
        db.add(booking)
        await db.commit()
        return booking

    return _booking_row
