"""
Pytest fixtures for test database, client, and authentication.

Every test gets a fresh database: a file-backed SQLite database in the test's
tmp_path by default, or the database in TEST_DATABASE_URL (PostgreSQL for the
multi-connection race tests). Tables are created and dropped per test.
"""

import os

# Tests run without Redis and without the background reaper
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("REAPER_ENABLED", "false")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice.main import app
from boxoffice.db.base import Base
from boxoffice.db.session import build_engine, get_db
from boxoffice.core.security import create_access_token
from boxoffice.models import (
    Booking,
    Event,
    EventStatus,
    Seat,
    SeatStatus,
    Section,
    User,
    UserRole,
    Venue,
)
from boxoffice.services import seat_inventory

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Venue layout used by every seeded event: 2x5 floor + 1x4 balcony = 14 seats
FLOOR = {"name": "Floor", "row_count": 2, "seats_per_row": 5, "price_multiplier": Decimal("1.00")}
BALCONY = {"name": "Balcony", "row_count": 1, "seats_per_row": 4, "price_multiplier": Decimal("1.50")}
VENUE_CAPACITY = 14
BASE_PRICE = Decimal("100.00")


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'boxoffice_test.db'}"
    test_engine = build_engine(url, echo=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        if session.in_transaction():
            await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def make_headers(user_id: int, role: UserRole = UserRole.CUSTOMER) -> dict:
    token = create_access_token(data={"sub": str(user_id), "role": role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def users(db_session: AsyncSession) -> SimpleNamespace:
    """Two customers, an organizer and an admin. Returns their ids."""
    rows = {
        "alice": User(email="alice@example.com", name="Alice", role=UserRole.CUSTOMER),
        "bob": User(email="bob@example.com", name="Bob", role=UserRole.CUSTOMER),
        "organizer": User(email="org@example.com", name="Org", role=UserRole.ORGANIZER),
        "admin": User(email="admin@example.com", name="Admin", role=UserRole.ADMIN),
    }
    db_session.add_all(rows.values())
    await db_session.commit()
    return SimpleNamespace(**{key: user.id for key, user in rows.items()})


@pytest_asyncio.fixture
async def venue_id(db_session: AsyncSession) -> int:
    venue = Venue(name="Test Arena", city="Testville")
    venue.sections = [Section(**FLOOR), Section(**BALCONY)]
    db_session.add(venue)
    await db_session.commit()
    return venue.id


@pytest_asyncio.fixture
async def event_factory(db_session: AsyncSession, users, venue_id):
    """
    Insert an event with generated seats directly (bypassing create_event).
    Returns SimpleNamespace(id, seat_ids) with seat ids in slot order.
    """

    async def make(
        status: EventStatus = EventStatus.PUBLISHED,
        date: datetime = None,
    ) -> SimpleNamespace:
        result = await db_session.execute(select(Venue).where(Venue.id == venue_id))
        venue = result.scalar_one()
        event = Event(
            title="Test Concert",
            description="A test event",
            date=date or datetime.now(timezone.utc) + timedelta(days=30),
            venue_id=venue.id,
            organizer_id=users.organizer,
            base_price=BASE_PRICE,
            total_seats=VENUE_CAPACITY,
            available_seats=VENUE_CAPACITY,
            status=status,
        )
        db_session.add(event)
        await db_session.flush()
        await seat_inventory.generate_seats(db_session, event.id, BASE_PRICE, venue.sections)
        await db_session.commit()

        result = await db_session.execute(
            select(Seat.id).where(Seat.event_id == event.id).order_by(Seat.id)
        )
        return SimpleNamespace(id=event.id, seat_ids=list(result.scalars().all()))

    return make


@pytest_asyncio.fixture
async def event(event_factory) -> SimpleNamespace:
    """A PUBLISHED event 30 days out with 14 AVAILABLE seats."""
    return await event_factory()


@pytest.fixture
def alice_headers(users) -> dict:
    return make_headers(users.alice)


@pytest.fixture
def bob_headers(users) -> dict:
    return make_headers(users.bob)


@pytest.fixture
def organizer_headers(users) -> dict:
    return make_headers(users.organizer, UserRole.ORGANIZER)


@pytest.fixture
def admin_headers(users) -> dict:
    return make_headers(users.admin, UserRole.ADMIN)


async def lapse_holds(db: AsyncSession, seat_ids, seconds_ago: int = 60) -> None:
    """Move hold deadlines into the past without waiting for the TTL."""
    await db.execute(
        update(Seat)
        .where(Seat.id.in_(list(seat_ids)), Seat.status == SeatStatus.HELD)
        .values(held_until=datetime.now(timezone.utc) - timedelta(seconds=seconds_ago))
    )
    await db.commit()


async def lapse_booking(db: AsyncSession, booking_id: int, seconds_ago: int = 60) -> None:
    await db.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=seconds_ago))
    )
    await db.commit()


async def fetch_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def fetch_seats(db: AsyncSession, seat_ids) -> list[Seat]:
    result = await db.execute(
        select(Seat)
        .where(Seat.id.in_(list(seat_ids)))
        .order_by(Seat.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def assert_capacity_conserved(db: AsyncSession, event_id: int) -> None:
    """available_seats must equal the number of AVAILABLE seat rows."""
    event = await fetch_event(db, event_id)
    counts = await seat_inventory.count_seats_by_status(db, event_id)
    assert event.available_seats == counts[SeatStatus.AVAILABLE]
    await db.commit()
