"""
Pytest fixtures for test database, client, users, events and services.

Each test gets a fresh SQLite database file so that concurrent sessions
(separate connections) really contend on the same rows. Every HTTP request
gets its own session, like production.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BOOKING_RETRY_BACKOFF_SECONDS", "0.01")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.core.permissions import Role
from app.core.security import create_access_token, hash_password
from app.infrastructure.sql_stores import SqlBookingStore, SqlEventStore, SqlUnitOfWork
from app.models.booking import Booking
from app.models.event import Event, EventStatus
from app.models.user import User
from app.services.booking_service import BookingService


@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ticketing_test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get a fresh session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(session: AsyncSession, username: str, role: Role) -> User:
    user = User(
        email=f"{username}@example.com",
        username=username,
        hashed_password=hash_password("testpassword123"),
        role=role.value,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "testuser", Role.USER)


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "otheruser", Role.USER)


@pytest_asyncio.fixture
async def organizer(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "organizer", Role.ORGANIZER)


@pytest_asyncio.fixture
async def other_organizer(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "otherorganizer", Role.ORGANIZER)


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin", Role.ADMIN)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token for the regular test user."""
    return _headers(test_user)


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict:
    return _headers(other_user)


@pytest_asyncio.fixture
async def organizer_headers(organizer: User) -> dict:
    return _headers(organizer)


@pytest_asyncio.fixture
async def other_organizer_headers(other_organizer: User) -> dict:
    return _headers(other_organizer)


@pytest_asyncio.fixture
async def admin_headers(admin: User) -> dict:
    return _headers(admin)


@pytest_asyncio.fixture
async def make_event(db_session: AsyncSession, organizer: User):
    """Factory for events owned by the organizer fixture."""

    async def make(
        total_tickets: int = 10,
        remaining_tickets: int | None = None,
        price: str = "20.00",
        status: EventStatus = EventStatus.APPROVED,
        title: str = "Test Concert",
    ) -> Event:
        event = Event(
            title=title,
            description="A test event",
            date=datetime.now(timezone.utc) + timedelta(days=30),
            location="Test Venue",
            category="music",
            price=Decimal(price),
            total_tickets=total_tickets,
            remaining_tickets=total_tickets if remaining_tickets is None else remaining_tickets,
            status=status.value,
            organizer_id=organizer.id,
        )
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event

    return make


@pytest_asyncio.fixture
async def test_event(make_event) -> Event:
    """Approved event: 10 tickets at 20.00."""
    return await make_event()


@pytest_asyncio.fixture
async def pending_event(make_event) -> Event:
    return await make_event(status=EventStatus.PENDING, title="Pending Show")


@pytest_asyncio.fixture
async def sold_out_event(make_event) -> Event:
    return await make_event(total_tickets=50, remaining_tickets=0, title="Sold Out Show")


@pytest_asyncio.fixture
async def service_factory(session_factory):
    """
    Build BookingServices backed by the SQL stores, each on its own session
    (its own connection), so concurrent calls behave like separate requests.
    """
    sessions = []

    def make(**kwargs) -> BookingService:
        session = session_factory()
        sessions.append(session)
        return BookingService(
            events=SqlEventStore(session),
            bookings=SqlBookingStore(session),
            uow=SqlUnitOfWork(session),
            **kwargs,
        )

    yield make

    for session in sessions:
        await session.close()


@pytest_asyncio.fixture
async def inventory(session_factory):
    """Read an event's committed inventory and its active booked quantity."""

    async def read(event_id: int) -> tuple[int, int, int]:
        async with session_factory() as session:
            event = (
                await session.execute(select(Event).where(Event.id == event_id))
            ).scalar_one()
            booked = (
                await session.execute(
                    select(func.coalesce(func.sum(Booking.quantity), 0)).where(
                        Booking.event_id == event_id, Booking.status == "active"
                    )
                )
            ).scalar_one()
            return event.remaining_tickets, booked, event.total_tickets

    return read
