import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import uuid
from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from catcafe_booking.bookings.schemas import BookingCreateSchema
from catcafe_booking.database.engine import Base, get_async_session
from catcafe_booking.exceptions import NotificationError
from catcafe_booking.main import app
from catcafe_booking.notifications.dispatcher import NotificationDispatcher, get_notification_dispatcher
from catcafe_booking.packages.models import User
from catcafe_booking.rooms.models import AvailableDate, Room

BOOKING_DAY = date(2030, 1, 15)


class RecordingMailer:
    """Stands in for SmtpMailer and keeps every message instead of sending it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, to, subject, html, bcc=False):
        if self.fail:
            raise NotificationError("SMTP is not configured.")
        self.sent.append({"to": to, "subject": subject, "html": html, "bcc": bcc})


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def rooms(db):
    rows = [
        Room(id=1, name="Room A", capacity=4,
             prices={"cash": {"hourly": 100, "daily": 300, "monthly": 5000}},
             booking_options=["token", "cash", "dp20"]),
        Room(id=2, name="Room C", capacity=8,
             prices={"cash": {"hourly": 100, "daily": 600}},
             booking_options=["token", "cash"]),
        Room(id=9, name="Lobby Seat", capacity=20,
             prices={"cash": {"daily": 50}},
             booking_options=["cash", "dp20"]),
    ]
    db.add_all(rows)
    await db.commit()
    return {room.id: room for room in rows}


@pytest.fixture
async def guest(db):
    user = User(id=uuid.uuid4(), email="guest@example.com", full_name="Mei Chan", tokens=Decimal("5"))
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def other_guest(db):
    user = User(id=uuid.uuid4(), email="other@example.com", full_name="Ka Ho")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin(db):
    user = User(id=uuid.uuid4(), email="admin@example.com", full_name="Front Desk", is_admin=True)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def open_day(db, rooms):
    db.add(AvailableDate(available_date=BOOKING_DAY, reason="Regular opening"))
    await db.commit()
    return BOOKING_DAY


@pytest.fixture
def make_request(guest):
    def factory(**overrides):
        data = {
            "user_id": guest.id,
            "room_id": 1,
            "booking_date": BOOKING_DAY,
            "start_time": "10:00",
            "end_time": "12:00",
            "payment_method": "cash",
            "guests": 1,
            "purpose": ["remote work"],
            "equipment": [{"type": "monitor", "quantity": 1}],
            "language": "en",
        }
        data.update(overrides)
        return BookingCreateSchema(**data)
    return factory


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def failing_mailer():
    return RecordingMailer(fail=True)


@pytest.fixture
async def client(session_factory, mailer):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_notification_dispatcher] = lambda: NotificationDispatcher(mailer)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
