"""Test configuration and fixtures"""

import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("EVENTS_ENABLED", "false")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base, get_db
from app.api.auth import create_access_token
from app.events import EventEmitter
from app.services.reservation_manager import ReservationManager
from app.services.table_registry import TableRegistry


# Test database URL (use in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingSink:
    """Event sink that keeps every published message"""

    def __init__(self):
        self.messages = []

    async def publish(self, channel: str, message: str) -> None:
        self.messages.append((channel, json.loads(message)))

    def events(self, name=None):
        return [m for _, m in self.messages if name is None or m["event"] == name]


class RecordingNotifier:
    """Notifier double recording (kind, reservation id) pairs"""

    def __init__(self):
        self.sent = []

    async def send_acknowledgement(self, reservation) -> bool:
        self.sent.append(("acknowledgement", reservation.id))
        return True

    async def send_confirmation(self, reservation) -> bool:
        self.sent.append(("confirmation", reservation.id))
        return True


@pytest.fixture
async def test_db():
    """Create test database"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def event_sink():
    return RecordingSink()


@pytest.fixture
def events(event_sink):
    return EventEmitter(event_sink, channel_prefix="test")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def registry(test_db, events):
    return TableRegistry(test_db, events)


@pytest.fixture
def manager(test_db, registry, notifier, events):
    return ReservationManager(test_db, registry, notifier, events)


@pytest.fixture
def make_table(registry):
    """Create a table with sensible defaults"""
    async def _make_table(table_number: str, capacity: int = 4, **fields):
        return await registry.create({"tableNumber": table_number, "capacity": capacity, **fields})
    return _make_table


@pytest.fixture
def restaurant_payload():
    """Valid restaurant booking body, overridable per test"""
    def _payload(**overrides):
        payload = {
            "guestInfo": {
                "name": "Ada Lovelace",
                "phoneNumber": "+15551234567",
                "email": "ada@example.com",
            },
            "date": (date.today() + timedelta(days=3)).isoformat(),
            "timeSlot": "Dinner",
            "noOfDiners": 3,
            "specialRequests": "Window seat",
            "agreeToTnC": True,
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def accommodation_payload():
    def _payload(**overrides):
        arrival = date.today() + timedelta(days=10)
        payload = {
            "guestInfo": {
                "name": "Grace Hopper",
                "phoneNumber": "+15557654321",
                "email": "grace@example.com",
            },
            "arrivalDate": arrival.isoformat(),
            "departureDate": (arrival + timedelta(days=2)).isoformat(),
            "rooms": [{"adults": 2, "children": 1}],
            "agreeToTnC": True,
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def meeting_payload():
    def _payload(**overrides):
        start = date.today() + timedelta(days=30)
        payload = {
            "guestInfo": {
                "name": "Alan Turing",
                "phoneNumber": "+15550001111",
                "email": "alan@example.com",
            },
            "eventType": "Reception",
            "reservationDate": start.isoformat(),
            "reservationEndDate": (start + timedelta(days=1)).isoformat(),
            "numberOfGuests": 120,
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def admin_headers():
    token = create_access_token("admin-1", "admin", name="Front Desk")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    token = create_access_token("guest-1", "user")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(test_db, events, notifier):
    """Create test client with overridden database and app state"""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.state.events = events
    app.state.notifier = notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def admin_client(client, admin_headers):
    """Create admin authenticated test client"""
    client.headers.update(admin_headers)
    return client


@pytest.fixture
async def user_client(client, user_headers):
    """Create guest-role authenticated test client"""
    client.headers.update(user_headers)
    return client
