"""Shared test fixtures for ConsultDesk API tests.

Uses an in-memory SQLite async engine so tests run without PostgreSQL.
External collaborators (email, SMS, Google Calendar, Stripe) are mocked.
"""

from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.dependencies import build_services
from app.main import app

# Import all models to ensure they're registered with Base.metadata
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.business import Business
from app.models.consultant import Consultant
from app.models.year_counter import YearCounter  # noqa: F401
from app.services.meeting_links import MeetingLinkResult
from app.services.notification_dispatcher import DispatchResult, NotificationDispatcher


# Use aiosqlite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

BUSINESS_ID = "test-consultancy"
ADMIN_SECRET = "test-admin-secret"


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db():
    async with TestSession() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def session_factory():
    return TestSession


@pytest_asyncio.fixture
async def db():
    """Direct DB session for test setup/assertions."""
    async with TestSession() as session:
        yield session


@pytest_asyncio.fixture
async def business(db):
    business = Business(
        id=BUSINESS_ID,
        name="Test Consultancy",
        reference_prefix="NAB",
        timezone="Asia/Kolkata",
        admin_email="admin@example.com",
        is_active=True,
        advance_booking_days=15,
        slot_durations=[{"duration": 30, "price": 500}, {"duration": 60, "price": 900}],
        weekly_schedule={
            "monday": {"enabled": True, "start": "10:00", "end": "18:00"},
            "tuesday": {"enabled": True, "start": "10:00", "end": "18:00"},
            "sunday": {"enabled": False, "start": "10:00", "end": "18:00"},
        },
        off_days=["2030-01-26"],
    )
    db.add(business)
    await db.commit()
    return business


@pytest_asyncio.fixture
async def consultant(db, business):
    consultant = Consultant(
        id="ca-asha",
        business_id=business.id,
        name="Asha Rao",
        email="asha@example.com",
        phone="+919800000001",
        specialization="Tax",
        unavailable_slots=[
            {"date": "2025-03-10", "start_time": "10:00", "end_time": "11:00", "reason": "Training"},
        ],
    )
    db.add(consultant)
    await db.commit()
    return consultant


@pytest.fixture
def make_booking(db, business):
    """Factory for bookings written straight to the store."""
    counter = {"n": 900}

    async def _make(**overrides) -> Booking:
        counter["n"] += 1
        fields = dict(
            reference_id=f"NAB_2030_{counter['n']:04d}",
            business_id=business.id,
            customer_name="Ravi Kumar",
            customer_email="ravi@example.com",
            customer_phone="+919800000002",
            assigned_consultant="",
            date=date(2030, 5, 14),
            time_slot="10:00",
            duration_minutes=30,
            amount=500,
            payment_status=PaymentStatus.COMPLETED,
            status=BookingStatus.PENDING,
            created_at=datetime.utcnow(),
        )
        fields.update(overrides)
        booking = Booking(**fields)
        db.add(booking)
        await db.commit()
        return booking

    return _make


@pytest.fixture
def dispatcher():
    mock = MagicMock(spec=NotificationDispatcher)
    mock.send = AsyncMock(return_value=DispatchResult(success=True, message_id="msg-123"))
    return mock


@pytest.fixture
def meeting_links():
    mock = MagicMock()
    mock.create_link = AsyncMock(
        return_value=MeetingLinkResult(
            success=True, link="https://meet.google.com/abc-defg-hij", external_event_id="evt-1"
        )
    )
    mock.update_link = AsyncMock(return_value=MeetingLinkResult(success=True, external_event_id="evt-1"))
    mock.cancel_link = AsyncMock(return_value=MeetingLinkResult(success=True, external_event_id="evt-1"))
    return mock


@pytest.fixture
def services(dispatcher, meeting_links):
    services = build_services(TestSession, meeting_links=meeting_links, dispatcher=dispatcher)
    app.state.services = services
    yield services
    app.state.services = None


@pytest_asyncio.fixture
async def client(services):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers(monkeypatch):
    monkeypatch.setattr("app.core.config.settings.ADMIN_SECRET", ADMIN_SECRET)
    return {"X-Admin-Secret": ADMIN_SECRET, "X-Business-Id": BUSINESS_ID}
