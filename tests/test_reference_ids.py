"""Tests for year-scoped reference id issuance."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import Base
from app.core.exceptions import CounterTransactionFailed
from app.models.business import Business
from app.models.year_counter import YearCounter
from app.services.reference_ids import ReferenceIdIssuer, format_reference_id


class YearClock:
    def __init__(self, year: int):
        self.value = datetime(year, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.value


def test_format_pads_counter_to_four_digits():
    assert format_reference_id("NAB", 2025, 42) == "NAB_2025_0042"
    assert format_reference_id("NAB", 2025, 12345) == "NAB_2025_12345"


@pytest.mark.asyncio
async def test_sequential_issues_are_gap_free(session_factory, business):
    issuer = ReferenceIdIssuer(session_factory, clock=YearClock(2025))
    issued = [await issuer.issue(business) for _ in range(5)]

    assert issued == [f"NAB_2025_{n:04d}" for n in range(1, 6)]
    counters = [int(ref.rsplit("_", 1)[1]) for ref in issued]
    assert counters == sorted(set(counters))


@pytest.mark.asyncio
async def test_new_year_resets_counter(session_factory, business):
    clock = YearClock(2025)
    issuer = ReferenceIdIssuer(session_factory, clock=clock)
    for _ in range(3):
        await issuer.issue(business)

    clock.value = datetime(2026, 1, 2, tzinfo=timezone.utc)
    assert await issuer.issue(business) == "NAB_2026_0001"
    assert await issuer.issue(business) == "NAB_2026_0002"


@pytest.mark.asyncio
async def test_year_follows_business_timezone(session_factory, business):
    # 20:00 UTC on Dec 31 is already Jan 1 in India
    clock = YearClock(2025)
    clock.value = datetime(2025, 12, 31, 20, 0, tzinfo=timezone.utc)
    issuer = ReferenceIdIssuer(session_factory, clock=clock)
    assert await issuer.issue(business) == "NAB_2026_0001"


@pytest.mark.asyncio
async def test_peek_does_not_advance(session_factory, business):
    issuer = ReferenceIdIssuer(session_factory, clock=YearClock(2025))
    assert await issuer.peek(business) == {"year": 2025, "counter": 0}
    await issuer.issue(business)
    await issuer.issue(business)
    assert await issuer.peek(business) == {"year": 2025, "counter": 2}
    assert await issuer.peek(business) == {"year": 2025, "counter": 2}


@pytest.mark.asyncio
async def test_reset_restarts_at_one(session_factory, business):
    issuer = ReferenceIdIssuer(session_factory, clock=YearClock(2025))
    for _ in range(4):
        await issuer.issue(business)

    assert await issuer.reset(business) == {"year": 2025, "counter": 0}
    assert await issuer.issue(business) == "NAB_2025_0001"


@pytest.mark.asyncio
async def test_failed_transaction_raises_after_retries(session_factory, business):
    issuer = ReferenceIdIssuer(session_factory, max_attempts=3, retry_delay_seconds=0, clock=YearClock(2025))
    failure = OperationalError("UPDATE year_counters", {}, Exception("database is locked"))

    with patch.object(issuer, "_increment", AsyncMock(side_effect=failure)) as increment:
        with pytest.raises(CounterTransactionFailed):
            await issuer.issue(business)
    assert increment.call_count == 3


@pytest.mark.asyncio
async def test_transient_failure_is_retried(session_factory, business):
    issuer = ReferenceIdIssuer(session_factory, max_attempts=3, retry_delay_seconds=0, clock=YearClock(2025))
    failure = OperationalError("UPDATE year_counters", {}, Exception("database is locked"))

    with patch.object(issuer, "_increment", AsyncMock(side_effect=[failure, 7])):
        assert await issuer.issue(business) == "NAB_2025_0007"


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Separate connections per session, unlike the shared in-memory engine."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'counters.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add(Business(id="file-consultancy", name="File Consultancy", reference_prefix="NAB", timezone="UTC"))
        await session.commit()
    yield factory
    await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.parametrize("warm_up", [0, 1])
async def test_concurrent_issues_are_distinct_and_gap_free(file_session_factory, warm_up):
    issuer = ReferenceIdIssuer(file_session_factory, max_attempts=5, retry_delay_seconds=0.01, clock=YearClock(2025))
    async with file_session_factory() as session:
        business = await session.get(Business, "file-consultancy")
    for _ in range(warm_up):
        await issuer.issue(business)

    issued = await asyncio.gather(*[issuer.issue(business) for _ in range(8)])

    counters = sorted(int(ref.rsplit("_", 1)[1]) for ref in issued)
    assert counters == list(range(warm_up + 1, warm_up + 9))
    assert await issuer.peek(business) == {"year": 2025, "counter": warm_up + 8}


@pytest.mark.asyncio
async def test_counter_rolls_over_in_one_statement(session_factory, business, db):
    db.add(YearCounter(business_id=business.id, year=2024, counter=57))
    await db.commit()

    issuer = ReferenceIdIssuer(session_factory, clock=YearClock(2025))
    assert await issuer.issue(business) == "NAB_2025_0001"
    assert await issuer.peek(business) == {"year": 2025, "counter": 1}
