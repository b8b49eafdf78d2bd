"""Year-scoped, human-readable booking reference ids (``NAB_2026_0042``).

The counter is bumped by a single ``UPDATE ... RETURNING`` on the business's
counter row, so concurrent callers can never be handed the same reference id.
The id doubles as the booking's primary key.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import case, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import CounterTransactionFailed
from app.models.business import Business
from app.models.year_counter import YearCounter
from app.utils.time_window import safe_timezone

logger = logging.getLogger(__name__)


def format_reference_id(prefix: str, year: int, counter: int) -> str:
    return f"{prefix}_{year}_{counter:04d}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReferenceIdIssuer:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
        retry_delay_seconds: float = 0.05,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_seconds
        self._clock = clock

    def _current_year(self, business: Business) -> int:
        tz = safe_timezone(business.timezone, settings.BUSINESS_TIMEZONE)
        return self._clock().astimezone(tz).year

    async def issue(self, business: Business) -> str:
        """Issue the next reference id for ``business``.

        Raises:
            CounterTransactionFailed: the transaction did not commit after
                ``max_attempts`` tries. No id was issued; the caller must not
                create the booking.
        """
        year = self._current_year(business)
        prefix = business.reference_prefix or settings.REFERENCE_PREFIX
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                counter = await self._increment(business.id, year)
            except SQLAlchemyError as e:
                last_error = e
                logger.warning(
                    "Counter transaction failed for business %s (attempt %d/%d): %s",
                    business.id, attempt, self._max_attempts, e,
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_delay * attempt)
                continue

            reference_id = format_reference_id(prefix, year, counter)
            logger.info("Generated reference id %s", reference_id)
            return reference_id

        raise CounterTransactionFailed(
            f"Failed to generate reference id for business {business.id}: {last_error}"
        )

    async def _increment(self, business_id: str, year: int) -> int:
        # One conditional UPDATE takes the write lock before anything is read,
        # on PostgreSQL (row lock) and SQLite (database write lock) alike.
        bump = (
            update(YearCounter)
            .execution_options(synchronize_session=False)
            .where(YearCounter.business_id == business_id)
            .values(
                counter=case((YearCounter.year == year, YearCounter.counter + 1), else_=1),
                year=year,
                last_updated=datetime.utcnow(),
            )
            .returning(YearCounter.counter)
        )
        async with self._session_factory() as session:
            async with session.begin():
                new_value = (await session.execute(bump)).scalar_one_or_none()
                if new_value is None:
                    # First id for this business; a concurrent first insert
                    # surfaces as IntegrityError and the caller retries the UPDATE.
                    session.add(YearCounter(business_id=business_id, year=year, counter=1))
                    await session.flush()
                    new_value = 1
        if new_value == 1:
            logger.info("Reference counter for business %s started for year %s", business_id, year)
        return new_value

    async def peek(self, business: Business) -> dict:
        """Current counter, for display only. Never derive the next id from this."""
        async with self._session_factory() as session:
            row = await session.get(YearCounter, business.id)
        if row is None:
            return {"year": self._current_year(business), "counter": 0}
        return {"year": row.year, "counter": row.counter or 0}

    async def reset(self, business: Business) -> dict:
        """Force the counter to zero for the current year.

        Not serialised against concurrent ``issue`` calls: run it only while no
        bookings are being created.
        """
        year = self._current_year(business)
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(YearCounter, business.id)
                if row is None:
                    session.add(YearCounter(business_id=business.id, year=year, counter=0))
                else:
                    row.year = year
                    row.counter = 0
                    row.last_updated = datetime.utcnow()
        logger.warning("Reference counter reset for business %s (year %s)", business.id, year)
        return {"year": year, "counter": 0}
