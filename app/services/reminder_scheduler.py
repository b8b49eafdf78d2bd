"""Appointment reminder scheduler.

Two recurring ticks:

- fine (every minute): the "starting now" reminder, for bookings starting
  within 30 seconds of one minute from now
- coarse (every hour): the 12-hour and 1-hour reminders, for bookings starting
  within 30 minutes of now + offset

Each (booking, offset) pair has its own flag on the booking row. The flag is
claimed with a conditional UPDATE before dispatch, so only one scheduler
instance can send a given reminder; a failed dispatch hands the claim back and
the booking is retried on the next tick. Nothing else is kept between ticks.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import InvalidInput
from app.models.booking import ACTIVE_STATUSES, Booking, PaymentStatus
from app.models.business import Business
from app.services.booking_lifecycle import notification_payload
from app.services.notification_dispatcher import NotificationDispatcher, NotificationKind
from app.utils.time_window import safe_timezone, start_instant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderOffset:
    label: str
    lead: timedelta
    tolerance: timedelta

    @property
    def flag(self) -> str:
        return f"reminder_{self.label}_sent"


REMINDER_1MIN = ReminderOffset("1min", timedelta(minutes=1), timedelta(seconds=30))
REMINDER_12HR = ReminderOffset("12hr", timedelta(hours=12), timedelta(minutes=30))
REMINDER_1HR = ReminderOffset("1hr", timedelta(hours=1), timedelta(minutes=30))

FINE_OFFSETS = (REMINDER_1MIN,)
COARSE_OFFSETS = (REMINDER_12HR, REMINDER_1HR)

FINE_INTERVAL_SECONDS = 60
COARSE_INTERVAL_SECONDS = 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ReminderScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._clock = clock
        self._tasks: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # ticks
    # ------------------------------------------------------------------

    async def run_fine_tick(self, now: Optional[datetime] = None) -> dict[str, int]:
        return await self._run(FINE_OFFSETS, now)

    async def run_coarse_tick(self, now: Optional[datetime] = None) -> dict[str, int]:
        return await self._run(COARSE_OFFSETS, now)

    async def run_all(self, now: Optional[datetime] = None) -> dict[str, int]:
        now = now or self._clock()
        sent = await self.run_coarse_tick(now)
        sent.update(await self.run_fine_tick(now))
        return sent

    async def _run(self, offsets: tuple[ReminderOffset, ...], now: Optional[datetime]) -> dict[str, int]:
        now = now or self._clock()
        sent = {offset.label: 0 for offset in offsets}

        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Business).where(Business.is_active.is_(True)))
                businesses = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Reminder tick could not load businesses: %s", e)
            return sent

        for business in businesses:
            for offset in offsets:
                try:
                    sent[offset.label] += await self.process_offset(business, offset, now)
                except SQLAlchemyError as e:
                    logger.error("%s reminders failed for business %s: %s", offset.label, business.id, e)

        logger.info("Reminder tick at %s sent %s", now.isoformat(), sent)
        return sent

    async def process_offset(self, business: Business, offset: ReminderOffset, now: datetime) -> int:
        """Send ``offset`` reminders for ``business`` bookings starting near ``now + offset.lead``."""
        tz = safe_timezone(business.timezone, settings.BUSINESS_TIMEZONE)
        target = now + offset.lead
        window_start = target - offset.tolerance
        window_end = target + offset.tolerance
        days = {window_start.astimezone(tz).date(), window_end.astimezone(tz).date()}

        flag = getattr(Booking, offset.flag)
        async with self._session_factory() as session:
            result = await session.execute(
                select(Booking).where(
                    Booking.business_id == business.id,
                    Booking.date.in_(days),
                    Booking.payment_status == PaymentStatus.COMPLETED,
                    Booking.status.in_(ACTIVE_STATUSES),
                    flag.is_(False),
                )
            )
            candidates = result.scalars().all()

        sent = 0
        for booking in candidates:
            try:
                starts_at = start_instant(booking.date, booking.time_slot, tz)
            except InvalidInput as e:
                logger.warning("Skipping %s: %s", booking.reference_id, e)
                continue
            if not window_start <= starts_at <= window_end:
                logger.debug("%s starts at %s, outside %s reminder window", booking.reference_id, starts_at, offset.label)
                continue

            try:
                if await self._send_reminder(business, booking, offset, now):
                    sent += 1
            except Exception as e:
                logger.exception("Error sending %s reminder for %s: %s", offset.label, booking.reference_id, e)
        return sent

    # ------------------------------------------------------------------
    # per booking
    # ------------------------------------------------------------------

    async def _send_reminder(self, business: Business, booking: Booking, offset: ReminderOffset, now: datetime) -> bool:
        if not await self._claim(booking.reference_id, offset, now):
            logger.debug("%s reminder for %s already claimed or no longer due", offset.label, booking.reference_id)
            return False

        try:
            async with self._session_factory() as session:
                payload = await notification_payload(session, booking, business)
            payload["reminder_label"] = offset.label
            result = await self._dispatcher.send(NotificationKind.REMINDER, payload)
        except Exception:
            await self._release(booking.reference_id, offset)
            raise

        if not result.success:
            logger.error("%s reminder for %s failed: %s", offset.label, booking.reference_id, result.error)
            await self._release(booking.reference_id, offset)
            return False

        await self._record(booking.reference_id, offset, result.message_id)
        logger.info("Sent %s reminder for booking %s", offset.label, booking.reference_id)
        return True

    async def _claim(self, reference_id: str, offset: ReminderOffset, now: datetime) -> bool:
        flag = getattr(Booking, offset.flag)
        async with self._session_factory() as session:
            result = await session.execute(
                update(Booking)
                .execution_options(synchronize_session=False)
                .where(
                    Booking.reference_id == reference_id,
                    flag.is_(False),
                    Booking.status.in_(ACTIVE_STATUSES),
                    Booking.payment_status == PaymentStatus.COMPLETED,
                )
                .values({offset.flag: True, f"{offset.flag}_at": _naive_utc(now)})
            )
            await session.commit()
        return result.rowcount == 1

    async def _release(self, reference_id: str, offset: ReminderOffset) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Booking)
                .execution_options(synchronize_session=False)
                .where(Booking.reference_id == reference_id)
                .values({offset.flag: False, f"{offset.flag}_at": None})
            )
            await session.commit()

    async def _record(self, reference_id: str, offset: ReminderOffset, message_id: str | None) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Booking)
                .execution_options(synchronize_session=False)
                .where(Booking.reference_id == reference_id)
                .values({f"reminder_{offset.label}_message_id": message_id})
            )
            await session.commit()

    # ------------------------------------------------------------------
    # background loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._loop(FINE_INTERVAL_SECONDS, self.run_fine_tick)),
            asyncio.create_task(self._loop(COARSE_INTERVAL_SECONDS, self.run_coarse_tick)),
        ]
        logger.info("Reminder scheduler started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Reminder scheduler stopped")

    async def _loop(self, interval_seconds: int, tick) -> None:
        while True:
            # Align to the next minute / hour boundary
            await asyncio.sleep(interval_seconds - (time.time() % interval_seconds))
            try:
                await tick()
            except Exception as e:
                logger.error("Reminder tick failed: %s", e)
