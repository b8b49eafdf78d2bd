"""Consultant availability and booking overlap checks.

Any doubt resolves to "unavailable": an unknown consultant, an unreadable
blackout window or a failed lookup all block the slot. Under-booking is
preferred over double-booking.
"""

import logging
from datetime import date, datetime

from sqlalchemy import select, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import InvalidInput
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.consultant import Consultant, ConsultantStatus
from app.utils.time_window import TimeWindow, overlaps, parse_date, to_interval, window_between

logger = logging.getLogger(__name__)


def shares_pool(consultant_id: str | None, other_consultant_id: str | None) -> bool:
    """Two bookings compete for the same time if either is unassigned or both share a consultant."""
    return not consultant_id or not other_consultant_id or consultant_id == other_consultant_id


def blackout_conflicts(unavailable_slots: list[dict] | None, day: date, window: TimeWindow) -> list[dict]:
    """Blackout entries on ``day`` overlapping ``window``. Malformed entries count as conflicts."""
    conflicts = []
    for slot in unavailable_slots or []:
        try:
            if parse_date(slot.get("date")) != day:
                continue
            blocked = window_between(day, slot.get("start_time"), slot.get("end_time"))
        except (InvalidInput, AttributeError) as e:
            logger.warning("Unreadable blackout entry %r treated as blocking: %s", slot, e)
            conflicts.append(slot)
            continue
        if overlaps(window, blocked):
            conflicts.append(slot)
    return conflicts


class AvailabilityResolver:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def is_consultant_available(
        self,
        business_id: str,
        consultant_id: str,
        day: date | str,
        time_slot: str,
        duration_minutes: int,
        exclude_reference: str | None = None,
    ) -> bool:
        day = parse_date(day)
        window = to_interval(day, time_slot, duration_minutes)
        try:
            async with self._session_factory() as session:
                consultant = await session.get(Consultant, consultant_id)
                if consultant is None or consultant.business_id != business_id:
                    logger.info("Consultant %s not found for business %s", consultant_id, business_id)
                    return False
                return await self._is_free(session, consultant, day, window, exclude_reference)
        except SQLAlchemyError as e:
            logger.error("Error checking consultant %s availability: %s", consultant_id, e)
            return False

    async def list_available_consultants(
        self,
        business_id: str,
        day: date | str,
        time_slot: str,
        duration_minutes: int,
    ) -> list[Consultant]:
        """Active consultants free for the slot, in the store's natural order."""
        day = parse_date(day)
        window = to_interval(day, time_slot, duration_minutes)
        async with self._session_factory() as session:
            result = await session.execute(
                select(Consultant).where(
                    and_(
                        Consultant.business_id == business_id,
                        Consultant.status == ConsultantStatus.ACTIVE,
                    )
                )
            )
            available = []
            for consultant in result.scalars().all():
                if await self._is_free(session, consultant, day, window, None):
                    available.append(consultant)

        logger.info("Found %d available consultants for %s %s", len(available), day, time_slot)
        return available

    async def pick_consultant(
        self,
        business_id: str,
        day: date | str,
        time_slot: str,
        duration_minutes: int,
    ) -> Consultant | None:
        """First available consultant, or None."""
        available = await self.list_available_consultants(business_id, day, time_slot, duration_minutes)
        return available[0] if available else None

    async def find_conflicts(
        self,
        business_id: str,
        day: date | str,
        time_slot: str,
        duration_minutes: int,
        consultant_id: str = "",
        exclude_reference: str | None = None,
        holds_since: datetime | None = None,
    ) -> list[Booking]:
        """Bookings in the same consultant pool whose window overlaps the slot.

        Paid, non-cancelled bookings always block. With ``holds_since`` set,
        unpaid drafts created at or after that instant block too; they stand
        for in-flight checkouts on any process.
        """
        day = parse_date(day)
        window = to_interval(day, time_slot, duration_minutes)

        occupying = and_(
            Booking.payment_status == PaymentStatus.COMPLETED,
            Booking.status != BookingStatus.CANCELLED,
        )
        if holds_since is not None:
            occupying = or_(
                occupying,
                and_(
                    Booking.status == BookingStatus.DRAFT,
                    Booking.payment_status == PaymentStatus.PENDING,
                    Booking.created_at >= holds_since,
                ),
            )

        async with self._session_factory() as session:
            result = await session.execute(
                select(Booking).where(
                    and_(Booking.business_id == business_id, Booking.date == day, occupying)
                )
            )
            candidates = result.scalars().all()

        conflicts = []
        for booking in candidates:
            if booking.reference_id == exclude_reference:
                continue
            if not shares_pool(consultant_id, booking.assigned_consultant):
                continue
            try:
                other = to_interval(booking.date, booking.time_slot, booking.duration_minutes)
            except InvalidInput:
                conflicts.append(booking)
                continue
            if overlaps(window, other):
                conflicts.append(booking)
        return conflicts

    async def _is_free(
        self,
        session: AsyncSession,
        consultant: Consultant,
        day: date,
        window: TimeWindow,
        exclude_reference: str | None,
    ) -> bool:
        if consultant.status != ConsultantStatus.ACTIVE:
            return False

        blocked = blackout_conflicts(consultant.unavailable_slots, day, window)
        if blocked:
            logger.info(
                "Consultant %s is unavailable on %s (%d blackout window(s) overlap %s-%s)",
                consultant.id, day, len(blocked), window.start.time(), window.end.time(),
            )
            return False

        result = await session.execute(
            select(Booking).where(
                and_(
                    Booking.business_id == consultant.business_id,
                    Booking.assigned_consultant == consultant.id,
                    Booking.date == day,
                    Booking.payment_status == PaymentStatus.COMPLETED,
                    Booking.status != BookingStatus.CANCELLED,
                )
            )
        )
        for booking in result.scalars().all():
            if booking.reference_id == exclude_reference:
                continue
            try:
                other = to_interval(booking.date, booking.time_slot, booking.duration_minutes)
            except InvalidInput:
                return False
            if overlaps(window, other):
                logger.info("Consultant %s already booked by %s", consultant.id, booking.reference_id)
                return False
        return True
