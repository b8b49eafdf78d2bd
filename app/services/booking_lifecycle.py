"""Booking lifecycle: creation, payment confirmation, assignment, status changes, cancellation.

Conflict prevention runs in two layers. The per-business ``SlotLock`` rejects a
second checkout for the same slot inside this process straight away; the
store-level overlap scan (``AvailabilityResolver.find_conflicts``) is the check
that holds across processes, and runs again when payment is confirmed.

Meeting links and notifications are best-effort side effects: their failures
are logged and never change the booking's status or payment state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import (
    BookingNotFound,
    BusinessNotFound,
    ConsultantNotFound,
    CounterTransactionFailed,
    InvalidInput,
    InvalidTransition,
    SlotNoLongerAvailable,
    SlotUnavailable,
)
from app.models.booking import (
    REMINDER_LABELS,
    Booking,
    BookingStatus,
    PaymentStatus,
    can_transition,
)
from app.models.business import Business
from app.models.consultant import Consultant
from app.services.availability import AvailabilityResolver
from app.services.meeting_links import GoogleMeetClient
from app.services.notification_dispatcher import NotificationDispatcher, NotificationKind
from app.services.reference_ids import ReferenceIdIssuer
from app.utils.slot_lock import SlotLockRegistry
from app.utils.time_window import format_time_slot, parse_date, parse_time_slot, to_interval

logger = logging.getLogger(__name__)


@dataclass
class BookingRequest:
    business_id: str
    customer_name: str
    customer_email: str
    customer_phone: str
    date: str
    time_slot: str
    duration_minutes: int
    consultant_id: str = ""
    consult_note: str = ""
    amount: Decimal | float = 0


def resolve_price(business: Business, duration_minutes: int) -> Decimal:
    """Price configured for ``duration_minutes`` in the business's slot durations."""
    for option in business.slot_durations or []:
        if option.get("duration") == duration_minutes:
            return Decimal(str(option.get("price", 0)))
    raise InvalidInput(f"Duration {duration_minutes} minutes is not offered")


async def notification_payload(
    session: AsyncSession,
    booking: Booking,
    business: Business | None = None,
) -> dict:
    """Booking payload for the dispatcher and meeting-link provider.

    Consultant contact details are fetched when the booking has an assigned
    consultant but none cached; a failed lookup leaves them out.
    """
    payload = booking.to_payload()
    if business is None:
        business = await session.get(Business, booking.business_id)
    if business is not None:
        payload["business_name"] = business.name
        payload["timezone"] = business.timezone
        payload["admin_email"] = business.admin_email

    if booking.assigned_consultant and not booking.consultant_email:
        try:
            consultant = await session.get(Consultant, booking.assigned_consultant)
        except SQLAlchemyError as e:
            logger.warning("Could not load consultant %s for %s: %s", booking.assigned_consultant, booking.reference_id, e)
            consultant = None
        if consultant is not None:
            payload["consultant_name"] = consultant.name
            payload["consultant_email"] = consultant.email
    return payload


class BookingLifecycle:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: SlotLockRegistry,
        issuer: ReferenceIdIssuer,
        resolver: AvailabilityResolver,
        dispatcher: Optional[NotificationDispatcher] = None,
        meeting_links: Optional[GoogleMeetClient] = None,
        lock_ttl_seconds: int = settings.SLOT_LOCK_TTL_SECONDS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self._locks = locks
        self._issuer = issuer
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._meeting_links = meeting_links
        self._lock_ttl = lock_ttl_seconds
        self._clock = clock

    async def get(self, reference_id: str) -> Booking:
        async with self._session_factory() as session:
            booking = await session.get(Booking, reference_id)
        if booking is None:
            raise BookingNotFound(f"Booking {reference_id} not found")
        return booking

    async def _get_business(self, business_id: str) -> Business:
        async with self._session_factory() as session:
            business = await session.get(Business, business_id)
        if business is None or not business.is_active:
            raise BusinessNotFound(f"Business {business_id} not found")
        return business

    def _holds_since(self) -> datetime:
        return self._clock() - timedelta(seconds=self._lock_ttl)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    async def create(self, request: BookingRequest) -> Booking:
        """Write a draft booking for a free slot.

        Raises:
            InvalidInput: malformed request
            SlotUnavailable: consultant busy, overlapping booking or hold, or slot locked
            CounterTransactionFailed: no reference id could be issued; nothing was written
        """
        for field_name in ("customer_name", "customer_email", "customer_phone"):
            if not str(getattr(request, field_name) or "").strip():
                raise InvalidInput(f"{field_name} is required")

        day = parse_date(request.date)
        time_slot = format_time_slot(parse_time_slot(request.time_slot))
        to_interval(day, time_slot, request.duration_minutes)

        business = await self._get_business(request.business_id)
        consultant_id = request.consultant_id or ""

        if consultant_id:
            available = await self._resolver.is_consultant_available(
                business.id, consultant_id, day, time_slot, request.duration_minutes
            )
            if not available:
                raise SlotUnavailable("Selected consultant is not available at this time. Please choose another slot.")

        conflicts = await self._resolver.find_conflicts(
            business.id, day, time_slot, request.duration_minutes,
            consultant_id=consultant_id,
            holds_since=self._holds_since(),
        )
        if conflicts:
            logger.info(
                "Slot %s %s for business %s conflicts with %s",
                day, time_slot, business.id, [b.reference_id for b in conflicts],
            )
            raise SlotUnavailable("This time slot is no longer available. Please choose another slot.")

        lock = self._locks.for_business(business.id)
        if not lock.acquire(day, time_slot, self._lock_ttl):
            raise SlotUnavailable(
                "This time slot is being booked by another customer. Please choose a different time."
            )

        try:
            reference_id = await self._issuer.issue(business)
        except CounterTransactionFailed:
            lock.release(day, time_slot)
            raise
        lock.tag(day, time_slot, reference_id)

        now = self._clock()
        booking = Booking(
            reference_id=reference_id,
            business_id=business.id,
            customer_name=request.customer_name.strip(),
            customer_email=request.customer_email.strip(),
            customer_phone=request.customer_phone.strip(),
            consult_note=request.consult_note or "",
            assigned_consultant=consultant_id,
            date=day,
            time_slot=time_slot,
            duration_minutes=request.duration_minutes,
            amount=request.amount or 0,
            payment_status=PaymentStatus.PENDING,
            status=BookingStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session_factory() as session:
                session.add(booking)
                await session.commit()
        except IntegrityError as e:
            # Reference id already taken, e.g. after a counter reset
            lock.release(day, time_slot, reference_id)
            logger.error("Reference id %s already in use: %s", reference_id, e)
            raise CounterTransactionFailed(f"Reference id {reference_id} is already in use; no booking was created")
        except SQLAlchemyError:
            lock.release(day, time_slot, reference_id)
            raise

        logger.info("Draft booking %s created for %s %s", reference_id, day, time_slot)
        return booking

    async def attach_payment_order(self, reference_id: str, payment_order_id: str) -> Booking:
        async with self._session_factory() as session:
            booking = await session.get(Booking, reference_id)
            if booking is None:
                raise BookingNotFound(f"Booking {reference_id} not found")
            booking.payment_order_id = payment_order_id
            booking.updated_at = self._clock()
            await session.commit()
        return booking

    # ------------------------------------------------------------------
    # payment
    # ------------------------------------------------------------------

    async def mark_payment_completed(self, reference_id: str, payment_id: str | None = None) -> Booking:
        """Record a successful payment. Safe to call more than once.

        Raises:
            BookingNotFound
            InvalidTransition: the booking was cancelled before the payment landed
            SlotNoLongerAvailable: a competing booking took the slot meanwhile;
                the booking stays unpaid for manual resolution
        """
        booking = await self.get(reference_id)
        if booking.payment_status == PaymentStatus.COMPLETED:
            logger.info("Payment for %s already recorded", reference_id)
            return booking

        if booking.is_terminal:
            raise InvalidTransition(f"Cannot confirm payment for {booking.status.value} booking {reference_id}")
        target = booking.status
        if can_transition(booking.status, BookingStatus.PENDING, manual=False):
            target = BookingStatus.PENDING

        await self._reverify(booking)

        async with self._session_factory() as session:
            result = await session.execute(
                update(Booking)
                .execution_options(synchronize_session=False)
                .where(
                    Booking.reference_id == reference_id,
                    Booking.payment_status != PaymentStatus.COMPLETED,
                    Booking.status == booking.status,
                )
                .values(
                    payment_status=PaymentStatus.COMPLETED,
                    status=target,
                    payment_id=payment_id or booking.payment_id,
                    updated_at=self._clock(),
                )
            )
            await session.commit()
            claimed = result.rowcount == 1

        self._locks.for_business(booking.business_id).release(booking.date, booking.time_slot, reference_id)
        booking = await self.get(reference_id)
        if not claimed:
            if booking.payment_status == PaymentStatus.COMPLETED:
                logger.info("Payment for %s recorded concurrently", reference_id)
                return booking
            raise InvalidTransition(
                f"Booking {reference_id} moved to {booking.status.value} while its payment was being confirmed"
            )

        logger.info("Payment completed for booking %s", reference_id)
        await self._after_payment(booking)
        return await self.get(reference_id)

    async def mark_payment_failed(self, reference_id: str) -> Booking:
        """Record a failed attempt. The draft stays open for another try but stops holding the slot."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Booking)
                .execution_options(synchronize_session=False)
                .where(
                    Booking.reference_id == reference_id,
                    Booking.payment_status == PaymentStatus.PENDING,
                )
                .values(payment_status=PaymentStatus.FAILED, updated_at=self._clock())
            )
            await session.commit()
        if result.rowcount == 1:
            logger.info("Payment failed for booking %s", reference_id)
        return await self.get(reference_id)

    async def _reverify(self, booking: Booking) -> None:
        if booking.assigned_consultant:
            available = await self._resolver.is_consultant_available(
                booking.business_id, booking.assigned_consultant,
                booking.date, booking.time_slot, booking.duration_minutes,
                exclude_reference=booking.reference_id,
            )
            if not available:
                raise SlotNoLongerAvailable(
                    f"Consultant for {booking.reference_id} is no longer available; manual resolution required"
                )

        conflicts = await self._resolver.find_conflicts(
            booking.business_id, booking.date, booking.time_slot, booking.duration_minutes,
            consultant_id=booking.assigned_consultant,
            exclude_reference=booking.reference_id,
        )
        if conflicts:
            logger.warning(
                "Slot for %s taken by %s during payment",
                booking.reference_id, [b.reference_id for b in conflicts],
            )
            raise SlotNoLongerAvailable(
                f"Slot for {booking.reference_id} is no longer available; manual resolution required"
            )

    async def _after_payment(self, booking: Booking) -> None:
        """Cache consultant contact, create the meeting link, send the confirmation."""
        try:
            async with self._session_factory() as session:
                row = await session.get(Booking, booking.reference_id)
                payload = await notification_payload(session, row)
                if row.assigned_consultant and not row.consultant_email and payload.get("consultant_email"):
                    row.consultant_name = payload.get("consultant_name")
                    row.consultant_email = payload["consultant_email"]

                if self._meeting_links is not None:
                    link = await self._meeting_links.create_link(payload)
                    if link.success:
                        row.meet_link = link.link
                        row.meet_event_id = link.external_event_id
                        payload["meet_link"] = link.link
                    else:
                        logger.warning("Meeting link not created for %s: %s", row.reference_id, link.error)

                if self._dispatcher is not None:
                    result = await self._dispatcher.send(NotificationKind.CONFIRMATION, payload)
                    if result.success:
                        row.confirmation_sent = True
                        row.confirmation_sent_at = self._clock()
                        row.confirmation_message_id = result.message_id
                    else:
                        logger.warning("Confirmation for %s not delivered: %s", row.reference_id, result.error)

                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to record post-payment side effects for %s: %s", booking.reference_id, e)

    # ------------------------------------------------------------------
    # staff actions
    # ------------------------------------------------------------------

    async def assign(self, reference_id: str, consultant_id: str | None = None) -> Booking:
        """Assign a consultant. Without ``consultant_id`` the first available one is picked."""
        booking = await self.get(reference_id)
        if booking.is_terminal:
            raise InvalidTransition(f"Cannot assign a consultant to a {booking.status.value} booking")

        if consultant_id:
            async with self._session_factory() as session:
                consultant = await session.get(Consultant, consultant_id)
            if consultant is None or consultant.business_id != booking.business_id:
                raise ConsultantNotFound(f"Consultant {consultant_id} not found")
            available = await self._resolver.is_consultant_available(
                booking.business_id, consultant_id,
                booking.date, booking.time_slot, booking.duration_minutes,
                exclude_reference=reference_id,
            )
            if not available:
                raise SlotUnavailable(f"Consultant {consultant.name} is not available for this booking")
        else:
            consultant = await self._resolver.pick_consultant(
                booking.business_id, booking.date, booking.time_slot, booking.duration_minutes
            )
            if consultant is None:
                raise SlotUnavailable("No consultant is available for this booking")

        async with self._session_factory() as session:
            row = await session.get(Booking, reference_id)
            row.assigned_consultant = consultant.id
            row.consultant_name = consultant.name
            row.consultant_email = consultant.email
            row.updated_at = self._clock()
            await session.commit()

        logger.info("Booking %s assigned to consultant %s", reference_id, consultant.id)
        return await self.get(reference_id)

    async def set_status(self, reference_id: str, new_status: BookingStatus | str) -> Booking:
        try:
            target = BookingStatus(new_status)
        except ValueError:
            raise InvalidInput(f"Unknown status {new_status!r}")

        booking = await self.get(reference_id)
        if not can_transition(booking.status, target):
            raise InvalidTransition(
                f"Cannot change status from {booking.status.value} to {target.value}"
            )
        if target == BookingStatus.CANCELLED:
            return await self.cancel(reference_id)

        async with self._session_factory() as session:
            result = await session.execute(
                update(Booking)
                .execution_options(synchronize_session=False)
                .where(Booking.reference_id == reference_id, Booking.status == booking.status)
                .values(status=target, updated_at=self._clock())
            )
            await session.commit()
        if result.rowcount != 1:
            raise InvalidTransition(f"Booking {reference_id} changed status concurrently; retry")

        logger.info("Booking %s status %s -> %s", reference_id, booking.status.value, target.value)
        return await self.get(reference_id)

    async def cancel(self, reference_id: str) -> Booking:
        booking = await self.get(reference_id)
        if not can_transition(booking.status, BookingStatus.CANCELLED, manual=False):
            raise InvalidTransition(f"Cannot cancel a {booking.status.value} booking")

        async with self._session_factory() as session:
            now = self._clock()
            result = await session.execute(
                update(Booking)
                .execution_options(synchronize_session=False)
                .where(Booking.reference_id == reference_id, Booking.status == booking.status)
                .values(status=BookingStatus.CANCELLED, cancelled_at=now, updated_at=now)
            )
            await session.commit()
        if result.rowcount != 1:
            raise InvalidTransition(f"Booking {reference_id} changed status concurrently; retry")

        self._locks.for_business(booking.business_id).release(booking.date, booking.time_slot, reference_id)
        logger.info("Booking %s cancelled", reference_id)

        booking = await self.get(reference_id)
        await self._after_cancel(booking)
        return booking

    async def _after_cancel(self, booking: Booking) -> None:
        if self._meeting_links is not None and booking.meet_event_id:
            await self._meeting_links.cancel_link(booking.meet_event_id)

        # Unpaid drafts never got a confirmation, so there is nothing to retract.
        if self._dispatcher is None or booking.payment_status != PaymentStatus.COMPLETED:
            return
        try:
            async with self._session_factory() as session:
                payload = await notification_payload(session, booking)
        except SQLAlchemyError as e:
            logger.error("Could not build cancellation payload for %s: %s", booking.reference_id, e)
            return
        result = await self._dispatcher.send(NotificationKind.CANCELLATION, payload)
        if not result.success:
            logger.warning("Cancellation notice for %s not delivered: %s", booking.reference_id, result.error)

    async def reschedule(
        self,
        reference_id: str,
        date: str | None = None,
        time_slot: str | None = None,
        duration_minutes: int | None = None,
    ) -> Booking:
        """Move a non-terminal booking, re-running the conflict checks without itself.

        Reminder flags are cleared so the reminders fire for the new time.
        """
        booking = await self.get(reference_id)
        if booking.is_terminal:
            raise InvalidTransition(f"Cannot reschedule a {booking.status.value} booking")

        day = parse_date(date) if date else booking.date
        slot = format_time_slot(parse_time_slot(time_slot)) if time_slot else booking.time_slot
        duration = booking.duration_minutes if duration_minutes is None else duration_minutes
        to_interval(day, slot, duration)

        if booking.assigned_consultant:
            available = await self._resolver.is_consultant_available(
                booking.business_id, booking.assigned_consultant, day, slot, duration,
                exclude_reference=reference_id,
            )
            if not available:
                raise SlotUnavailable("The assigned consultant is not available at the new time")

        conflicts = await self._resolver.find_conflicts(
            booking.business_id, day, slot, duration,
            consultant_id=booking.assigned_consultant,
            exclude_reference=reference_id,
            holds_since=self._holds_since(),
        )
        if conflicts:
            raise SlotUnavailable("The requested time slot is not available. Please choose another slot.")

        moved = day != booking.date or slot != booking.time_slot
        async with self._session_factory() as session:
            row = await session.get(Booking, reference_id)
            row.date = day
            row.time_slot = slot
            row.duration_minutes = duration
            row.updated_at = self._clock()
            if moved:
                for label in REMINDER_LABELS:
                    setattr(row, f"reminder_{label}_sent", False)
                    setattr(row, f"reminder_{label}_sent_at", None)
                    setattr(row, f"reminder_{label}_message_id", None)
            await session.commit()
            payload = await notification_payload(session, row)

        logger.info("Booking %s rescheduled to %s %s (%d min)", reference_id, day, slot, duration)
        if self._meeting_links is not None and booking.meet_event_id:
            await self._meeting_links.update_link(booking.meet_event_id, payload)
        return await self.get(reference_id)
