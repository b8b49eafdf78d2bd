"""FastAPI dependencies: admin secret check, business resolution and service wiring."""

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.services.availability import AvailabilityResolver
from app.services.booking_lifecycle import BookingLifecycle
from app.services.email_service import EmailService
from app.services.meeting_links import GoogleMeetClient
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.reference_ids import ReferenceIdIssuer
from app.services.reminder_scheduler import ReminderScheduler
from app.utils.slot_lock import SlotLockRegistry

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide service objects, built once at startup and kept on ``app.state``."""
    session_factory: async_sessionmaker[AsyncSession]
    locks: SlotLockRegistry
    issuer: ReferenceIdIssuer
    resolver: AvailabilityResolver
    dispatcher: NotificationDispatcher
    meeting_links: GoogleMeetClient
    lifecycle: BookingLifecycle
    scheduler: ReminderScheduler


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    email_service: Optional[EmailService] = None,
    meeting_links: Optional[GoogleMeetClient] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Services:
    locks = SlotLockRegistry(default_ttl_seconds=settings.SLOT_LOCK_TTL_SECONDS)
    issuer = ReferenceIdIssuer(session_factory, max_attempts=settings.COUNTER_MAX_ATTEMPTS)
    resolver = AvailabilityResolver(session_factory)
    dispatcher = dispatcher or NotificationDispatcher(email_service or EmailService())
    meeting_links = meeting_links or GoogleMeetClient()
    lifecycle = BookingLifecycle(
        session_factory,
        locks,
        issuer,
        resolver,
        dispatcher=dispatcher,
        meeting_links=meeting_links,
        lock_ttl_seconds=settings.SLOT_LOCK_TTL_SECONDS,
    )
    scheduler = ReminderScheduler(session_factory, dispatcher)
    return Services(
        session_factory=session_factory,
        locks=locks,
        issuer=issuer,
        resolver=resolver,
        dispatcher=dispatcher,
        meeting_links=meeting_links,
        lifecycle=lifecycle,
        scheduler=scheduler,
    )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not ready")
    return services


async def require_admin_secret(
    x_admin_secret: Optional[str] = Header(None),
    admin_secret: Optional[str] = Query(None),
) -> None:
    """Admin routes accept the shared secret as ``X-Admin-Secret`` header or ``admin_secret`` query param."""
    provided = x_admin_secret or admin_secret
    if not settings.ADMIN_SECRET or not provided or not secrets.compare_digest(provided, settings.ADMIN_SECRET):
        logger.warning("Rejected admin request with missing or invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def get_business_id(
    x_business_id: Optional[str] = Header(None),
    business_id: Optional[str] = Query(None, alias="businessId"),
) -> str:
    """Header wins over query param; both fall back to the configured default business."""
    return x_business_id or business_id or settings.DEFAULT_BUSINESS_ID
