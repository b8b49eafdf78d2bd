"""Booking notification fan-out.

``send(kind, booking)`` emails up to three recipients (customer, consultant,
admin) independently: one recipient failing never blocks the others. The
result's ``success`` reflects delivery to the customer, the recipient the
booking flow and reminder flags care about; per-recipient outcomes are kept in
``details``.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from app.core.config import settings
from app.core.exceptions import DispatchFailure
from app.services.email_service import EmailService, render_booking_email
from app.services.sms import REMINDER_LEAD_TEXT, send_reminder_sms

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    CONFIRMATION = "confirmation"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"


class Recipient(str, enum.Enum):
    CUSTOMER = "customer"
    CONSULTANT = "consultant"
    ADMIN = "admin"


@dataclass
class DispatchResult:
    success: bool
    message_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


def _subject(kind: NotificationKind, booking: dict, recipient: Recipient) -> str:
    ref = booking.get("reference_id")
    if kind == NotificationKind.CONFIRMATION:
        if recipient == Recipient.CUSTOMER:
            return f"Booking Confirmed - {ref}"
        return f"New booking {ref} on {booking.get('date')} at {booking.get('time_slot')}"
    if kind == NotificationKind.REMINDER:
        lead = REMINDER_LEAD_TEXT.get(booking.get("reminder_label"), "soon")
        return f"Reminder: consultation {ref} is {lead}"
    return f"Booking Cancelled - {ref}"


def _intro(kind: NotificationKind, booking: dict, recipient: Recipient) -> str:
    name = booking.get("customer_name") or "there"
    if kind == NotificationKind.CONFIRMATION:
        if recipient == Recipient.CUSTOMER:
            return f"Hi {name}, your payment was received and your consultation is booked."
        return "A new consultation has been booked."
    if kind == NotificationKind.REMINDER:
        lead = REMINDER_LEAD_TEXT.get(booking.get("reminder_label"), "soon")
        return f"This is a reminder that the consultation below is {lead}."
    return "The consultation below has been cancelled."


class NotificationDispatcher:
    def __init__(self, email_service: EmailService, admin_email: str | None = None, sms_enabled: bool = True):
        self._email = email_service
        self._admin_email = settings.ADMIN_NOTIFICATION_EMAIL if admin_email is None else admin_email
        self._sms_enabled = sms_enabled

    def _recipients(self, booking: dict) -> list[tuple[Recipient, str]]:
        recipients = []
        if booking.get("customer_email"):
            recipients.append((Recipient.CUSTOMER, booking["customer_email"]))
        if booking.get("consultant_email"):
            recipients.append((Recipient.CONSULTANT, booking["consultant_email"]))
        admin_email = booking.get("admin_email") or self._admin_email
        if admin_email:
            recipients.append((Recipient.ADMIN, admin_email))
        return recipients

    async def send(self, kind: NotificationKind, booking: dict) -> DispatchResult:
        details: dict[str, Any] = {}
        customer_message_id = None

        for recipient, address in self._recipients(booking):
            try:
                message_id = await self._send_one(kind, booking, recipient, address)
                details[recipient.value] = {"success": True, "email": address, "message_id": message_id}
                if recipient == Recipient.CUSTOMER:
                    customer_message_id = message_id
            except DispatchFailure as e:
                details[recipient.value] = {"success": False, "email": address, "error": e.message}
                logger.error("Failed to send %s email to %s (%s): %s", kind.value, recipient.value, address, e.message)

        if kind == NotificationKind.REMINDER and self._sms_enabled and booking.get("customer_phone"):
            details["sms"] = {
                "success": await send_reminder_sms(
                    booking["customer_phone"], booking, booking.get("reminder_label", "")
                )
            }

        if customer_message_id is None:
            error = details.get(Recipient.CUSTOMER.value, {}).get("error", "no customer email on booking")
            return DispatchResult(success=False, details=details, error=error)
        return DispatchResult(success=True, message_id=customer_message_id, details=details)

    async def _send_one(self, kind: NotificationKind, booking: dict, recipient: Recipient, address: str) -> str:
        html = render_booking_email(
            _subject(kind, booking, recipient),
            _intro(kind, booking, recipient),
            booking,
        )
        message_id = await self._email.send_email(address, _subject(kind, booking, recipient), html)
        if not message_id:
            raise DispatchFailure(f"{kind.value} email to {address} was not accepted")
        return message_id
