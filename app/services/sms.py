"""Twilio SMS service.

Used for the customer-facing text that accompanies appointment reminders.
"""

import asyncio
import logging
from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException
from app.core.config import settings

logger = logging.getLogger(__name__)

REMINDER_LEAD_TEXT = {
    "12hr": "in 12 hours",
    "1hr": "in 1 hour",
    "1min": "starting now",
}


def _get_twilio_client() -> Client:
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)


async def send_reminder_sms(customer_phone: str, booking: dict, label: str) -> bool:
    """Text the customer that their appointment is coming up."""
    lead = REMINDER_LEAD_TEXT.get(label, "soon")
    parts = [f"Reminder: your consultation {booking.get('reference_id')} is {lead}."]
    parts.append(f"{booking.get('date')} at {booking.get('time_slot')}")
    if booking.get("meet_link"):
        parts.append(f"Join: {booking['meet_link']}")
    return await _send_sms(customer_phone, "\n".join(parts))


async def _send_sms(to: str, body: str) -> bool:
    """Send an SMS via Twilio. Returns True on success."""
    if not all([settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, settings.TWILIO_PHONE_NUMBER]):
        logger.warning("Twilio credentials not configured; skipping SMS to %s", to)
        return False

    try:
        client = _get_twilio_client()
        message = await asyncio.to_thread(
            client.messages.create,
            body=body,
            from_=settings.TWILIO_PHONE_NUMBER,
            to=to,
        )
        logger.info("SMS sent to %s, SID: %s", to, message.sid)
        return True
    except TwilioRestException as e:
        logger.error("Twilio error sending SMS to %s: %s", to, e)
        return False
    except Exception as e:
        logger.error("Unexpected error sending SMS to %s: %s", to, e)
        return False
