"""Email notification service using SendGrid."""

import asyncio
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Thin SendGrid wrapper. Disabled (logs only) when no API key is configured."""

    def __init__(
        self,
        api_key: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
    ):
        self.api_key = settings.SENDGRID_API_KEY if api_key is None else api_key
        self.from_email = from_email or settings.SENDGRID_FROM_EMAIL
        self.from_name = from_name or settings.SENDGRID_FROM_NAME

        if not self.api_key:
            logger.warning("SENDGRID_API_KEY not configured. Emails will not be sent.")
            self.client = None
            self.enabled = False
        else:
            self.client = SendGridAPIClient(self.api_key)
            self.enabled = True
            logger.info("Email service initialized successfully")

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        plain_body: Optional[str] = None,
    ) -> Optional[str]:
        """
        Send an email.

        Returns:
            The SendGrid message id on success, None otherwise
        """
        if not self.enabled:
            logger.info("Email service disabled. Would have sent to %s: %s", to, subject)
            return None

        try:
            message = Mail(
                from_email=(self.from_email, self.from_name),
                to_emails=to,
                subject=subject,
                html_content=html_body,
            )
            if plain_body:
                message.plain_text_content = plain_body

            response = await asyncio.to_thread(self.client.send, message)

            if 200 <= response.status_code < 300:
                message_id = response.headers.get("X-Message-Id") or "accepted"
                logger.info("Email sent successfully to %s: %s (%s)", to, subject, message_id)
                return message_id

            logger.error("Failed to send email to %s: %s %s", to, response.status_code, response.body)
            return None

        except Exception as e:
            logger.error("Error sending email to %s: %s", to, e)
            return None


def render_booking_email(heading: str, intro: str, booking: dict) -> str:
    """Shared HTML layout for booking emails."""
    rows = [
        ("Reference", booking.get("reference_id")),
        ("Date", booking.get("date")),
        ("Time", booking.get("time_slot")),
        ("Duration", f"{booking.get('duration_minutes')} minutes"),
        ("Customer", booking.get("customer_name")),
    ]
    if booking.get("consultant_name"):
        rows.append(("Consultant", booking["consultant_name"]))
    if booking.get("meet_link"):
        rows.append(("Meeting link", f'<a href="{booking["meet_link"]}">{booking["meet_link"]}</a>'))

    table = "".join(
        f'<tr><td style="padding: 4px 12px 4px 0; color: #666;">{label}</td><td>{value}</td></tr>'
        for label, value in rows
        if value
    )
    return f"""
        <html>
            <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
                <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                    <h2 style="color: #1f2937;">{heading}</h2>
                    <p>{intro}</p>
                    <table>{table}</table>
                    <p style="color: #666; font-size: 14px; margin-top: 40px;">
                        Best regards,<br>
                        {settings.SENDGRID_FROM_NAME}
                    </p>
                </div>
            </body>
        </html>
        """
