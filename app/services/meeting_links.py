"""Google Calendar / Meet integration.

Creates, moves and cancels the calendar event carrying a booking's Meet link.
Every call is best-effort: failures come back as an unsuccessful
``MeetingLinkResult`` and never affect the booking itself.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import DispatchFailure
from app.utils.time_window import safe_timezone, start_instant

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"


@dataclass
class MeetingLinkResult:
    success: bool
    link: Optional[str] = None
    external_event_id: Optional[str] = None
    error: Optional[str] = None


class GoogleMeetClient:
    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        calendar_id: str | None = None,
        timeout: float = 10.0,
    ):
        self.client_id = settings.GOOGLE_CLIENT_ID if client_id is None else client_id
        self.client_secret = settings.GOOGLE_CLIENT_SECRET if client_secret is None else client_secret
        self.refresh_token = settings.GOOGLE_REFRESH_TOKEN if refresh_token is None else refresh_token
        self.calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self.timeout = timeout
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        # Refresh 5 minutes before expiry
        if self._access_token and time.monotonic() < self._token_expires_at - 300:
            return self._access_token

        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code != 200:
            raise DispatchFailure(f"Google token refresh failed: {response.status_code} {response.text}")

        tokens = response.json()
        access_token = tokens.get("access_token")
        if not access_token:
            raise DispatchFailure("No access token in Google refresh response")

        self._access_token = access_token
        self._token_expires_at = time.monotonic() + tokens.get("expires_in", 3600)
        return access_token

    def _event_times(self, booking: dict) -> dict:
        tz = safe_timezone(booking.get("timezone"), settings.BUSINESS_TIMEZONE)
        start = start_instant(booking["date"], booking["time_slot"], tz)
        end = start + timedelta(minutes=booking.get("duration_minutes") or 30)
        return {
            "start": {"dateTime": start.isoformat(), "timeZone": tz.key},
            "end": {"dateTime": end.isoformat(), "timeZone": tz.key},
        }

    async def _request(self, method: str, path: str, expected: tuple[int, ...], **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            token = await self._get_access_token(client)
            response = await client.request(
                method,
                f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}{path}",
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        if response.status_code not in expected:
            raise DispatchFailure(f"Google Calendar {method} {path} failed: {response.status_code} {response.text}")
        return response

    async def create_link(self, booking: dict) -> MeetingLinkResult:
        if not self.enabled:
            logger.warning("Google Calendar not configured; skipping Meet link for %s", booking.get("reference_id"))
            return MeetingLinkResult(success=False, error="Google Calendar not configured")

        description = [
            "Consultation Booking Details",
            f"Reference: {booking.get('reference_id')}",
            f"Customer: {booking.get('customer_name')}",
            f"Email: {booking.get('customer_email')}",
            f"Duration: {booking.get('duration_minutes')} minutes",
        ]
        if booking.get("consult_note"):
            description.append(f"Notes: {booking['consult_note']}")

        attendees = [{"email": booking["customer_email"], "displayName": booking.get("customer_name")}]
        if booking.get("consultant_email"):
            attendees.append({"email": booking["consultant_email"], "displayName": booking.get("consultant_name")})

        event = {
            "summary": f"Consultation with {booking.get('customer_name')} ({booking.get('reference_id')})",
            "description": "\n".join(description),
            **self._event_times(booking),
            "attendees": attendees,
            "conferenceData": {
                "createRequest": {
                    "requestId": f"{booking.get('reference_id')}-{uuid.uuid4().hex[:8]}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                },
            },
        }

        try:
            response = await self._request(
                "POST", "/events", (200, 201),
                params={"conferenceDataVersion": 1, "sendUpdates": "all"},
                json=event,
            )
            data = response.json()
        except (DispatchFailure, httpx.HTTPError) as e:
            logger.error("Google Meet error for %s: %s", booking.get("reference_id"), e)
            return MeetingLinkResult(success=False, error=str(e))

        logger.info("Google Calendar event created: %s", data.get("id"))
        return MeetingLinkResult(success=True, link=data.get("hangoutLink"), external_event_id=data.get("id"))

    async def update_link(self, external_event_id: str, booking: dict) -> MeetingLinkResult:
        if not self.enabled:
            return MeetingLinkResult(success=False, error="Google Calendar not configured")
        try:
            await self._request(
                "PATCH", f"/events/{external_event_id}", (200,),
                params={"sendUpdates": "all"},
                json=self._event_times(booking),
            )
        except (DispatchFailure, httpx.HTTPError) as e:
            logger.error("Failed to update Meet event %s: %s", external_event_id, e)
            return MeetingLinkResult(success=False, external_event_id=external_event_id, error=str(e))
        logger.info("Google Calendar event updated: %s", external_event_id)
        return MeetingLinkResult(success=True, external_event_id=external_event_id)

    async def cancel_link(self, external_event_id: str) -> MeetingLinkResult:
        if not self.enabled:
            return MeetingLinkResult(success=False, error="Google Calendar not configured")
        try:
            await self._request(
                "DELETE", f"/events/{external_event_id}", (200, 204, 410),
                params={"sendUpdates": "all"},
            )
        except (DispatchFailure, httpx.HTTPError) as e:
            logger.error("Failed to cancel Meet event %s: %s", external_event_id, e)
            return MeetingLinkResult(success=False, external_event_id=external_event_id, error=str(e))
        logger.info("Google Calendar event deleted: %s", external_event_id)
        return MeetingLinkResult(success=True, external_event_id=external_event_id)
