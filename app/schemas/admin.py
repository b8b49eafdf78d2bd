"""Pydantic schemas for admin endpoints."""

from typing import Optional
from pydantic import BaseModel, Field
from app.models.booking import BookingStatus


class StatusUpdate(BaseModel):
    status: BookingStatus


class AssignRequest(BaseModel):
    """Omit ``consultant_id`` to auto-assign the first available consultant."""
    consultant_id: Optional[str] = None


class DashboardStats(BaseModel):
    """Admin dashboard counters."""
    total_bookings: int
    by_status: dict[str, int]
    paid_bookings: int
    revenue: float = Field(description="Sum of amounts over paid, non-cancelled bookings")
    today_bookings: int
    active_consultants: int


class CounterOut(BaseModel):
    year: int
    counter: int
    next_reference_id: Optional[str] = Field(None, description="Display only; not reserved")


class ReminderRunResult(BaseModel):
    sent: dict[str, int]


class MessageResponse(BaseModel):
    message: str
