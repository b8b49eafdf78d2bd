"""Pydantic schemas for the public booking API."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from app.models.booking import BookingStatus, PaymentStatus


class CreateOrderRequest(BaseModel):
    """Customer checkout request. Price is resolved from the business's slot durations."""
    model_config = ConfigDict(populate_by_name=True)

    business_id: Optional[str] = Field(None, alias="businessId")
    customer_name: str = Field(min_length=1)
    customer_email: EmailStr
    customer_phone: str = Field(min_length=1)
    date: str  # "YYYY-MM-DD"
    time_slot: str  # "HH:MM"
    duration: int
    consultant_id: Optional[str] = None
    consult_note: Optional[str] = None


class CreateOrderResponse(BaseModel):
    reference_id: str
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    amount: float
    currency: str


class VerifyPaymentRequest(BaseModel):
    reference_id: str
    payment_intent_id: str


class RescheduleRequest(BaseModel):
    date: Optional[str] = None
    time_slot: Optional[str] = None
    duration_minutes: Optional[int] = None


class BookingOut(BaseModel):
    """Booking as returned to customers and staff."""
    reference_id: str
    business_id: str
    customer_name: str
    customer_email: str
    customer_phone: str
    consult_note: Optional[str] = None
    assigned_consultant: str = ""
    consultant_name: Optional[str] = None
    date: date
    time_slot: str
    duration_minutes: int
    amount: Decimal
    status: BookingStatus
    payment_status: PaymentStatus
    meet_link: Optional[str] = None
    confirmation_sent: bool = False
    reminder_12hr_sent: bool = False
    reminder_1hr_sent: bool = False
    reminder_1min_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookedSlot(BaseModel):
    time_slot: str
    duration_minutes: int
    assigned_consultant: str = ""


class BlockedWindow(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    reason: Optional[str] = None


class SlotsResponse(BaseModel):
    """Day view used by the booking widget to grey out taken times."""
    date: date
    is_off_day: bool
    is_closed: bool
    working_hours: Optional[dict] = None  # {"start": "10:00", "end": "18:00"}
    booked_slots: list[BookedSlot] = []
    blocked_windows: list[BlockedWindow] = []
