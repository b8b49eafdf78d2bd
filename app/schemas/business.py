"""Pydantic schemas for business booking settings."""

from pydantic import BaseModel, Field


class SlotDuration(BaseModel):
    duration: int = Field(gt=0)  # minutes
    price: float = Field(ge=0)


class DaySchedule(BaseModel):
    enabled: bool = True
    start: str = "10:00"
    end: str = "18:00"


class PublicSettingsOut(BaseModel):
    """Settings exposed to the booking widget."""
    business_id: str
    name: str
    business_address: str | None = None
    timezone: str | None = None
    advance_booking_days: int | None = None
    slot_durations: list[SlotDuration] = []
    weekly_schedule: dict[str, DaySchedule] = {}
    off_days: list[str] = []


class BusinessSettingsOut(PublicSettingsOut):
    reference_prefix: str
    admin_email: str | None = None
    is_active: bool = True

    class Config:
        from_attributes = True


class BusinessSettingsUpdate(BaseModel):
    """Schema for updating business settings."""
    name: str | None = None
    business_address: str | None = None
    timezone: str | None = None
    admin_email: str | None = None
    reference_prefix: str | None = Field(None, min_length=1, max_length=10)
    advance_booking_days: int | None = Field(None, ge=1)
    slot_durations: list[SlotDuration] | None = None
    weekly_schedule: dict[str, DaySchedule] | None = None


class OffDayRequest(BaseModel):
    date: str  # "YYYY-MM-DD"
