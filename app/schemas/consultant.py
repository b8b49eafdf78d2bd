"""Pydantic schemas for consultants."""

from datetime import datetime
from pydantic import BaseModel, EmailStr
from app.models.consultant import ConsultantStatus


class UnavailableSlot(BaseModel):
    """Blackout window declared by a consultant."""
    date: str  # "YYYY-MM-DD"
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM"
    reason: str | None = None


class ConsultantCreate(BaseModel):
    name: str
    email: EmailStr
    phone: str | None = None
    specialization: str | None = None
    experience: str | None = None
    status: ConsultantStatus = ConsultantStatus.ACTIVE
    unavailable_slots: list[UnavailableSlot] = []


class ConsultantUpdate(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    specialization: str | None = None
    experience: str | None = None
    status: ConsultantStatus | None = None
    unavailable_slots: list[UnavailableSlot] | None = None


class ConsultantPublic(BaseModel):
    """What customers see when picking a consultant."""
    id: str
    name: str
    specialization: str | None = None
    experience: str | None = None

    class Config:
        from_attributes = True


class ConsultantOut(ConsultantPublic):
    business_id: str
    email: str
    phone: str | None = None
    status: ConsultantStatus
    unavailable_slots: list[dict] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None
