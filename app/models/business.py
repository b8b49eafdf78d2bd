"""Business configuration model.

Each business (a consultancy) keeps its booking settings here: reference
prefix, timezone, bookable durations with prices, weekly schedule and off days.
"""

from sqlalchemy import Column, String, DateTime, Boolean, Integer
from sqlalchemy.types import JSON
from datetime import datetime
from app.core.database import Base


class Business(Base):
    __tablename__ = "businesses"

    id = Column(String, primary_key=True)  # slug, e.g. "nab-consultancy"
    name = Column(String, nullable=False)
    reference_prefix = Column(String, nullable=False, default="NAB")
    timezone = Column(String, nullable=True, default="Asia/Kolkata")
    admin_email = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Public booking settings (JSON for SQLite compatibility)
    business_address = Column(String, nullable=True)
    advance_booking_days = Column(Integer, default=15)
    slot_durations = Column(JSON, nullable=True)  # [{"duration": 30, "price": 500}, ...]
    weekly_schedule = Column(JSON, nullable=True)  # {"monday": {"enabled": true, "start": "10:00", "end": "18:00"}, ...}
    off_days = Column(JSON, nullable=True)  # ["2026-01-26", ...]

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
