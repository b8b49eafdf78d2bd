"""Consultant model. Consultants are assigned to bookings and declare blackout windows."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.types import JSON
import uuid
from datetime import datetime
import enum
from app.core.database import Base


class ConsultantStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Consultant(Base):
    __tablename__ = "consultants"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    business_id = Column(String, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    specialization = Column(String, nullable=True)
    experience = Column(String, nullable=True)
    status = Column(SQLEnum(ConsultantStatus), default=ConsultantStatus.ACTIVE, nullable=False, index=True)

    # [{"date": "2026-03-10", "start_time": "10:00", "end_time": "11:00", "reason": "..."}]
    unavailable_slots = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
