"""Per-business, per-year reference counter. Written only by the reference id issuer."""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey
from datetime import datetime
from app.core.database import Base


class YearCounter(Base):
    __tablename__ = "year_counters"

    business_id = Column(String, ForeignKey("businesses.id", ondelete="CASCADE"), primary_key=True)
    year = Column(Integer, nullable=False)
    counter = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
