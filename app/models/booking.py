"""Booking model and the booking status state machine."""

from sqlalchemy import Column, String, DateTime, Integer, Date, Boolean, Numeric, ForeignKey, Text, Enum as SQLEnum
from datetime import datetime
import enum
from app.core.database import Base


class BookingStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# Paid bookings in these states occupy their time window.
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

STATUS_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.DRAFT: frozenset({BookingStatus.PENDING, BookingStatus.CANCELLED}),
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus, manual: bool = True) -> bool:
    """Return True if ``current -> target`` is allowed.

    Manual (staff) changes never move a draft: a draft only advances through
    payment confirmation or cancellation, both of which pass ``manual=False``.
    """
    if manual and current == BookingStatus.DRAFT:
        return False
    return target in STATUS_TRANSITIONS[current]


# Labels of the reminder offsets; each one owns a flag/timestamp/message-id column trio.
REMINDER_LABELS = ("12hr", "1hr", "1min")


class Booking(Base):
    __tablename__ = "bookings"

    # NAB_2026_0042 - also the human-facing reference
    reference_id = Column(String, primary_key=True)
    business_id = Column(String, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)

    # Customer info (opaque to the booking core)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    consult_note = Column(Text, nullable=True)

    assigned_consultant = Column(String, nullable=False, default="", index=True)  # "" = unassigned
    # Contact details cached at assignment / payment time
    consultant_name = Column(String, nullable=True)
    consultant_email = Column(String, nullable=True)

    date = Column(Date, nullable=False, index=True)
    time_slot = Column(String(5), nullable=False)  # "HH:MM"
    duration_minutes = Column(Integer, nullable=False)

    amount = Column(Numeric(10, 2), nullable=False, default=0)
    payment_order_id = Column(String, nullable=True, index=True)
    payment_id = Column(String, nullable=True)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    status = Column(SQLEnum(BookingStatus), default=BookingStatus.DRAFT, nullable=False, index=True)

    meet_link = Column(String, nullable=True)
    meet_event_id = Column(String, nullable=True)

    confirmation_sent = Column(Boolean, default=False, nullable=False)
    confirmation_sent_at = Column(DateTime, nullable=True)
    confirmation_message_id = Column(String, nullable=True)

    reminder_12hr_sent = Column(Boolean, default=False, nullable=False)
    reminder_12hr_sent_at = Column(DateTime, nullable=True)
    reminder_12hr_message_id = Column(String, nullable=True)
    reminder_1hr_sent = Column(Boolean, default=False, nullable=False)
    reminder_1hr_sent_at = Column(DateTime, nullable=True)
    reminder_1hr_message_id = Column(String, nullable=True)
    reminder_1min_sent = Column(Boolean, default=False, nullable=False)
    reminder_1min_sent_at = Column(DateTime, nullable=True)
    reminder_1min_message_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    cancelled_at = Column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_payload(self) -> dict:
        """Plain dict handed to the notification and meeting-link adapters."""
        return {
            "reference_id": self.reference_id,
            "business_id": self.business_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "consult_note": self.consult_note or "",
            "assigned_consultant": self.assigned_consultant or "",
            "consultant_name": self.consultant_name,
            "consultant_email": self.consultant_email,
            "date": self.date.isoformat(),
            "time_slot": self.time_slot,
            "duration_minutes": self.duration_minutes,
            "amount": float(self.amount or 0),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "meet_link": self.meet_link,
        }
