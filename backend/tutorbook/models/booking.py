# backend/tutorbook/models/booking.py
"""
Booking model for the tutorbook platform.

A booking is created when a live hold is paid for. It snapshots the slot's
date and times at finalization so the record stays meaningful after the slot
is freed by a cancellation.
"""

from enum import Enum
import logging
from typing import Any, Dict, cast

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    CONFIRMED = "CONFIRMED"  # Default - created by a paid hold
    COMPLETED = "COMPLETED"  # Lesson completed, terminal
    CANCELLED = "CANCELLED"  # Cancelled by tutor or admin, terminal


class Booking(Base):
    """Durable record of a paid tutoring session."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    tutor_id = Column(String(26), nullable=False, index=True)
    student_id = Column(String(26), nullable=False, index=True)
    slot_id = Column(
        String(26),
        ForeignKey("tutor_slots.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Slot snapshot
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    subject = Column(String(255), nullable=False)
    payment_method = Column(String(100), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_reference = Column(String(255), nullable=True, comment="Gateway charge id")

    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)

    # Feedback
    rating = Column(Integer, nullable=True)
    feedback_comment = Column(Text, nullable=True)
    feedback_anonymous = Column(Boolean, nullable=False, default=False)
    rated_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    confirmed_at = Column(DateTime(timezone=True), nullable=True, default=utc_now)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Cancellation tracking
    cancelled_by_id = Column(String(26), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('CONFIRMED', 'COMPLETED', 'CANCELLED')",
            name="ck_bookings_status",
        ),
        CheckConstraint("amount > 0", name="check_amount_positive"),
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="check_rating_range",
        ),
        Index("ix_bookings_student_date", "student_id", "booking_date"),
        Index("ix_bookings_tutor_date", "tutor_id", "booking_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: student={self.student_id}, "
            f"tutor={self.tutor_id}, date={self.booking_date}, "
            f"time={self.start_time}-{self.end_time}, status={self.status}>"
        )

    def participants(self) -> list[str]:
        return [cast(str, self.tutor_id), cast(str, self.student_id)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tutor_id": self.tutor_id,
            "student_id": self.student_id,
            "slot_id": self.slot_id,
            "booking_date": self.booking_date.isoformat() if self.booking_date else None,
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "subject": self.subject,
            "status": self.status,
            "rating": self.rating,
        }
