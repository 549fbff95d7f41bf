# backend/tutorbook/models/slot.py
"""
Tutor availability slot.

A slot is a tutor-defined block of time on a given date. Its ``state`` column
is the one piece of mutable state that reservations, bookings and the hold
sweep contend over, and it is only ever written through
``SlotRepository.transition``.
"""

from enum import Enum
from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base


class SlotState(str, Enum):
    """Slot states, from the reservation controller's point of view."""

    FREE = "free"
    HELD = "held"
    BOOKED = "booked"


class TutorSlot(Base):
    """A bookable block of a tutor's time."""

    __tablename__ = "tutor_slots"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), nullable=False)
    slot_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    state = Column(String(10), nullable=False, default=SlotState.FREE.value)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    reservation = relationship(
        "SlotReservation",
        back_populates="slot",
        uselist=False,
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("tutor_id", "slot_date", "start_time", name="uq_tutor_slots_tutor_date_start"),
        CheckConstraint("start_time < end_time", name="ck_tutor_slots_time_order"),
        CheckConstraint("state IN ('free', 'held', 'booked')", name="ck_tutor_slots_state"),
        Index("ix_tutor_slots_tutor_date", "tutor_id", "slot_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<TutorSlot {self.id}: tutor={self.tutor_id}, date={self.slot_date}, "
            f"time={self.start_time}-{self.end_time}, state={self.state}>"
        )

    @property
    def is_free(self) -> bool:
        return self.state == SlotState.FREE.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tutor_id": self.tutor_id,
            "date": self.slot_date.isoformat() if self.slot_date else None,
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "state": self.state,
        }
