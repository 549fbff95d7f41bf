# backend/tutorbook/models/reservation.py
"""
Time-bounded hold on a slot.

At most one reservation row may exist per slot (unique ``slot_id``). A row
whose ``expires_at`` lies in the past is a lapsed hold: readers must treat it
as absent, and the sweep deletes it and frees the slot.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base


class SlotReservation(Base):
    """A student's exclusive, expiring claim on a free slot, pending payment."""

    __tablename__ = "slot_reservations"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), nullable=False)
    slot_id = Column(
        String(26),
        ForeignKey("tutor_slots.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    student_id = Column(String(26), nullable=False)
    held_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    slot = relationship("TutorSlot", back_populates="reservation")

    __table_args__ = (Index("ix_slot_reservations_expires_at", "expires_at"),)

    def __repr__(self) -> str:
        return (
            f"<SlotReservation {self.id}: slot={self.slot_id}, "
            f"student={self.student_id}, expires_at={self.expires_at}>"
        )
