# backend/tutorbook/models/tutor_rating.py
"""Per-tutor rating aggregate, updated incrementally as bookings are rated."""

from typing import Optional

from sqlalchemy import Column, DateTime, Integer, String

from ..core.timezone_utils import utc_now
from ..database import Base


class TutorRatingSummary(Base):
    __tablename__ = "tutor_rating_summaries"

    tutor_id = Column(String(26), primary_key=True)
    rating_sum = Column(Integer, nullable=False, default=0)
    rating_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def average(self) -> Optional[float]:
        if not self.rating_count:
            return None
        return round(self.rating_sum / self.rating_count, 2)

    def __repr__(self) -> str:
        return f"<TutorRatingSummary {self.tutor_id}: {self.rating_sum}/{self.rating_count}>"
