"""
In-app notification inbox entries.

Rows are written by the in-app notification gateway after a booking event has
already been committed.
"""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, String, Text
from sqlalchemy.types import JSON
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base


class NotificationType(str, Enum):
    BOOKING = "booking"
    FEEDBACK = "feedback"


class Notification(Base):
    """In-app notification inbox entries."""

    __tablename__ = "notifications"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=False)
    type = Column(String(20), nullable=False)
    event_type = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("type IN ('booking', 'feedback')", name="ck_notifications_type"),
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )
