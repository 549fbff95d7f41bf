"""
SQLAlchemy models for the tutorbook reservation core.

Importing this package registers every mapper on ``Base.metadata``.
"""

from .booking import Booking, BookingStatus
from .notification import Notification, NotificationType
from .reservation import SlotReservation
from .slot import SlotState, TutorSlot
from .tutor_rating import TutorRatingSummary

__all__ = [
    "Booking",
    "BookingStatus",
    "Notification",
    "NotificationType",
    "SlotReservation",
    "SlotState",
    "TutorRatingSummary",
    "TutorSlot",
]
