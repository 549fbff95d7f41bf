# backend/tutorbook/core/enums.py
"""
Core enums for the tutorbook platform.
"""

from enum import Enum


class RoleName(str, Enum):
    """
    Roles an acting user may present.

    Identity and role issuance live in the external auth system; the core only
    checks the role passed along with the acting user id.
    """

    ADMIN = "admin"
    TUTOR = "tutor"
    STUDENT = "student"


class NotificationEvent(str, Enum):
    """Booking lifecycle events published to the notification gateway."""

    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_COMPLETED = "booking.completed"
    BOOKING_CANCELLED = "booking.cancelled"
    BOOKING_RATED = "booking.rated"
