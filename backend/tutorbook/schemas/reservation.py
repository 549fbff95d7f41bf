# backend/tutorbook/schemas/reservation.py
from datetime import datetime

from .base import StandardizedModel


class SlotActionRequest(StandardizedModel):
    """Acting student for reserve/release. Identity comes from the external auth system."""

    student_id: str


class ReservationResponse(StandardizedModel):
    reservation_id: str
    slot_id: str
    student_id: str
    expires_at: datetime


class ReleaseResponse(StandardizedModel):
    released: bool
