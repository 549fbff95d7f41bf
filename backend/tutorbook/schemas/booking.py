# backend/tutorbook/schemas/booking.py
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field, field_validator

from ..core.enums import RoleName
from ..models.booking import BookingStatus
from .base import Money, StandardizedModel


class FinalizeRequest(StandardizedModel):
    student_id: str
    subject: str = Field(..., min_length=1, max_length=255)
    payment_method: str = Field(..., min_length=1, max_length=100)
    amount: Money

    @field_validator("subject")
    @classmethod
    def _strip_subject(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("Subject is required")
        return v2


class CompleteRequest(StandardizedModel):
    tutor_id: str


class CancelRequest(StandardizedModel):
    acting_user_id: str
    acting_role: RoleName
    reason: Optional[str] = Field(None, max_length=500)


class RateRequest(StandardizedModel):
    student_id: str
    # Range is enforced by the service so the error carries its own code.
    rating: int
    comment: Optional[str] = Field(None, max_length=1000)
    anonymous: bool = False


class BookingResponse(StandardizedModel):
    id: str
    tutor_id: str
    student_id: str
    slot_id: Optional[str] = None
    booking_date: date
    start_time: time
    end_time: time
    subject: str
    payment_method: str
    amount: Money
    payment_reference: Optional[str] = None
    status: BookingStatus
    rating: Optional[int] = None
    feedback_comment: Optional[str] = None
    feedback_anonymous: bool = False
    rated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None
    cancellation_reason: Optional[str] = None


class BookingListResponse(StandardizedModel):
    bookings: List[BookingResponse]
    total: int


class TutorRatingResponse(StandardizedModel):
    tutor_id: str
    average: Optional[float] = None
    count: int = 0
