# backend/tutorbook/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingLifecycleService.

Endpoints:
    GET  /                       → List bookings (filters: student_id, tutor_id, status)
    GET  /{booking_id}           → Get one booking
    POST /{booking_id}/complete  → Tutor marks the session completed
    POST /{booking_id}/cancel    → Tutor or admin cancels, slot is freed
    POST /{booking_id}/rating    → Student rates a completed session
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...api.dependencies.services import get_booking_lifecycle_service
from ...models.booking import BookingStatus
from ...schemas.booking import (
    BookingListResponse,
    BookingResponse,
    CancelRequest,
    CompleteRequest,
    RateRequest,
)
from ...services.booking_lifecycle_service import BookingLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings-v1"])


@router.get("", response_model=BookingListResponse)
def list_bookings(
    student_id: Optional[str] = Query(None),
    tutor_id: Optional[str] = Query(None),
    status: Optional[BookingStatus] = Query(None),
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingListResponse:
    bookings = service.list_bookings(student_id=student_id, tutor_id=tutor_id, status=status)
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=len(bookings),
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    return BookingResponse.model_validate(service.get_booking(booking_id))


@router.post("/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(
    booking_id: str,
    payload: CompleteRequest,
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    booking = service.mark_completed(booking_id, payload.tutor_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    payload: CancelRequest,
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    booking = service.cancel(
        booking_id,
        payload.acting_user_id,
        payload.acting_role,
        reason=payload.reason,
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/rating", response_model=BookingResponse)
def rate_booking(
    booking_id: str,
    payload: RateRequest,
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingResponse:
    booking = service.rate(
        booking_id,
        payload.student_id,
        payload.rating,
        comment=payload.comment,
        anonymous=payload.anonymous,
    )
    return BookingResponse.model_validate(booking)
