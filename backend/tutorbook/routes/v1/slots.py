# backend/tutorbook/routes/v1/slots.py
"""
Tutor slot routes - API v1

Versioned endpoints under /api/v1/tutors. Business logic lives in
SlotService, ReservationService and BookingCheckoutService; domain errors
are turned into HTTP responses by the app-level handler.

Endpoints:
    GET    /{tutor_id}/slots                      → List slots (optional ?state=)
    POST   /{tutor_id}/slots                      → Create a slot
    PUT    /{tutor_id}/slots/{slot_id}            → Move a free slot
    DELETE /{tutor_id}/slots/{slot_id}            → Delete a free slot
    POST   /{tutor_id}/slots/{slot_id}/reserve    → Hold a slot for a student
    POST   /{tutor_id}/slots/{slot_id}/release    → Give up a hold
    POST   /{tutor_id}/slots/{slot_id}/finalize   → Pay and book a held slot
    GET    /{tutor_id}/rating                     → Tutor rating summary
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ...api.dependencies.services import (
    get_booking_checkout_service,
    get_reservation_service,
    get_slot_service,
    get_tutor_rating_service,
)
from ...models.slot import SlotState
from ...schemas.booking import BookingResponse, FinalizeRequest, TutorRatingResponse
from ...schemas.reservation import ReleaseResponse, ReservationResponse, SlotActionRequest
from ...schemas.slot import SlotListResponse, SlotResponse, SlotWriteRequest
from ...services.booking_checkout_service import BookingCheckoutService
from ...services.reservation_service import ReservationService
from ...services.slot_service import SlotService
from ...services.tutor_rating_service import TutorRatingService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["slots-v1"])


@router.get("/{tutor_id}/slots", response_model=SlotListResponse)
def list_slots(
    tutor_id: str,
    state: Optional[SlotState] = Query(None),
    slot_service: SlotService = Depends(get_slot_service),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> SlotListResponse:
    # Lapsed holds show as free without waiting for the periodic sweep.
    reservation_service.sweep_expired(tutor_id=tutor_id)
    slots = [SlotResponse.model_validate(slot) for slot in slot_service.get_by_tutor(tutor_id, state)]
    return SlotListResponse(slots=slots, total=len(slots))


@router.post("/{tutor_id}/slots", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    tutor_id: str,
    payload: SlotWriteRequest,
    slot_service: SlotService = Depends(get_slot_service),
) -> SlotResponse:
    slot = slot_service.create_slot(tutor_id, payload.date, payload.start_time, payload.end_time)
    return SlotResponse.model_validate(slot)


@router.put("/{tutor_id}/slots/{slot_id}", response_model=SlotResponse)
def update_slot(
    tutor_id: str,
    slot_id: str,
    payload: SlotWriteRequest,
    slot_service: SlotService = Depends(get_slot_service),
) -> SlotResponse:
    slot = slot_service.update_slot(
        tutor_id, slot_id, payload.date, payload.start_time, payload.end_time
    )
    return SlotResponse.model_validate(slot)


@router.delete("/{tutor_id}/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    tutor_id: str,
    slot_id: str,
    slot_service: SlotService = Depends(get_slot_service),
) -> Response:
    slot_service.delete_slot(tutor_id, slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{tutor_id}/slots/{slot_id}/reserve",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
def reserve_slot(
    tutor_id: str,
    slot_id: str,
    payload: SlotActionRequest,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    reservation = reservation_service.reserve(tutor_id, slot_id, payload.student_id)
    return ReservationResponse(
        reservation_id=reservation.id,
        slot_id=reservation.slot_id,
        student_id=reservation.student_id,
        expires_at=reservation.expires_at,
    )


@router.post("/{tutor_id}/slots/{slot_id}/release", response_model=ReleaseResponse)
def release_slot(
    tutor_id: str,
    slot_id: str,
    payload: SlotActionRequest,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReleaseResponse:
    released = reservation_service.release(tutor_id, slot_id, payload.student_id)
    return ReleaseResponse(released=released)


@router.post(
    "/{tutor_id}/slots/{slot_id}/finalize",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def finalize_slot(
    tutor_id: str,
    slot_id: str,
    payload: FinalizeRequest,
    checkout_service: BookingCheckoutService = Depends(get_booking_checkout_service),
) -> BookingResponse:
    booking = checkout_service.finalize(
        tutor_id,
        slot_id,
        payload.student_id,
        payload.subject,
        payload.payment_method,
        payload.amount,
    )
    return BookingResponse.model_validate(booking)


@router.get("/{tutor_id}/rating", response_model=TutorRatingResponse)
def get_tutor_rating(
    tutor_id: str,
    rating_service: TutorRatingService = Depends(get_tutor_rating_service),
) -> TutorRatingResponse:
    return TutorRatingResponse(**rating_service.get_summary(tutor_id))
