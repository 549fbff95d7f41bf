# backend/tutorbook/services/booking_lifecycle_service.py
"""
Booking lifecycle for tutorbook.

Post-confirmation transitions and rating:

    CONFIRMED -> COMPLETED   (owning tutor; slot stays booked for history)
    CONFIRMED -> CANCELLED   (owning tutor or admin; slot goes back to free)

COMPLETED and CANCELLED are terminal. A rating can be attached once, only to
a COMPLETED booking, by the booking's student.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import NotificationEvent, RoleName
from ..core.exceptions import (
    AlreadyRatedException,
    ForbiddenException,
    InternalInconsistencyException,
    InvalidStateException,
    NotFoundException,
    OutOfRangeException,
)
from ..core.timezone_utils import Clock
from ..integrations.notifications import NotificationGateway, notify_safely
from ..models.booking import Booking, BookingStatus
from ..models.slot import SlotState
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.slot_repository import SlotRepository
from .base import BaseService
from .tutor_rating_service import TutorRatingService

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class BookingLifecycleService(BaseService):
    """Service for completing, cancelling and rating bookings."""

    def __init__(
        self,
        db: Session,
        notification_gateway: Optional[NotificationGateway] = None,
        rating_service: Optional[TutorRatingService] = None,
        booking_repository: Optional[BookingRepository] = None,
        slot_repository: Optional[SlotRepository] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock=clock)
        self.notification_gateway = notification_gateway
        self.repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.slot_repository = slot_repository or RepositoryFactory.create_slot_repository(db)
        self.rating_service = rating_service or TutorRatingService(db, clock=clock)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found")
        return booking

    def list_bookings(
        self,
        student_id: Optional[str] = None,
        tutor_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        return self.repository.list_bookings(student_id=student_id, tutor_id=tutor_id, status=status)

    @BaseService.measure_operation("mark_completed")
    def mark_completed(self, booking_id: str, acting_tutor_id: str) -> Booking:
        """
        Mark a confirmed booking as completed. The slot stays booked.

        Raises:
            NotFoundException: booking does not exist
            ForbiddenException: acting tutor does not own the booking
            InvalidStateException: booking is not CONFIRMED
        """
        booking = self.get_booking(booking_id)
        if booking.tutor_id != acting_tutor_id:
            raise ForbiddenException("Only the booking's tutor can mark it completed")
        self._require_status(booking, BookingStatus.CONFIRMED)

        with self.transaction():
            if not self.repository.transition_status(
                booking_id,
                BookingStatus.CONFIRMED,
                BookingStatus.COMPLETED,
                completed_at=self.now(),
            ):
                raise self._status_conflict(booking_id)

        self._after_transition(booking, NotificationEvent.BOOKING_COMPLETED)
        return booking

    @BaseService.measure_operation("cancel_booking")
    def cancel(
        self,
        booking_id: str,
        acting_user_id: str,
        acting_role: str,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Cancel a confirmed booking and return its slot to free.

        The slot keeps its identity: the same row goes booked -> free and can
        be reserved again.

        Raises:
            NotFoundException: booking does not exist
            ForbiddenException: actor is neither the owning tutor nor an admin
            InvalidStateException: booking is COMPLETED or already CANCELLED
        """
        booking = self.get_booking(booking_id)
        if not self._can_cancel(booking, acting_user_id, acting_role):
            raise ForbiddenException("Only the booking's tutor or an admin can cancel it")
        self._require_status(booking, BookingStatus.CONFIRMED)

        now = self.now()
        with self.transaction():
            if not self.repository.transition_status(
                booking_id,
                BookingStatus.CONFIRMED,
                BookingStatus.CANCELLED,
                cancelled_at=now,
                cancelled_by_id=acting_user_id,
                cancellation_reason=reason,
            ):
                raise self._status_conflict(booking_id)

            if not booking.slot_id or not self.slot_repository.transition(
                booking.slot_id, SlotState.BOOKED, SlotState.FREE, tutor_id=booking.tutor_id, now=now
            ):
                self.logger.error(
                    "Confirmed booking's slot was not booked",
                    extra={"booking_id": booking_id, "slot_id": booking.slot_id},
                )
                raise InternalInconsistencyException(
                    "Booking's slot was not in the booked state",
                    details={"booking_id": booking_id, "slot_id": booking.slot_id},
                )

        self._after_transition(booking, NotificationEvent.BOOKING_CANCELLED)
        return booking

    @BaseService.measure_operation("rate_booking")
    def rate(
        self,
        booking_id: str,
        acting_student_id: str,
        rating: int,
        comment: Optional[str] = None,
        anonymous: bool = False,
    ) -> Booking:
        """
        Attach the student's rating to a completed booking.

        Two racing calls on one booking produce one success and one
        AlreadyRatedException.

        Raises:
            OutOfRangeException: rating is not an integer in 1..5
            NotFoundException: booking does not exist
            ForbiddenException: actor is not the booking's student
            InvalidStateException: booking is not COMPLETED
            AlreadyRatedException: booking already has a rating
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not (
            MIN_RATING <= rating <= MAX_RATING
        ):
            raise OutOfRangeException(rating, MIN_RATING, MAX_RATING)

        booking = self.get_booking(booking_id)
        if booking.student_id != acting_student_id:
            raise ForbiddenException("Only the booking's student can rate it")
        self._require_status(booking, BookingStatus.COMPLETED)
        if booking.rating is not None:
            raise AlreadyRatedException(booking_id)

        with self.transaction():
            if not self.repository.set_rating_if_unrated(
                booking_id, rating, comment, bool(anonymous), self.now()
            ):
                self.db.refresh(booking)
                if booking.rating is not None:
                    raise AlreadyRatedException(booking_id)
                raise InvalidStateException(
                    "Booking can no longer be rated", current_state=booking.status
                )

        self.log_operation("rate_booking", booking_id=booking_id, rating=rating)

        try:
            self.rating_service.recompute(booking.tutor_id, rating)
        except Exception as e:
            self.logger.warning(
                f"Rating aggregate update failed for tutor {booking.tutor_id}: {str(e)}",
                extra={"booking_id": booking_id},
            )

        payload: Dict[str, Any] = {
            "booking_id": booking.id,
            "tutor_id": booking.tutor_id,
            "rating": rating,
            "comment": comment,
            "anonymous": bool(anonymous),
        }
        if not anonymous:
            payload["student_id"] = booking.student_id
        notify_safely(
            self.notification_gateway,
            NotificationEvent.BOOKING_RATED.value,
            [booking.tutor_id],
            payload,
        )
        return booking

    @staticmethod
    def _can_cancel(booking: Booking, acting_user_id: str, acting_role: str) -> bool:
        try:
            role = RoleName(str(acting_role).lower())
        except ValueError:
            return False
        if role == RoleName.ADMIN:
            return True
        return role == RoleName.TUTOR and booking.tutor_id == acting_user_id

    @staticmethod
    def _require_status(booking: Booking, expected: BookingStatus) -> None:
        if booking.status != expected.value:
            raise InvalidStateException(
                f"Booking must be {expected.value}, is {booking.status}",
                current_state=booking.status,
            )

    def _status_conflict(self, booking_id: str) -> InvalidStateException:
        current = self.repository.get_by_id(booking_id)
        if current is not None:
            self.db.refresh(current)
        return InvalidStateException(
            "Booking changed state concurrently",
            current_state=current.status if current is not None else None,
        )

    def _after_transition(self, booking: Booking, event: NotificationEvent) -> None:
        prometheus_metrics.record_booking_transition(booking.status)
        self.log_operation(event.value, booking_id=booking.id, status=booking.status)
        notify_safely(
            self.notification_gateway,
            event.value,
            booking.participants(),
            booking.to_dict(),
        )
