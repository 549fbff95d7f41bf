# backend/tutorbook/repositories/booking_repository.py
"""
Booking Repository for the tutorbook core.

Status and rating changes are conditional UPDATEs so that two racing
lifecycle calls on one booking produce exactly one winner.
"""

from datetime import datetime
import logging
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def list_bookings(
        self,
        student_id: Optional[str] = None,
        tutor_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Booking]:
        """Bookings matching the given filters, most recent session first."""
        try:
            query = self.db.query(Booking)
            if student_id:
                query = query.filter(Booking.student_id == student_id)
            if tutor_id:
                query = query.filter(Booking.tutor_id == tutor_id)
            if status:
                query = query.filter(Booking.status == BookingStatus(status).value)
            query = query.order_by(Booking.booking_date.desc(), Booking.start_time.desc())
            if limit:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bookings: {str(e)}")
            raise RepositoryException(f"Failed to list bookings: {str(e)}") from e

    def transition_status(
        self,
        booking_id: str,
        from_status: BookingStatus,
        to_status: BookingStatus,
        **values: Any,
    ) -> bool:
        """
        Move a booking from ``from_status`` to ``to_status`` in one UPDATE.

        Extra column values (timestamps, cancellation fields) ride along in
        the same statement.
        """
        changes = {"status": BookingStatus(to_status).value, **values}
        try:
            updated = (
                self.db.query(Booking)
                .filter(
                    Booking.id == booking_id,
                    Booking.status == BookingStatus(from_status).value,
                )
                .update(changes, synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating booking {booking_id} status: {str(e)}")
            raise RepositoryException(f"Failed to update booking status: {str(e)}") from e

        if updated == 1:
            self._sync_identity(booking_id)
        return updated == 1

    def set_rating_if_unrated(
        self,
        booking_id: str,
        rating: int,
        comment: Optional[str],
        anonymous: bool,
        rated_at: datetime,
    ) -> bool:
        """Attach a rating only to a completed, not-yet-rated booking."""
        try:
            updated = (
                self.db.query(Booking)
                .filter(
                    Booking.id == booking_id,
                    Booking.status == BookingStatus.COMPLETED.value,
                    Booking.rating.is_(None),
                )
                .update(
                    {
                        "rating": rating,
                        "feedback_comment": comment,
                        "feedback_anonymous": anonymous,
                        "rated_at": rated_at,
                    },
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error rating booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to rate booking: {str(e)}") from e

        if updated == 1:
            self._sync_identity(booking_id)
        return updated == 1
