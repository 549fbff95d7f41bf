# backend/tutorbook/repositories/reservation_repository.py
"""
Reservation Repository for the tutorbook core.

Every delete here is conditional on the hold's expiry relative to ``now``.
The row count of that delete decides which of several racing actors (a
release, a finalize, the sweep, a lazy expiry check) gets to free the slot.
"""

from datetime import datetime
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.reservation import SlotReservation
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ReservationRepository(BaseRepository[SlotReservation]):
    """Data access for slot holds."""

    def __init__(self, db: Session):
        super().__init__(db, SlotReservation)
        self.logger = logging.getLogger(__name__)

    def get_for_slot(self, slot_id: str) -> Optional[SlotReservation]:
        """Raw lookup, including lapsed holds. Callers must check expiry."""
        try:
            return self.db.query(SlotReservation).filter(SlotReservation.slot_id == slot_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting reservation for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to get reservation: {str(e)}") from e

    def get_live(self, tutor_id: str, slot_id: str, now: datetime) -> Optional[SlotReservation]:
        """The slot's hold, unless it has lapsed."""
        try:
            return (
                self.db.query(SlotReservation)
                .filter(
                    SlotReservation.tutor_id == tutor_id,
                    SlotReservation.slot_id == slot_id,
                    SlotReservation.expires_at >= now,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting live reservation for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to get reservation: {str(e)}") from e

    def delete_live_for_student(self, slot_id: str, student_id: str, now: datetime) -> bool:
        """Delete the slot's hold if it is still live and owned by ``student_id``."""
        return self._conditional_delete(
            SlotReservation.slot_id == slot_id,
            SlotReservation.student_id == student_id,
            SlotReservation.expires_at >= now,
        )

    def delete_expired_for_slot(self, slot_id: str, now: datetime) -> bool:
        """Delete the slot's hold only if it has lapsed."""
        return self._conditional_delete(
            SlotReservation.slot_id == slot_id,
            SlotReservation.expires_at < now,
        )

    def delete_expired_by_id(self, reservation_id: str, now: datetime) -> bool:
        return self._conditional_delete(
            SlotReservation.id == reservation_id,
            SlotReservation.expires_at < now,
        )

    def find_expired(
        self,
        now: datetime,
        tutor_id: Optional[str] = None,
        limit: int = 500,
    ) -> List[Tuple[str, str]]:
        """Return ``(reservation_id, slot_id)`` pairs of lapsed holds, oldest first."""
        try:
            query = self.db.query(SlotReservation.id, SlotReservation.slot_id).filter(
                SlotReservation.expires_at < now
            )
            if tutor_id is not None:
                query = query.filter(SlotReservation.tutor_id == tutor_id)
            rows = query.order_by(SlotReservation.expires_at.asc()).limit(limit).all()
            return [(row[0], row[1]) for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding expired reservations: {str(e)}")
            raise RepositoryException(f"Failed to find expired reservations: {str(e)}") from e

    def _conditional_delete(self, *criteria) -> bool:
        try:
            matches = self.db.query(SlotReservation.id).filter(*criteria).all()
            if not matches:
                return False
            deleted = (
                self.db.query(SlotReservation)
                .filter(*criteria)
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting reservation: {str(e)}")
            raise RepositoryException(f"Failed to delete reservation: {str(e)}") from e

        if deleted:
            for (reservation_id,) in matches:
                self._evict_identity(reservation_id)
        return deleted == 1
