# backend/tutorbook/repositories/slot_repository.py
"""
Slot Repository for the tutorbook core.

Owns every read and write of ``tutor_slots``. The ``state`` column is changed
in exactly one place, ``transition``, a single conditional UPDATE whose row
count tells the caller whether it won. Nothing here reads a state and then
writes it in a second statement.
"""

from datetime import date, datetime, time
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..core.timezone_utils import utc_now
from ..models.slot import SlotState, TutorSlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SlotRepository(BaseRepository[TutorSlot]):
    """Data access for tutor slots, including the atomic state compare-and-swap."""

    def __init__(self, db: Session):
        super().__init__(db, TutorSlot)
        self.logger = logging.getLogger(__name__)

    def get_slot(self, tutor_id: str, slot_id: str) -> Optional[TutorSlot]:
        """Fetch a slot only if it belongs to the given tutor."""
        try:
            return (
                self.db.query(TutorSlot)
                .filter(TutorSlot.id == slot_id, TutorSlot.tutor_id == tutor_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting slot {slot_id} for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get slot: {str(e)}") from e

    def list_for_tutor(self, tutor_id: str, state: Optional[SlotState] = None) -> Query:
        """
        Build the tutor's slot listing.

        Returns the un-executed query: iterating it runs the SELECT, and
        iterating again runs it again, so callers see current state each pass.
        Ordered by date (newest first) then start time.
        """
        query = self.db.query(TutorSlot).filter(TutorSlot.tutor_id == tutor_id)
        if state is not None:
            query = query.filter(TutorSlot.state == SlotState(state).value)
        return query.order_by(TutorSlot.slot_date.desc(), TutorSlot.start_time.asc())

    def find_overlapping(
        self,
        tutor_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        exclude_slot_id: Optional[str] = None,
    ) -> Optional[TutorSlot]:
        """
        Return one slot of the tutor on ``slot_date`` overlapping [start, end).

        Intervals are half-open, so a slot ending at 10:00 does not overlap one
        starting at 10:00.
        """
        try:
            query = self.db.query(TutorSlot).filter(
                TutorSlot.tutor_id == tutor_id,
                TutorSlot.slot_date == slot_date,
                TutorSlot.start_time < end_time,
                TutorSlot.end_time > start_time,
            )
            if exclude_slot_id:
                query = query.filter(TutorSlot.id != exclude_slot_id)
            return query.order_by(TutorSlot.start_time.asc()).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking slot overlap for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to check overlap: {str(e)}") from e

    def transition(
        self,
        slot_id: str,
        from_state: SlotState,
        to_state: SlotState,
        tutor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Atomically move a slot from ``from_state`` to ``to_state``.

        Issues ``UPDATE tutor_slots SET state=:to WHERE id=:id AND state=:from``.
        Returns True when exactly one row changed, False when the slot is
        missing, belongs to another tutor, or is in a different state.
        """
        try:
            query = self.db.query(TutorSlot).filter(
                TutorSlot.id == slot_id,
                TutorSlot.state == SlotState(from_state).value,
            )
            if tutor_id is not None:
                query = query.filter(TutorSlot.tutor_id == tutor_id)
            updated = query.update(
                {
                    TutorSlot.state: SlotState(to_state).value,
                    TutorSlot.updated_at: now or utc_now(),
                },
                synchronize_session=False,
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error transitioning slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to transition slot: {str(e)}") from e

        if updated != 1:
            self.logger.info(
                "Slot transition lost",
                extra={
                    "slot_id": slot_id,
                    "from_state": SlotState(from_state).value,
                    "to_state": SlotState(to_state).value,
                },
            )
            return False

        self._sync_identity(slot_id)
        return True

    def update_times_if_free(
        self,
        slot_id: str,
        tutor_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        now: Optional[datetime] = None,
    ) -> bool:
        """Rewrite a slot's date and times only while it is still free."""
        try:
            updated = (
                self.db.query(TutorSlot)
                .filter(
                    TutorSlot.id == slot_id,
                    TutorSlot.tutor_id == tutor_id,
                    TutorSlot.state == SlotState.FREE.value,
                )
                .update(
                    {
                        TutorSlot.slot_date: slot_date,
                        TutorSlot.start_time: start_time,
                        TutorSlot.end_time: end_time,
                        TutorSlot.updated_at: now or utc_now(),
                    },
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to update slot: {str(e)}") from e

        if updated == 1:
            self._sync_identity(slot_id)
        return updated == 1

    def delete_if_free(self, slot_id: str, tutor_id: str) -> bool:
        """Delete a slot only while it is still free."""
        try:
            deleted = (
                self.db.query(TutorSlot)
                .filter(
                    TutorSlot.id == slot_id,
                    TutorSlot.tutor_id == tutor_id,
                    TutorSlot.state == SlotState.FREE.value,
                )
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to delete slot: {str(e)}") from e

        if deleted == 1:
            self._evict_identity(slot_id)
        return deleted == 1
