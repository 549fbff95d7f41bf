# backend/tutorbook/services/slot_service.py
"""
Slot Service for tutorbook.

Tutor-facing calendar management: create, edit, delete and list slots.
Edits and deletes only apply to free slots, and the write itself re-checks
that condition so a concurrent reservation can never be overwritten.
A slot whose hold has lapsed is released first and counts as free.
"""

from datetime import date, time
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from ..core.config import settings
from ..core.exceptions import (
    InvalidRangeException,
    InvalidStateException,
    NotFoundException,
    RepositoryException,
    SlotOverlapException,
    ValidationException,
)
from ..core.timezone_utils import Clock
from ..models.slot import SlotState, TutorSlot
from ..repositories.factory import RepositoryFactory
from ..repositories.slot_repository import SlotRepository
from .base import BaseService
from .reservation_service import ReservationService

logger = logging.getLogger(__name__)


def _fmt(t: time) -> str:
    return t.strftime("%H:%M")


class SlotService(BaseService):
    """Service for managing a tutor's availability slots."""

    def __init__(
        self,
        db: Session,
        slot_repository: Optional[SlotRepository] = None,
        reservation_service: Optional[ReservationService] = None,
        clock: Optional[Clock] = None,
        reject_past_slots: Optional[bool] = None,
    ):
        super().__init__(db, clock=clock)
        self.repository = slot_repository or RepositoryFactory.create_slot_repository(db)
        self.reservation_service = reservation_service or ReservationService(
            db, slot_repository=self.repository, clock=self.clock
        )
        self.reject_past_slots = (
            settings.reject_past_slots if reject_past_slots is None else reject_past_slots
        )

    @BaseService.measure_operation("create_slot")
    def create_slot(
        self, tutor_id: str, slot_date: date, start_time: time, end_time: time
    ) -> TutorSlot:
        """
        Add a free slot to the tutor's calendar.

        Raises:
            InvalidRangeException: start_time is not before end_time
            ValidationException: slot_date is in the past
            SlotOverlapException: overlaps another of the tutor's slots
        """
        self._validate_times(slot_date, start_time, end_time)

        with self.transaction():
            self._check_overlap(tutor_id, slot_date, start_time, end_time)
            try:
                slot = self.repository.create(
                    tutor_id=tutor_id,
                    slot_date=slot_date,
                    start_time=start_time,
                    end_time=end_time,
                    state=SlotState.FREE.value,
                    created_at=self.now(),
                    updated_at=self.now(),
                )
            except RepositoryException as e:
                if not isinstance(e.__cause__, IntegrityError):
                    raise
                # Unique (tutor, date, start) tripped by a concurrent create.
                raise SlotOverlapException(
                    slot_date.isoformat(),
                    f"{_fmt(start_time)}-{_fmt(end_time)}",
                    f"existing slot starting {_fmt(start_time)}",
                ) from e

        self.log_operation("create_slot", tutor_id=tutor_id, slot_id=slot.id)
        return slot

    @BaseService.measure_operation("update_slot")
    def update_slot(
        self,
        tutor_id: str,
        slot_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
    ) -> TutorSlot:
        """
        Move a free slot to a new date or time range.

        Raises:
            NotFoundException: slot missing or owned by another tutor
            InvalidStateException: slot is held or booked
        """
        slot = self._get_owned_slot(tutor_id, slot_id)
        self._release_lapsed_hold(slot)
        if slot.state != SlotState.FREE.value:
            raise InvalidStateException(
                "Only free slots can be edited", current_state=slot.state
            )
        self._validate_times(slot_date, start_time, end_time)

        with self.transaction():
            self._check_overlap(tutor_id, slot_date, start_time, end_time, exclude_slot_id=slot_id)
            if not self.repository.update_times_if_free(
                slot_id, tutor_id, slot_date, start_time, end_time, now=self.now()
            ):
                raise self._lost_write_error(tutor_id, slot_id)

        return self._get_owned_slot(tutor_id, slot_id)

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, tutor_id: str, slot_id: str) -> None:
        """Remove a free slot from the tutor's calendar."""
        slot = self._get_owned_slot(tutor_id, slot_id)
        self._release_lapsed_hold(slot)
        if slot.state != SlotState.FREE.value:
            raise InvalidStateException(
                "Only free slots can be deleted", current_state=slot.state
            )

        with self.transaction():
            if not self.repository.delete_if_free(slot_id, tutor_id):
                raise self._lost_write_error(tutor_id, slot_id)

        self.log_operation("delete_slot", tutor_id=tutor_id, slot_id=slot_id)

    def get_slot(self, tutor_id: str, slot_id: str) -> TutorSlot:
        return self._get_owned_slot(tutor_id, slot_id)

    def get_by_tutor(self, tutor_id: str, state: Optional[SlotState] = None) -> Query:
        """
        The tutor's slots, newest date first, then by start time.

        The returned query is lazy and can be iterated more than once.
        """
        return self.repository.list_for_tutor(tutor_id, state=state)

    def _get_owned_slot(self, tutor_id: str, slot_id: str) -> TutorSlot:
        slot = self.repository.get_slot(tutor_id, slot_id)
        if slot is None:
            raise NotFoundException(f"Slot {slot_id} not found")
        return slot

    def _release_lapsed_hold(self, slot: TutorSlot) -> None:
        """A held slot whose hold has lapsed is free for editing."""
        if slot.state == SlotState.HELD.value:
            self.reservation_service.expire_lapsed_hold(slot.id, now=self.now())

    def _validate_times(self, slot_date: date, start_time: time, end_time: time) -> None:
        if start_time >= end_time:
            raise InvalidRangeException(_fmt(start_time), _fmt(end_time))
        if self.reject_past_slots and slot_date < self.now().date():
            raise ValidationException(
                "Cannot schedule slots in the past",
                code="PAST_DATE",
                details={"date": slot_date.isoformat()},
            )

    def _check_overlap(
        self,
        tutor_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        exclude_slot_id: Optional[str] = None,
    ) -> None:
        conflict = self.repository.find_overlapping(
            tutor_id, slot_date, start_time, end_time, exclude_slot_id=exclude_slot_id
        )
        if conflict is not None:
            raise SlotOverlapException(
                slot_date.isoformat(),
                f"{_fmt(start_time)}-{_fmt(end_time)}",
                f"{_fmt(conflict.start_time)}-{_fmt(conflict.end_time)}",
            )

    def _lost_write_error(self, tutor_id: str, slot_id: str) -> Exception:
        """Explain why a conditional write on a slot matched no row."""
        current = self.repository.get_slot(tutor_id, slot_id)
        if current is None:
            return NotFoundException(f"Slot {slot_id} not found")
        self.db.refresh(current)
        return InvalidStateException(
            "Slot was reserved or booked before the change could be applied",
            current_state=current.state,
        )
