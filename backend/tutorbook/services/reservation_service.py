# backend/tutorbook/services/reservation_service.py
"""
Reservation Service for tutorbook.

Turns a free slot into a time-bounded, student-exclusive hold and back.

The slot's free -> held compare-and-swap is the single serialization point:
of N concurrent reserve calls on one free slot, exactly one sees its UPDATE
match a row, and the rest get SlotUnavailableException straight away.

Lapsed holds are released by whoever notices first: a lazy check at the
start of reserve/release/finalize, the Celery beat sweep, or the optional
in-process sweep. Each of them frees the slot only after winning a
conditional DELETE of the lapsed reservation row, so a hold is never freed
twice and a hold that was just finalized is never freed at all.
"""

from datetime import datetime, timedelta
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    DomainException,
    InternalInconsistencyException,
    NotFoundException,
    NotHeldByCallerException,
    ServiceException,
    SlotUnavailableException,
)
from ..core.timezone_utils import Clock
from ..models.reservation import SlotReservation
from ..models.slot import SlotState
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.reservation_repository import ReservationRepository
from ..repositories.slot_repository import SlotRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class ReservationService(BaseService):
    """Service for placing, releasing and expiring slot holds."""

    def __init__(
        self,
        db: Session,
        slot_repository: Optional[SlotRepository] = None,
        reservation_repository: Optional[ReservationRepository] = None,
        clock: Optional[Clock] = None,
        hold_ttl_minutes: Optional[int] = None,
    ):
        super().__init__(db, clock=clock)
        self.slot_repository = slot_repository or RepositoryFactory.create_slot_repository(db)
        self.reservation_repository = (
            reservation_repository or RepositoryFactory.create_reservation_repository(db)
        )
        self.hold_ttl = timedelta(minutes=hold_ttl_minutes or settings.hold_ttl_minutes)

    @BaseService.measure_operation("reserve")
    def reserve(self, tutor_id: str, slot_id: str, student_id: str) -> SlotReservation:
        """
        Place a hold on a free slot for ``student_id``.

        Returns:
            The new reservation, expiring ``hold_ttl`` from now

        Raises:
            NotFoundException: slot does not exist for this tutor
            SlotUnavailableException: slot is already held or booked
            ServiceException: the hold row could not be written (slot left free)
        """
        now = self.now()
        self.expire_lapsed_hold(slot_id, now=now)

        try:
            with self.transaction():
                if not self.slot_repository.transition(
                    slot_id, SlotState.FREE, SlotState.HELD, tutor_id=tutor_id, now=now
                ):
                    raise self._unavailable_or_missing(tutor_id, slot_id)

                # A failed insert rolls the whole transaction back, including
                # the free -> held transition above.
                reservation = self.reservation_repository.create(
                    tutor_id=tutor_id,
                    slot_id=slot_id,
                    student_id=student_id,
                    held_at=now,
                    expires_at=now + self.hold_ttl,
                )
        except SlotUnavailableException:
            prometheus_metrics.record_reservation_attempt("unavailable")
            self.logger.info(
                "Reservation lost",
                extra={"slot_id": slot_id, "tutor_id": tutor_id, "student_id": student_id},
            )
            raise
        except NotFoundException:
            prometheus_metrics.record_reservation_attempt("not_found")
            raise
        except ServiceException:
            prometheus_metrics.record_reservation_attempt("error")
            self.logger.error(
                "Failed to record reservation, slot left free",
                extra={"slot_id": slot_id, "tutor_id": tutor_id, "student_id": student_id},
            )
            raise

        prometheus_metrics.record_reservation_attempt("success")
        self.log_operation(
            "reserve",
            slot_id=slot_id,
            student_id=student_id,
            expires_at=reservation.expires_at.isoformat(),
        )
        return reservation

    @BaseService.measure_operation("release")
    def release(self, tutor_id: str, slot_id: str, student_id: str) -> bool:
        """
        Give up ``student_id``'s hold on a slot.

        Returns:
            True if a hold was released, False if there was no live hold
            (already released or lapsed). Releasing twice is not an error.

        Raises:
            NotFoundException: slot does not exist for this tutor
            NotHeldByCallerException: the live hold belongs to another student
        """
        now = self.now()
        self.expire_lapsed_hold(slot_id, now=now)

        live = self.reservation_repository.get_live(tutor_id, slot_id, now)
        if live is None:
            if self.slot_repository.get_slot(tutor_id, slot_id) is None:
                raise NotFoundException(f"Slot {slot_id} not found")
            return False
        if live.student_id != student_id:
            raise NotHeldByCallerException(slot_id)

        with self.transaction():
            if not self.reservation_repository.delete_live_for_student(slot_id, student_id, now):
                # Finalized or expired between the read and the delete.
                return False
            self._free_slot(slot_id, reason="released", now=now)

        prometheus_metrics.record_hold_released("released")
        self.log_operation("release", slot_id=slot_id, student_id=student_id)
        return True

    def get_live_reservation(self, tutor_id: str, slot_id: str) -> Optional[SlotReservation]:
        """The slot's current hold. A lapsed hold is never returned."""
        return self.reservation_repository.get_live(tutor_id, slot_id, self.now())

    def expire_lapsed_hold(self, slot_id: str, now: Optional[datetime] = None) -> bool:
        """Release the slot's hold if it has lapsed. Returns True if one was released."""
        now = now or self.now()
        with self.transaction():
            if not self.reservation_repository.delete_expired_for_slot(slot_id, now):
                return False
            self._free_slot(slot_id, reason="expired", now=now)

        prometheus_metrics.record_hold_released("expired")
        self.logger.info("Lapsed hold released", extra={"slot_id": slot_id})
        return True

    @BaseService.measure_operation("sweep_expired")
    def sweep_expired(self, tutor_id: Optional[str] = None, limit: Optional[int] = None) -> int:
        """
        Release every lapsed hold, optionally only for one tutor.

        Each hold is released in its own short transaction. Returns the number
        of slots returned to free by this call.
        """
        now = self.now()
        batch = limit or settings.hold_sweep_batch_size
        expired = self.reservation_repository.find_expired(now, tutor_id=tutor_id, limit=batch)

        released = 0
        for reservation_id, slot_id in expired:
            try:
                with self.transaction():
                    if not self.reservation_repository.delete_expired_by_id(reservation_id, now):
                        continue
                    self._free_slot(slot_id, reason="expired", now=now)
            except DomainException:
                self.logger.error(
                    "Failed to release lapsed hold",
                    extra={"reservation_id": reservation_id, "slot_id": slot_id},
                    exc_info=True,
                )
                continue
            released += 1

        if released:
            prometheus_metrics.record_hold_released("expired", released)
            self.logger.info(
                f"Swept {released} lapsed hold(s)",
                extra={"tutor_id": tutor_id, "released": released},
            )
        return released

    def _free_slot(self, slot_id: str, *, reason: str, now: datetime) -> None:
        """held -> free for a slot whose reservation row this transaction just deleted."""
        if not self.slot_repository.transition(slot_id, SlotState.HELD, SlotState.FREE, now=now):
            self.logger.error(
                "Slot was not held while its reservation existed",
                extra={"slot_id": slot_id, "reason": reason},
            )
            raise InternalInconsistencyException(
                "Slot state did not match its reservation",
                details={"slot_id": slot_id, "reason": reason},
            )

    def _unavailable_or_missing(self, tutor_id: str, slot_id: str) -> DomainException:
        if self.slot_repository.get_slot(tutor_id, slot_id) is None:
            return NotFoundException(f"Slot {slot_id} not found")
        return SlotUnavailableException(slot_id)
