# backend/tutorbook/services/booking_checkout_service.py
"""
Booking checkout for tutorbook.

Converts a student's live hold into a confirmed booking once payment goes
through. Uses a 3-phase pattern so no transaction is open while the payment
gateway is working:

- Phase 1: verify the hold and snapshot the slot (short transaction)
- Phase 2: charge the payment gateway (no transaction)
- Phase 3: consume the hold, mark the slot booked, write the booking
  (short transaction)

If the hold disappeared during Phase 2, or the slot is not in the state the
hold promised, Phase 3 rolls back as a whole and the charge is refunded.
"""

from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from ..core.enums import NotificationEvent
from ..core.exceptions import (
    DomainException,
    InternalInconsistencyException,
    PaymentFailedException,
    ReservationExpiredOrMissingException,
    ValidationException,
)
from ..core.timezone_utils import Clock
from ..integrations.notifications import NotificationGateway, notify_safely
from ..integrations.payments import PaymentGateway, PaymentResult
from ..models.booking import Booking, BookingStatus
from ..models.slot import SlotState
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .reservation_service import ReservationService

logger = logging.getLogger(__name__)


class BookingCheckoutService(BaseService):
    """Service that finalizes paid holds into bookings."""

    def __init__(
        self,
        db: Session,
        payment_gateway: PaymentGateway,
        notification_gateway: Optional[NotificationGateway] = None,
        reservation_service: Optional[ReservationService] = None,
        booking_repository: Optional[BookingRepository] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock=clock)
        self.payment_gateway = payment_gateway
        self.notification_gateway = notification_gateway
        self.reservation_service = reservation_service or ReservationService(db, clock=clock)
        self.slot_repository = self.reservation_service.slot_repository
        self.reservation_repository = self.reservation_service.reservation_repository
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("finalize")
    def finalize(
        self,
        tutor_id: str,
        slot_id: str,
        student_id: str,
        subject: str,
        payment_method: str,
        amount: Union[Decimal, int, float, str],
    ) -> Booking:
        """
        Pay for a live hold and turn it into a CONFIRMED booking.

        Raises:
            ValidationException: amount is not a positive number
            ReservationExpiredOrMissingException: no live hold owned by the student
            PaymentFailedException: the gateway declined; the hold is untouched
            InternalInconsistencyException: the slot was not held under a live hold
        """
        charge_amount = self._validate_amount(amount)

        # ========== PHASE 1: Verify hold, snapshot slot ==========
        now = self.now()
        self.reservation_service.expire_lapsed_hold(slot_id, now=now)
        with self.transaction():
            reservation = self.reservation_repository.get_live(tutor_id, slot_id, now)
            if reservation is None or reservation.student_id != student_id:
                raise ReservationExpiredOrMissingException(slot_id)
            slot = self.slot_repository.get_slot(tutor_id, slot_id)
            if slot is None:
                raise InternalInconsistencyException(
                    "Reservation references a missing slot",
                    details={"slot_id": slot_id, "reservation_id": reservation.id},
                )
            snapshot = {
                "booking_date": slot.slot_date,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
            }

        # ========== PHASE 2: Charge (NO transaction) ==========
        payment = self._charge(
            charge_amount,
            payment_method,
            {"tutor_id": tutor_id, "slot_id": slot_id, "student_id": student_id},
        )

        # ========== PHASE 3: Consume hold, book slot, record booking ==========
        paid_at = self.now()
        try:
            with self.transaction():
                if not self.reservation_repository.delete_live_for_student(
                    slot_id, student_id, paid_at
                ):
                    self.logger.info(
                        "Hold lapsed while payment was in flight",
                        extra={"slot_id": slot_id, "student_id": student_id},
                    )
                    raise ReservationExpiredOrMissingException(slot_id)

                if not self.slot_repository.transition(
                    slot_id, SlotState.HELD, SlotState.BOOKED, tutor_id=tutor_id, now=paid_at
                ):
                    self.logger.error(
                        "Slot was not held while a live hold existed",
                        extra={"slot_id": slot_id, "tutor_id": tutor_id},
                    )
                    raise InternalInconsistencyException(
                        "Slot state did not match its reservation",
                        details={"slot_id": slot_id},
                    )

                booking = self.booking_repository.create(
                    tutor_id=tutor_id,
                    student_id=student_id,
                    slot_id=slot_id,
                    subject=subject,
                    payment_method=payment_method,
                    amount=charge_amount,
                    payment_reference=payment.reference,
                    status=BookingStatus.CONFIRMED.value,
                    created_at=paid_at,
                    confirmed_at=paid_at,
                    **snapshot,
                )
        except DomainException:
            self._refund_best_effort(payment)
            raise

        prometheus_metrics.record_booking_transition(BookingStatus.CONFIRMED.value)
        self.log_operation("finalize", booking_id=booking.id, slot_id=slot_id)
        notify_safely(
            self.notification_gateway,
            NotificationEvent.BOOKING_CONFIRMED.value,
            booking.participants(),
            self._payload(booking),
        )
        return booking

    def _validate_amount(self, amount: Any) -> Decimal:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise ValidationException("Amount must be a number", code="INVALID_AMOUNT")
        if not value.is_finite() or value <= 0:
            raise ValidationException(
                "Amount must be greater than zero",
                code="INVALID_AMOUNT",
                details={"amount": str(amount)},
            )
        return value.quantize(Decimal("0.01"))

    def _charge(
        self, amount: Decimal, payment_method: str, metadata: Dict[str, str]
    ) -> PaymentResult:
        try:
            result = self.payment_gateway.charge(amount, payment_method, metadata)
        except Exception as e:
            self.logger.error(f"Payment gateway error: {str(e)}", exc_info=True)
            prometheus_metrics.record_payment_attempt("error")
            raise PaymentFailedException("gateway_error")

        if not result.success:
            prometheus_metrics.record_payment_attempt("declined")
            self.logger.info(
                "Payment declined",
                extra={"reason": result.failure_reason, **metadata},
            )
            raise PaymentFailedException(result.failure_reason)

        prometheus_metrics.record_payment_attempt("success")
        return result

    def _refund_best_effort(self, payment: PaymentResult) -> None:
        if not payment.reference:
            return
        try:
            refund = self.payment_gateway.refund(payment.reference)
        except Exception as e:
            refund = PaymentResult(success=False, reference=payment.reference, failure_reason=str(e))
        if refund.success:
            prometheus_metrics.record_payment_attempt("refunded")
            self.logger.info(f"Refunded charge {payment.reference} after failed checkout")
        else:
            prometheus_metrics.record_payment_attempt("refund_failed")
            self.logger.error(
                f"Refund of {payment.reference} failed: {refund.failure_reason}",
                extra={"payment_reference": payment.reference},
            )

    @staticmethod
    def _payload(booking: Booking) -> Dict[str, Any]:
        return booking.to_dict()
