# backend/tutorbook/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected. Tests override the
gateway providers to swap in fakes.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...integrations.notifications import NotificationGateway, build_notification_gateway
from ...integrations.payments import PaymentGateway, build_payment_gateway
from ...services.booking_checkout_service import BookingCheckoutService
from ...services.booking_lifecycle_service import BookingLifecycleService
from ...services.reservation_service import ReservationService
from ...services.slot_service import SlotService
from ...services.tutor_rating_service import TutorRatingService
from .database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _payment_gateway_singleton() -> PaymentGateway:
    gateway = build_payment_gateway()
    logger.info(f"Payment gateway: {type(gateway).__name__}")
    return gateway


@lru_cache(maxsize=1)
def _notification_gateway_singleton() -> NotificationGateway:
    return build_notification_gateway()


def get_payment_gateway() -> PaymentGateway:
    return _payment_gateway_singleton()


def get_notification_gateway() -> NotificationGateway:
    return _notification_gateway_singleton()


def get_slot_service(db: Session = Depends(get_db)) -> SlotService:
    return SlotService(db)


def get_reservation_service(db: Session = Depends(get_db)) -> ReservationService:
    return ReservationService(db)


def get_tutor_rating_service(db: Session = Depends(get_db)) -> TutorRatingService:
    return TutorRatingService(db)


def get_booking_checkout_service(
    db: Session = Depends(get_db),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
    notification_gateway: NotificationGateway = Depends(get_notification_gateway),
) -> BookingCheckoutService:
    return BookingCheckoutService(
        db,
        payment_gateway=payment_gateway,
        notification_gateway=notification_gateway,
    )


def get_booking_lifecycle_service(
    db: Session = Depends(get_db),
    notification_gateway: NotificationGateway = Depends(get_notification_gateway),
) -> BookingLifecycleService:
    return BookingLifecycleService(db, notification_gateway=notification_gateway)
