"""FastAPI dependency providers."""

from .database import get_db
from .services import (
    get_booking_checkout_service,
    get_booking_lifecycle_service,
    get_notification_gateway,
    get_payment_gateway,
    get_reservation_service,
    get_slot_service,
    get_tutor_rating_service,
)

__all__ = [
    "get_booking_checkout_service",
    "get_booking_lifecycle_service",
    "get_db",
    "get_notification_gateway",
    "get_payment_gateway",
    "get_reservation_service",
    "get_slot_service",
    "get_tutor_rating_service",
]
