# backend/tutorbook/core/exceptions.py
"""
Domain-specific exceptions for the tutorbook reservation core.

These exceptions carry a stable machine-readable code so callers can tell
"pick another slot" apart from "payment declined, retry" and from
"system error". Each one knows its HTTP mapping.
"""

from typing import Any, Dict, Optional

from fastapi import status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class ForbiddenException(DomainException):
    """Raised when the acting user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        code: Optional[str] = "FORBIDDEN",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details)


class ServiceException(DomainException):
    """Raised when a service operation fails."""


# Slot calendar


class InvalidRangeException(ValidationException):
    """Raised when a slot's start time is not before its end time."""

    def __init__(self, start_time: str, end_time: str):
        super().__init__(
            message="start_time must be before end_time",
            code="INVALID_RANGE",
            details={"start_time": start_time, "end_time": end_time},
        )


class SlotOverlapException(ConflictException):
    """Raised when a slot overlaps another slot of the same tutor."""

    def __init__(
        self,
        slot_date: str,
        new_range: str,
        conflicting_range: str,
    ):
        super().__init__(
            message=f"Overlapping slot on {slot_date}: {new_range} conflicts with {conflicting_range}",
            code="SLOT_OVERLAP",
            details={
                "date": slot_date,
                "new_slot": new_range,
                "conflicting_slot": conflicting_range,
            },
        )


class InvalidStateException(ConflictException):
    """Raised when a transition is not legal from the current state."""

    def __init__(
        self,
        message: str,
        *,
        current_state: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if current_state is not None:
            merged["current_state"] = current_state
        super().__init__(message=message, code="INVALID_STATE", details=merged)


# Reservations


class SlotUnavailableException(ConflictException):
    """Raised when a slot is already held or booked. Not retryable."""

    def __init__(self, slot_id: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="This slot is no longer available. Please pick another slot.",
            code="SLOT_UNAVAILABLE",
            details={"slot_id": slot_id, **(details or {})},
        )


class NotHeldByCallerException(ForbiddenException):
    """Raised when a student tries to release a hold owned by someone else."""

    def __init__(self, slot_id: str):
        super().__init__(
            message="This slot is not held by you",
            code="NOT_HELD_BY_CALLER",
            details={"slot_id": slot_id},
        )


class ReservationExpiredOrMissingException(DomainException):
    """Raised when the caller's hold has lapsed or never existed."""

    status_code = status.HTTP_410_GONE

    def __init__(self, slot_id: str):
        super().__init__(
            message="Your reservation has expired or does not exist. Please select a slot again.",
            code="RESERVATION_EXPIRED_OR_MISSING",
            details={"slot_id": slot_id},
        )


# Payments


class PaymentFailedException(DomainException):
    """Raised when the payment gateway declines a charge. Retryable within the hold."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, reason: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="Payment failed. You may retry while your reservation is still held.",
            code="PAYMENT_FAILED",
            details={"reason": reason, **(details or {})},
        )


# Bookings


class AlreadyRatedException(ConflictException):
    """Raised when a booking already carries a rating."""

    def __init__(self, booking_id: str):
        super().__init__(
            message="This booking has already been rated",
            code="ALREADY_RATED",
            details={"booking_id": booking_id},
        )


class OutOfRangeException(ValidationException):
    """Raised when a rating is outside 1..5."""

    status_code = HTTP_422_UNPROCESSABLE

    def __init__(self, value: Any, minimum: int = 1, maximum: int = 5):
        super().__init__(
            message=f"Rating must be an integer between {minimum} and {maximum}",
            code="OUT_OF_RANGE",
            details={"value": value, "min": minimum, "max": maximum},
        )


class InternalInconsistencyException(ServiceException):
    """Raised when a storage invariant is found broken. Should be unreachable."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INTERNAL_INCONSISTENCY", details=details)


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
