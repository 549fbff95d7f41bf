# backend/tutorbook/integrations/notifications.py
"""
Notification gateway port and adapters.

Notifications are fire-and-forget. They are sent after the booking change
has committed, and adapters swallow and log their own failures so a broken
transport can never undo a booking or a cancellation.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
import logging
from typing import Any, Callable, Dict, Generator, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationEvent
from ..models.notification import NotificationType
from ..repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)

_MESSAGES = {
    NotificationEvent.BOOKING_CONFIRMED.value: "Your booking on {booking_date} at {start_time} is confirmed.",
    NotificationEvent.BOOKING_COMPLETED.value: "Your session on {booking_date} at {start_time} was marked completed.",
    NotificationEvent.BOOKING_CANCELLED.value: "Your booking on {booking_date} at {start_time} was cancelled.",
    NotificationEvent.BOOKING_RATED.value: "You received a {rating}-star rating.",
}


def render_message(event_type: str, payload: Dict[str, Any]) -> str:
    template = _MESSAGES.get(event_type, event_type)
    try:
        return template.format(**payload)
    except (KeyError, IndexError):
        return event_type


class NotificationGateway(ABC):
    """Port for delivering booking lifecycle events to participants."""

    @abstractmethod
    def notify(self, event_type: str, participants: Sequence[str], payload: Dict[str, Any]) -> None:
        """Deliver ``event_type`` to every participant. Never raises."""


class LoggingNotificationGateway(NotificationGateway):
    """Writes events to the log only."""

    def notify(self, event_type: str, participants: Sequence[str], payload: Dict[str, Any]) -> None:
        logger.info(
            f"Notification {event_type} -> {len(participants)} participant(s)",
            extra={"event_type": event_type, "participants": list(participants), "payload": payload},
        )


@contextmanager
def _managed_session(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """Context manager that yields a session and guarantees cleanup."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class InAppNotificationGateway(NotificationGateway):
    """Persists one Notification row per participant in its own session."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        if session_factory is None:
            from ..database import SessionLocal

            session_factory = SessionLocal
        self.session_factory = session_factory

    def notify(self, event_type: str, participants: Sequence[str], payload: Dict[str, Any]) -> None:
        notification_type = (
            NotificationType.FEEDBACK.value
            if event_type == NotificationEvent.BOOKING_RATED.value
            else NotificationType.BOOKING.value
        )
        message = render_message(event_type, payload)
        try:
            with _managed_session(self.session_factory) as session:
                repository = NotificationRepository(session)
                for user_id in dict.fromkeys(participants):
                    repository.create(
                        user_id=user_id,
                        type=notification_type,
                        event_type=event_type,
                        message=message,
                        payload=payload,
                    )
        except Exception as e:
            logger.warning(
                f"Failed to store in-app notification {event_type}: {str(e)}",
                extra={"event_type": event_type},
            )


def build_notification_gateway(
    provider: Optional[str] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> NotificationGateway:
    provider = provider or settings.notification_provider
    if provider == "log":
        return LoggingNotificationGateway()
    return InAppNotificationGateway(session_factory=session_factory)


def notify_safely(
    gateway: Optional[NotificationGateway],
    event_type: str,
    participants: Sequence[str],
    payload: Dict[str, Any],
) -> None:
    """Send through ``gateway`` and log, rather than raise, on any failure."""
    if gateway is None:
        return
    try:
        gateway.notify(event_type, participants, payload)
    except Exception as e:
        logger.warning(
            f"Notification {event_type} failed: {str(e)}",
            extra={"event_type": event_type},
        )
