# backend/tutorbook/tasks/reservation_tasks.py
"""
Celery tasks for reservation housekeeping.

`reservations.sweep_expired_holds` runs on the beat schedule and returns
lapsed holds to free even when no request touches the slot.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import SessionLocal
from ..services.reservation_service import ReservationService
from .celery_app import celery_app

logger = get_task_logger(__name__)


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide a session for use in tasks. The service commits its own work."""
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@celery_app.task(name="reservations.sweep_expired_holds", max_retries=0, queue="reservations")
def sweep_expired_holds(tutor_id: Optional[str] = None, limit: Optional[int] = None) -> int:
    """
    Release every lapsed hold, in batches of ``hold_sweep_batch_size``.

    Returns the number of slots returned to free.
    """
    batch = limit or settings.hold_sweep_batch_size
    total = 0
    with _session_scope() as session:
        service = ReservationService(session)
        while True:
            released = service.sweep_expired(tutor_id=tutor_id, limit=batch)
            total += released
            if released < batch:
                break
    if total:
        logger.info("Released %s lapsed hold(s)", total)
    return total
