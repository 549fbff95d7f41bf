# backend/tutorbook/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for tutorbook.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

from ..core.config import settings


def get_beat_schedule(interval_seconds: Optional[int] = None) -> Dict[str, Dict[str, Any]]:
    """Periodic tasks. The hold sweep keeps lapsed slots bookable with no traffic."""
    interval = interval_seconds or settings.hold_sweep_interval_seconds
    return {
        "sweep-expired-holds": {
            "task": "reservations.sweep_expired_holds",
            "schedule": timedelta(seconds=interval),
            "options": {
                "queue": "reservations",
                # A backlog of sweeps is pointless; the next one covers it.
                "expires": interval,
            },
        },
    }
