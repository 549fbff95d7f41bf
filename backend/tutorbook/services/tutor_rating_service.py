# backend/tutorbook/services/tutor_rating_service.py
"""Tutor rating aggregate: a running sum and count per tutor."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.timezone_utils import Clock
from ..repositories.factory import RepositoryFactory
from ..repositories.tutor_rating_repository import TutorRatingRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class TutorRatingService(BaseService):
    def __init__(
        self,
        db: Session,
        repository: Optional[TutorRatingRepository] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock=clock)
        self.repository = repository or RepositoryFactory.create_tutor_rating_repository(db)

    @BaseService.measure_operation("recompute_rating")
    def recompute(self, tutor_id: str, new_rating: int) -> None:
        """Fold one new rating into the tutor's aggregate."""
        with self.transaction():
            self.repository.increment(tutor_id, new_rating, self.now())

    def get_summary(self, tutor_id: str) -> Dict[str, Any]:
        summary = self.repository.get_summary(tutor_id)
        if summary is None:
            return {"tutor_id": tutor_id, "average": None, "count": 0}
        return {
            "tutor_id": tutor_id,
            "average": summary.average,
            "count": summary.rating_count,
        }
