# backend/tutorbook/repositories/tutor_rating_repository.py
"""
Repository for the per-tutor rating aggregate.

Increments are a single INSERT ... ON CONFLICT DO UPDATE so concurrent
ratings for the same tutor never lose an update.
"""

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.tutor_rating import TutorRatingSummary
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TutorRatingRepository(BaseRepository[TutorRatingSummary]):
    def __init__(self, db: Session):
        super().__init__(db, TutorRatingSummary)
        self.logger = logging.getLogger(__name__)

    def get_summary(self, tutor_id: str) -> Optional[TutorRatingSummary]:
        try:
            return self.db.get(TutorRatingSummary, tutor_id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting rating summary for {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get rating summary: {str(e)}") from e

    def increment(self, tutor_id: str, rating: int, now: datetime) -> None:
        """Add one rating to the tutor's running sum and count."""
        dialect = self.dialect_name.lower()
        if dialect == "postgresql":
            insert_fn = pg_insert
        elif dialect == "sqlite":
            insert_fn = sqlite_insert
        else:
            raise RepositoryException(f"Rating upsert not supported on dialect {dialect}")

        stmt = insert_fn(TutorRatingSummary).values(
            tutor_id=tutor_id,
            rating_sum=rating,
            rating_count=1,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[TutorRatingSummary.tutor_id],
            set_={
                "rating_sum": TutorRatingSummary.rating_sum + stmt.excluded.rating_sum,
                "rating_count": TutorRatingSummary.rating_count + 1,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error incrementing rating summary for {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to update rating summary: {str(e)}") from e

        self._sync_identity(tutor_id)
