"""Profile-counter collaborator: session tallies and skill points per user."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models.stats import UserSessionStats
from app.repositories.factory import RepositoryFactory

from .base import BaseService

logger = logging.getLogger(__name__)


class ProfileCounterService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.stats_repository = RepositoryFactory.create_session_stats_repository(db)

    @BaseService.measure_operation("record_session_completion")
    def record_completion(
        self, *, teacher_id: str, student_id: str, teacher_points: int, student_points: int
    ) -> None:
        """Increment sessions taught / completed and award the credits earned as skill points."""
        with self.transaction():
            # Sorted so concurrent completions lock rows in the same order
            for user_id in sorted({teacher_id, student_id}):
                stats = self.stats_repository.lock_for_user(user_id)
                if user_id == teacher_id:
                    stats.sessions_taught += 1
                    stats.skill_points += teacher_points
                if user_id == student_id:
                    stats.sessions_completed += 1
                    stats.skill_points += student_points

        self.log_operation(
            "record_session_completion", teacher_id=teacher_id, student_id=student_id
        )

    def get_stats(self, user_id: str) -> Optional[UserSessionStats]:
        return self.stats_repository.get_for_user(user_id)
