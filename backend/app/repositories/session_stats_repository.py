# backend/app/repositories/session_stats_repository.py
"""Repository for per-user session counters."""

import logging
from typing import Optional, cast

from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.stats import UserSessionStats
from ._upsert import insert_if_missing
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SessionStatsRepository(BaseRepository[UserSessionStats]):
    def __init__(self, db: Session):
        super().__init__(db, UserSessionStats)

    def get_for_user(self, user_id: str) -> Optional[UserSessionStats]:
        return cast(Optional[UserSessionStats], self.db.get(UserSessionStats, user_id))

    def lock_for_user(self, user_id: str) -> UserSessionStats:
        """Ensure the user's counter row exists and lock it for an increment."""
        try:
            insert_if_missing(
                self.db,
                UserSessionStats,
                "user_id",
                {
                    "user_id": user_id,
                    "sessions_taught": 0,
                    "sessions_completed": 0,
                    "skill_points": 0,
                },
            )
            return cast(
                UserSessionStats,
                self.db.query(UserSessionStats)
                .filter(UserSessionStats.user_id == user_id)
                .with_for_update()
                .populate_existing()
                .one(),
            )
        except Exception as e:
            self.logger.error(f"Error locking session stats for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock session stats: {str(e)}")
