# backend/app/repositories/session_repository.py
"""
Session Repository for SkillSwap

Data access for skill sessions: locking reads for lifecycle transitions and
the participant-scoped listings behind the upcoming/history views.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.session import (
    ACTIVE_SESSION_STATUSES,
    TERMINAL_SESSION_STATUSES,
    SkillSession,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SessionRepository(BaseRepository[SkillSession]):
    """Repository for skill session queries."""

    def __init__(self, db: Session):
        super().__init__(db, SkillSession)
        self.logger = logging.getLogger(__name__)

    def get_upcoming_for_user(self, user_id: str, now: datetime) -> List[SkillSession]:
        """Non-terminal sessions the user takes part in that have not started yet, soonest first."""
        try:
            query = (
                self.db.query(SkillSession)
                .filter(
                    or_(SkillSession.teacher_id == user_id, SkillSession.student_id == user_id),
                    SkillSession.status.in_(ACTIVE_SESSION_STATUSES),
                    SkillSession.scheduled_start > now,
                )
                .order_by(SkillSession.scheduled_start.asc(), SkillSession.id.asc())
            )
            return cast(List[SkillSession], query.all())
        except Exception as e:
            self.logger.error(f"Error getting upcoming sessions for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to get upcoming sessions: {str(e)}")

    def get_history_for_user(self, user_id: str, limit: Optional[int] = None) -> List[SkillSession]:
        """Completed and cancelled sessions for the user, most recently created first."""
        try:
            query = (
                self.db.query(SkillSession)
                .filter(
                    or_(SkillSession.teacher_id == user_id, SkillSession.student_id == user_id),
                    SkillSession.status.in_(TERMINAL_SESSION_STATUSES),
                )
                .order_by(SkillSession.created_at.desc(), SkillSession.id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            return cast(List[SkillSession], query.all())
        except Exception as e:
            self.logger.error(f"Error getting session history for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to get session history: {str(e)}")
