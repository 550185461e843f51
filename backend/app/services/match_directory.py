"""Match collaborator: resolves the teacher/student pairing behind a booking."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models.match import MatchStatus
from app.repositories.factory import RepositoryFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchInfo:
    match_id: str
    teacher_id: str
    student_id: str
    status: str

    @property
    def is_accepted(self) -> bool:
        return self.status == MatchStatus.ACCEPTED.value

    def pairs(self, user_a: str, user_b: str) -> bool:
        """True when the two users are the two sides of this match, in either role."""
        return {user_a, user_b} == {self.teacher_id, self.student_id}


class MatchDirectory:
    """Reads matches from the ``skill_matches`` table."""

    def __init__(self, db: Session):
        self.match_repository = RepositoryFactory.create_match_repository(db)

    def get_match(self, match_id: str) -> Optional[MatchInfo]:
        match = self.match_repository.get_match(match_id)
        if match is None:
            return None
        return MatchInfo(
            match_id=match.id,
            teacher_id=match.teacher_id,
            student_id=match.student_id,
            status=match.status,
        )
