# backend/app/repositories/match_repository.py
"""Match Repository for SkillSwap."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.match import SkillMatch
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class MatchRepository(BaseRepository[SkillMatch]):
    def __init__(self, db: Session):
        super().__init__(db, SkillMatch)

    def get_match(self, match_id: str) -> Optional[SkillMatch]:
        return self.get_by_id(match_id)
