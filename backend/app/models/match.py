# backend/app/models/match.py
"""Teacher/student pairings that sessions are booked against."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SkillMatch(Base):
    __tablename__ = "skill_matches"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    teacher_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=MatchStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')",
            name="ck_skill_matches_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<SkillMatch {self.id} teacher={self.teacher_id} student={self.student_id} status={self.status}>"
