# backend/app/models/stats.py
"""Per-user session counters shown on profiles."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class UserSessionStats(Base):
    __tablename__ = "user_session_stats"

    user_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    sessions_taught: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sessions_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skill_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return (
            f"<UserSessionStats user={self.user_id} taught={self.sessions_taught} "
            f"completed={self.sessions_completed} points={self.skill_points}>"
        )
