# backend/app/models/session.py
"""
Session model for SkillSwap.

A session is a time-boxed teaching slot between a teacher and a student,
paid for with credits escrowed at scheduling time. Sessions are never
deleted; terminal sessions are kept for history and audit.
"""

from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base
from ..utils.time_helpers import isoformat_utc

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Session lifecycle statuses."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_SESSION_STATUSES = (SessionStatus.SCHEDULED.value, SessionStatus.IN_PROGRESS.value)
TERMINAL_SESSION_STATUSES = (SessionStatus.COMPLETED.value, SessionStatus.CANCELLED.value)


class SkillSession(Base):
    """
    A booked session between a teacher and a student.

    ``credits_amount`` is fixed at creation and is the amount held in escrow
    from the student until the session is completed or cancelled.
    """

    __tablename__ = "skill_sessions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))

    # Participants (immutable once created)
    match_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    teacher_id: Mapped[str] = mapped_column(String(26), nullable=False)
    student_id: Mapped[str] = mapped_column(String(26), nullable=False)
    skill_id: Mapped[str] = mapped_column(String(26), nullable=False)

    scheduled_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SessionStatus.SCHEDULED.value
    )
    credits_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    video_room_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Cancellation tracking
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
            name="ck_skill_sessions_status",
        ),
        CheckConstraint("credits_amount > 0", name="ck_skill_sessions_credits_positive"),
        CheckConstraint("scheduled_end > scheduled_start", name="ck_skill_sessions_time_order"),
        Index("ix_skill_sessions_teacher_status", "teacher_id", "status"),
        Index("ix_skill_sessions_student_status", "student_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<SkillSession {self.id}: teacher={self.teacher_id}, student={self.student_id}, "
            f"start={self.scheduled_start}, status={self.status}>"
        )

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.teacher_id, self.student_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and notification payloads."""
        return {
            "id": self.id,
            "match_id": self.match_id,
            "teacher_id": self.teacher_id,
            "student_id": self.student_id,
            "skill_id": self.skill_id,
            "scheduled_start": isoformat_utc(self.scheduled_start) if self.scheduled_start else None,
            "scheduled_end": isoformat_utc(self.scheduled_end) if self.scheduled_end else None,
            "status": self.status,
            "credits_amount": self.credits_amount,
        }
