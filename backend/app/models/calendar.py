# backend/app/models/calendar.py
"""Teacher calendar lock rows and the slot reservations that occupy them."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReservationStatus(str, Enum):
    HELD = "held"  # slot taken, escrow not yet recorded
    CONFIRMED = "confirmed"  # session persisted and escrow debited
    RELEASED = "released"  # freed by a terminal session or a failed booking


OCCUPYING_RESERVATION_STATUSES = (ReservationStatus.HELD.value, ReservationStatus.CONFIRMED.value)


class TeacherCalendar(Base):
    """One row per teacher; locked while a booking attempt scans and writes the calendar."""

    __tablename__ = "teacher_calendars"

    teacher_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class SlotReservation(Base):
    """
    An interval on a teacher's calendar.

    The pending booking payload is stored alongside the interval so a held
    reservation left behind by a crashed request can be finished or released.
    """

    __tablename__ = "slot_reservations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    teacher_id: Mapped[str] = mapped_column(String(26), nullable=False)
    session_id: Mapped[str] = mapped_column(String(26), nullable=False, unique=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReservationStatus.HELD.value
    )

    # Pending booking payload
    match_id: Mapped[str] = mapped_column(String(26), nullable=False)
    student_id: Mapped[str] = mapped_column(String(26), nullable=False)
    skill_id: Mapped[str] = mapped_column(String(26), nullable=False)
    credits_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('held', 'confirmed', 'released')",
            name="ck_slot_reservations_status",
        ),
        CheckConstraint("end_time > start_time", name="ck_slot_reservations_time_order"),
        Index("ix_slot_reservations_teacher_status", "teacher_id", "status"),
        Index("ix_slot_reservations_status_created_at", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SlotReservation {self.id} teacher={self.teacher_id} session={self.session_id} "
            f"{self.start_time}-{self.end_time} status={self.status}>"
        )
