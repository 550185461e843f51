# backend/app/repositories/reservation_repository.py
"""
Reservation Repository for SkillSwap

Data access for the teacher calendar: the per-teacher lock row and the slot
reservations whose intervals are checked for overlap.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.calendar import (
    OCCUPYING_RESERVATION_STATUSES,
    ReservationStatus,
    SlotReservation,
    TeacherCalendar,
)
from ._upsert import insert_if_missing
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ReservationRepository(BaseRepository[SlotReservation]):
    """Repository for teacher calendars and slot reservations."""

    def __init__(self, db: Session):
        super().__init__(db, SlotReservation)
        self.logger = logging.getLogger(__name__)

    def lock_calendar(self, teacher_id: str) -> TeacherCalendar:
        """Ensure the teacher's calendar row exists and lock it until the transaction ends."""
        try:
            insert_if_missing(self.db, TeacherCalendar, "teacher_id", {"teacher_id": teacher_id})
            calendar = (
                self.db.query(TeacherCalendar)
                .filter(TeacherCalendar.teacher_id == teacher_id)
                .with_for_update()
                .one()
            )
            return cast(TeacherCalendar, calendar)
        except Exception as e:
            self.logger.error(f"Error locking calendar for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock teacher calendar: {str(e)}")

    def find_overlapping(
        self,
        teacher_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> List[SlotReservation]:
        """
        Reservations occupying the teacher's calendar that intersect [start, end).

        Two half-open intervals overlap when ``existing.start < end`` and
        ``start < existing.end``; back-to-back slots do not conflict.
        """
        try:
            query = self.db.query(SlotReservation).filter(
                SlotReservation.teacher_id == teacher_id,
                SlotReservation.status.in_(OCCUPYING_RESERVATION_STATUSES),
                SlotReservation.start_time < end,
                SlotReservation.end_time > start,
            )
            if exclude_session_id:
                query = query.filter(SlotReservation.session_id != exclude_session_id)
            return cast(List[SlotReservation], query.order_by(SlotReservation.start_time).all())
        except Exception as e:
            self.logger.error(f"Error checking overlaps for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to check reservation overlaps: {str(e)}")

    def get_by_session_id(
        self, session_id: str, *, for_update: bool = False
    ) -> Optional[SlotReservation]:
        try:
            query = self.db.query(SlotReservation).filter(
                SlotReservation.session_id == session_id
            )
            if for_update:
                query = query.with_for_update().populate_existing()
            return cast(Optional[SlotReservation], query.first())
        except Exception as e:
            self.logger.error(f"Error loading reservation for session {session_id}: {str(e)}")
            raise RepositoryException(f"Failed to load reservation: {str(e)}")

    def get_stale_held(self, created_before: datetime, limit: int = 100) -> List[SlotReservation]:
        """Held reservations older than ``created_before``, oldest first."""
        try:
            return cast(
                List[SlotReservation],
                self.db.query(SlotReservation)
                .filter(
                    SlotReservation.status == ReservationStatus.HELD.value,
                    SlotReservation.created_at < created_before,
                )
                .order_by(SlotReservation.created_at.asc())
                .limit(limit)
                .all(),
            )
        except Exception as e:
            self.logger.error(f"Error listing stale reservations: {str(e)}")
            raise RepositoryException(f"Failed to list stale reservations: {str(e)}")
