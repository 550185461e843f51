"""
ConflictGuard: atomic reservation of a teacher's time slots.

A booking attempt takes the teacher's keyed lock, then a row lock on the
teacher's ``teacher_calendars`` row, scans the reservations that still occupy
the calendar and inserts its own ``held`` reservation before committing. The
overlap check and the insert are therefore one serialized unit for every
caller in this process and, through the row lock, across processes on
PostgreSQL.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import SchedulingConflictException, ValidationException
from app.core.keyed_lock import KeyedLockRegistry, teacher_calendar_locks
from app.models.calendar import ReservationStatus, SlotReservation
from app.monitoring.prometheus_metrics import prometheus_metrics
from app.repositories.factory import RepositoryFactory
from app.utils.time_helpers import ensure_utc, isoformat_utc

from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingBooking:
    """What the booking attempt still has to persist once the slot is held."""

    match_id: str
    student_id: str
    skill_id: str
    credits_amount: int

    @classmethod
    def from_reservation(cls, reservation: SlotReservation) -> "PendingBooking":
        return cls(
            match_id=reservation.match_id,
            student_id=reservation.student_id,
            skill_id=reservation.skill_id,
            credits_amount=reservation.credits_amount,
        )


@dataclass(frozen=True)
class ReservationToken:
    reservation_id: str
    teacher_id: str
    session_id: str
    start: datetime
    end: datetime

    @classmethod
    def from_reservation(cls, reservation: SlotReservation) -> "ReservationToken":
        return cls(
            reservation_id=reservation.id,
            teacher_id=reservation.teacher_id,
            session_id=reservation.session_id,
            start=ensure_utc(reservation.start_time),
            end=ensure_utc(reservation.end_time),
        )


class ConflictGuard(BaseService):
    """Serializes booking attempts per teacher so overlapping windows cannot both succeed."""

    def __init__(self, db: Session, calendar_locks: Optional[KeyedLockRegistry] = None):
        super().__init__(db)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)
        self.calendar_locks = calendar_locks or teacher_calendar_locks

    @BaseService.measure_operation("reserve_slot")
    def reserve(
        self,
        teacher_id: str,
        start: datetime,
        end: datetime,
        *,
        session_id: str,
        pending: PendingBooking,
    ) -> ReservationToken:
        """
        Hold [start, end) on the teacher's calendar for ``session_id``.

        Raises:
            SchedulingConflictException: another held or confirmed reservation overlaps
        """
        start_utc = ensure_utc(start)
        end_utc = ensure_utc(end)
        if end_utc <= start_utc:
            raise ValidationException("Session end time must be after start time")

        with self.calendar_locks.hold(teacher_id):
            with self.transaction():
                self.reservation_repository.lock_calendar(teacher_id)
                conflicts = self.reservation_repository.find_overlapping(
                    teacher_id, start_utc, end_utc
                )
                if conflicts:
                    details = {
                        "teacher_id": teacher_id,
                        "requested_start": isoformat_utc(start_utc),
                        "requested_end": isoformat_utc(end_utc),
                        "conflicting_session_ids": [c.session_id for c in conflicts],
                    }
                    prometheus_metrics.record_scheduling_conflict()
                    self.logger.info("Scheduling conflict for teacher", extra=details)
                    raise SchedulingConflictException(details=details)

                reservation = self.reservation_repository.create(
                    teacher_id=teacher_id,
                    session_id=session_id,
                    start_time=start_utc,
                    end_time=end_utc,
                    status=ReservationStatus.HELD.value,
                    match_id=pending.match_id,
                    student_id=pending.student_id,
                    skill_id=pending.skill_id,
                    credits_amount=pending.credits_amount,
                )
                token = ReservationToken(
                    reservation_id=reservation.id,
                    teacher_id=teacher_id,
                    session_id=session_id,
                    start=start_utc,
                    end=end_utc,
                )

        self.log_operation(
            "reserve_slot",
            teacher_id=teacher_id,
            session_id=session_id,
            reservation_id=token.reservation_id,
        )
        return token

    def confirm(self, token: ReservationToken) -> SlotReservation:
        """
        Mark a held reservation confirmed inside the caller's transaction.

        Raises:
            SchedulingConflictException: the reservation was released in the meantime
        """
        reservation = self.reservation_repository.get_by_session_id(
            token.session_id, for_update=True
        )
        if reservation is None or reservation.status != ReservationStatus.HELD.value:
            raise SchedulingConflictException(
                "The reserved time slot is no longer held",
                details={
                    "session_id": token.session_id,
                    "status": reservation.status if reservation is not None else None,
                },
            )
        reservation.status = ReservationStatus.CONFIRMED.value
        reservation.resolved_at = datetime.now(timezone.utc)
        self.reservation_repository.flush()
        return reservation

    def release(
        self,
        teacher_id: str,
        session_id: str,
        *,
        only_if_held: bool = False,
        use_transaction: bool = True,
    ) -> bool:
        """
        Free the slot held for ``session_id``. Returns False when there was nothing to free.

        ``only_if_held`` leaves confirmed reservations alone; failed booking
        attempts use it so they never free a slot that another path finished.
        """

        def _release() -> bool:
            reservation = self.reservation_repository.get_by_session_id(
                session_id, for_update=True
            )
            if reservation is None or reservation.status == ReservationStatus.RELEASED.value:
                return False
            if reservation.teacher_id != teacher_id:
                raise ValidationException(
                    "Reservation does not belong to this teacher",
                    details={"session_id": session_id, "teacher_id": teacher_id},
                )
            if only_if_held and reservation.status != ReservationStatus.HELD.value:
                return False
            reservation.status = ReservationStatus.RELEASED.value
            reservation.resolved_at = datetime.now(timezone.utc)
            self.reservation_repository.flush()
            return True

        if use_transaction:
            with self.transaction():
                released = _release()
        else:
            released = _release()

        if released:
            self.log_operation("release_slot", teacher_id=teacher_id, session_id=session_id)
        return released

    def find_conflicts(
        self,
        teacher_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> List[SlotReservation]:
        """Read-only overlap check; does not reserve anything."""
        return self.reservation_repository.find_overlapping(
            teacher_id, ensure_utc(start), ensure_utc(end), exclude_session_id=exclude_session_id
        )
