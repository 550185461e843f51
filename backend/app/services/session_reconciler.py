"""
Recovery for slot reservations orphaned by an interrupted booking.

A booking holds the slot first and escrows the credits second. If the process
dies in between, the reservation stays ``held`` and keeps the slot occupied.
The reconciler finishes such bookings when they are still viable and frees
the slot otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import DomainException
from app.models.calendar import SlotReservation
from app.models.session import SkillSession
from app.monitoring.prometheus_metrics import prometheus_metrics
from app.repositories.factory import RepositoryFactory

from .base import BaseService
from .conflict_guard import ConflictGuard, PendingBooking, ReservationToken
from .ledger_service import LedgerService
from .match_directory import MatchDirectory
from .notification_service import SessionEvent, SessionNotifier, notify_participants
from .session_reminders import SessionReminderQueue
from .session_state_machine import SessionStateMachine

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    completed: List[str] = field(default_factory=list)
    released: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def examined(self) -> int:
        return len(self.completed) + len(self.released) + len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "examined": self.examined,
            "completed": list(self.completed),
            "released": list(self.released),
            "failed": list(self.failed),
        }


class SessionReconciler(BaseService):
    def __init__(
        self,
        db: Session,
        *,
        ledger: Optional[LedgerService] = None,
        conflict_guard: Optional[ConflictGuard] = None,
        state_machine: Optional[SessionStateMachine] = None,
        match_directory: Optional[MatchDirectory] = None,
        notifier: Optional[SessionNotifier] = None,
        reminders: Optional[SessionReminderQueue] = None,
    ):
        super().__init__(db)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)
        self.ledger = ledger or LedgerService(db)
        self.conflict_guard = conflict_guard or ConflictGuard(db)
        self.state_machine = state_machine or SessionStateMachine(
            db, ledger=self.ledger, conflict_guard=self.conflict_guard
        )
        self.match_directory = match_directory or MatchDirectory(db)
        self.notifier = notifier or SessionNotifier()
        self.reminders = reminders or SessionReminderQueue()

    @BaseService.measure_operation("reconcile_reservations")
    def reconcile(
        self, older_than: Optional[timedelta] = None, limit: int = 100
    ) -> ReconciliationReport:
        """Resolve held reservations older than ``older_than`` (default: the grace period)."""
        grace = (
            older_than
            if older_than is not None
            else timedelta(minutes=settings.reservation_grace_minutes)
        )
        now = datetime.now(timezone.utc)
        report = ReconciliationReport()

        stale = self.reservation_repository.get_stale_held(now - grace, limit=limit)
        for reservation in stale:
            session_id = reservation.session_id
            try:
                outcome = self._resolve(reservation, now)
            except Exception:
                self.logger.exception(
                    "Failed to reconcile reservation", extra={"session_id": session_id}
                )
                self.db.rollback()
                report.failed.append(session_id)
                prometheus_metrics.record_reconciliation("failed")
                continue

            if outcome == "completed":
                report.completed.append(session_id)
            elif outcome == "released":
                report.released.append(session_id)
            else:
                continue
            prometheus_metrics.record_reconciliation(outcome)

        if report.examined:
            self.logger.info("Reservation reconciliation finished", extra=report.to_dict())
        return report

    def _resolve(self, reservation: SlotReservation, now: datetime) -> Optional[str]:
        token = ReservationToken.from_reservation(reservation)
        pending = PendingBooking.from_reservation(reservation)

        if self._is_viable(token, pending, now):
            try:
                session = self.state_machine.finalize_reservation(token, pending)
            except DomainException as e:
                # Balance or reservation changed since the check above
                self.logger.info(
                    "Orphaned booking could not be finalized: %s",
                    e.message,
                    extra={"session_id": token.session_id, "code": e.code},
                )
            else:
                self._announce(session)
                return "completed"

        released = self.conflict_guard.release(
            token.teacher_id, token.session_id, only_if_held=True
        )
        return "released" if released else None

    def _is_viable(self, token: ReservationToken, pending: PendingBooking, now: datetime) -> bool:
        if token.start <= now:
            return False
        match = self.match_directory.get_match(pending.match_id)
        if (
            match is None
            or not match.is_accepted
            or not match.pairs(token.teacher_id, pending.student_id)
        ):
            self.logger.info(
                "Orphaned booking's match is no longer bookable",
                extra={
                    "session_id": token.session_id,
                    "match_id": pending.match_id,
                    "match_status": match.status if match else None,
                },
            )
            return False
        return self.ledger.get_balance(pending.student_id) >= pending.credits_amount

    def _announce(self, session: SkillSession) -> None:
        """Tell both users about a booking the reconciler finished on their behalf."""
        notify_participants(self.notifier, session, SessionEvent.SCHEDULED, recovered=True)
        try:
            self.reminders.enqueue(session)
        except Exception:
            self.logger.exception(
                "Failed to queue reminder for recovered booking",
                extra={"session_id": session.id},
            )
