"""
SessionStateMachine: lifecycle transitions for skill sessions.

    scheduled -> in_progress -> completed
    scheduled -> cancelled

Every transition runs under the session's keyed lock and a row lock on the
session, re-validates the current status inside that critical section and
performs its ledger and calendar side effects in the same transaction, so a
session is settled or refunded at most once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    CannotCancelSessionException,
    InvalidSessionStatusException,
    InvalidStartTimeException,
    SessionNotFoundException,
    UnauthorizedSessionAccessException,
    ValidationException,
)
from app.core.keyed_lock import KeyedLockRegistry, session_locks
from app.core.ulid_helper import generate_ulid
from app.models.credit import TransactionType
from app.models.session import SessionStatus, SkillSession
from app.monitoring.prometheus_metrics import prometheus_metrics
from app.repositories.factory import RepositoryFactory
from app.utils.time_helpers import ensure_utc, isoformat_utc

from .base import BaseService
from .conflict_guard import ConflictGuard, PendingBooking, ReservationToken
from .ledger_service import LedgerService
from .refund_policy import RefundDecision, RefundPolicy

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    SessionStatus.SCHEDULED.value: frozenset(
        {SessionStatus.IN_PROGRESS.value, SessionStatus.CANCELLED.value}
    ),
    SessionStatus.IN_PROGRESS.value: frozenset({SessionStatus.COMPLETED.value}),
    SessionStatus.COMPLETED.value: frozenset(),
    SessionStatus.CANCELLED.value: frozenset(),
}


def participation_bonus(credits_amount: int, rate: Optional[float] = None) -> int:
    """Credits minted for the student on completion, rounded half up."""
    effective_rate = settings.participation_rate if rate is None else rate
    bonus = (Decimal(credits_amount) * Decimal(str(effective_rate))).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(bonus)


@dataclass(frozen=True)
class BookingRequest:
    match_id: str
    teacher_id: str
    student_id: str
    skill_id: str
    scheduled_start: datetime
    scheduled_end: datetime
    credits_amount: int


@dataclass(frozen=True)
class CompletionResult:
    session: SkillSession
    teacher_credits: int
    participation_bonus: int


@dataclass(frozen=True)
class CancellationResult:
    session: SkillSession
    refund: RefundDecision


class SessionStateMachine(BaseService):
    """Owns session status changes and the ledger/calendar effects tied to them."""

    def __init__(
        self,
        db: Session,
        *,
        ledger: Optional[LedgerService] = None,
        conflict_guard: Optional[ConflictGuard] = None,
        refund_policy: Optional[RefundPolicy] = None,
        locks: Optional[KeyedLockRegistry] = None,
    ):
        super().__init__(db)
        self.session_repository = RepositoryFactory.create_session_repository(db)
        self.ledger = ledger or LedgerService(db)
        self.conflict_guard = conflict_guard or ConflictGuard(db)
        self.refund_policy = refund_policy or RefundPolicy()
        self.locks = locks or session_locks

    # Helpers

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _require_transition(self, session: SkillSession, target: str, action: str) -> None:
        if target not in ALLOWED_TRANSITIONS.get(session.status, frozenset()):
            raise InvalidSessionStatusException(
                session_id=session.id, current=session.status, action=action
            )

    @staticmethod
    def _require_participant(session: SkillSession, caller_id: str) -> None:
        if not session.is_participant(caller_id):
            raise UnauthorizedSessionAccessException(
                details={"session_id": session.id, "user_id": caller_id}
            )

    def _load(self, session_id: str, *, for_update: bool = False) -> SkillSession:
        session = self.session_repository.get_by_id(session_id, for_update=for_update)
        if session is None:
            raise SessionNotFoundException(session_id)
        return session

    def start_window(self, session: SkillSession) -> tuple[datetime, datetime]:
        opens = ensure_utc(session.scheduled_start) - timedelta(
            minutes=settings.session_start_early_minutes
        )
        closes = ensure_utc(session.scheduled_end)
        return opens, closes

    def _require_start_window(self, session: SkillSession, now: datetime) -> None:
        opens, closes = self.start_window(session)
        if now < opens or now > closes:
            raise InvalidStartTimeException(
                session_id=session.id,
                window_opens=isoformat_utc(opens),
                window_closes=isoformat_utc(closes),
            )

    def _validate_booking(self, request: BookingRequest, now: datetime) -> tuple[datetime, datetime]:
        start = ensure_utc(request.scheduled_start)
        end = ensure_utc(request.scheduled_end)

        if request.teacher_id == request.student_id:
            raise ValidationException("Teacher and student must be different users")
        if end <= start:
            raise ValidationException("Session end time must be after start time")
        if start <= now:
            raise ValidationException(
                "Session must be scheduled in the future",
                details={"scheduled_start": isoformat_utc(start)},
            )

        duration_minutes = (end - start).total_seconds() / 60
        if not (
            settings.session_min_duration_minutes
            <= duration_minutes
            <= settings.session_max_duration_minutes
        ):
            raise ValidationException(
                f"Session duration must be between {settings.session_min_duration_minutes} "
                f"and {settings.session_max_duration_minutes} minutes",
                details={"duration_minutes": duration_minutes},
            )

        credits = request.credits_amount
        if isinstance(credits, bool) or not isinstance(credits, int) or credits < 1:
            raise ValidationException(
                "Credits amount must be a positive integer", details={"credits_amount": credits}
            )
        return start, end

    # Transitions

    @BaseService.measure_operation("schedule_session")
    def schedule(self, request: BookingRequest) -> SkillSession:
        """
        Reserve the teacher's slot, escrow the student's credits and persist the session.

        The caller has already authorized the request against the match.
        If escrow fails after the slot is held, the hold is released before the
        error propagates.
        """
        start, end = self._validate_booking(request, self._now())

        session_id = generate_ulid()
        pending = PendingBooking(
            match_id=request.match_id,
            student_id=request.student_id,
            skill_id=request.skill_id,
            credits_amount=request.credits_amount,
        )
        token = self.conflict_guard.reserve(
            request.teacher_id, start, end, session_id=session_id, pending=pending
        )

        try:
            session = self.finalize_reservation(token, pending)
        except Exception:
            self._abandon_reservation(token)
            raise

        return session

    def finalize_reservation(self, token: ReservationToken, pending: PendingBooking) -> SkillSession:
        """
        Escrow the credits and persist the session for a held reservation.

        Confirmation, debit and insert commit together under the student's
        ledger lock; if any of them fails the reservation stays held.
        """
        with self.ledger.locked(pending.student_id):
            with self.transaction():
                self.conflict_guard.confirm(token)
                self.ledger.debit(
                    pending.student_id,
                    pending.credits_amount,
                    token.session_id,
                    TransactionType.SPENT,
                    description=f"Credits escrowed for session: {token.session_id}",
                    use_transaction=False,
                )
                session = self.session_repository.create(
                    id=token.session_id,
                    match_id=pending.match_id,
                    teacher_id=token.teacher_id,
                    student_id=pending.student_id,
                    skill_id=pending.skill_id,
                    scheduled_start=token.start,
                    scheduled_end=token.end,
                    status=SessionStatus.SCHEDULED.value,
                    credits_amount=pending.credits_amount,
                )

        prometheus_metrics.record_session_transition("scheduled")
        self.log_operation(
            "schedule_session",
            session_id=session.id,
            teacher_id=session.teacher_id,
            student_id=session.student_id,
            credits_amount=session.credits_amount,
        )
        return session

    def _abandon_reservation(self, token: ReservationToken) -> None:
        try:
            self.conflict_guard.release(token.teacher_id, token.session_id, only_if_held=True)
        except Exception:
            # Left held; the reconciler picks it up after the grace period
            self.logger.exception(
                "Failed to release reservation after escrow failure",
                extra={"session_id": token.session_id, "teacher_id": token.teacher_id},
            )

    def check_startable(self, session_id: str, caller_id: str) -> SkillSession:
        """Validate a start without locking, ahead of room provisioning."""
        session = self._load(session_id)
        self._require_participant(session, caller_id)
        self._require_transition(session, SessionStatus.IN_PROGRESS.value, "start")
        self._require_start_window(session, self._now())
        return session

    @BaseService.measure_operation("start_session")
    def mark_started(self, session_id: str, caller_id: str, video_room_id: str) -> SkillSession:
        """Move a scheduled session to in_progress once its room exists."""
        with self.locks.hold(session_id):
            with self.transaction():
                session = self._load(session_id, for_update=True)
                self._require_participant(session, caller_id)
                self._require_transition(session, SessionStatus.IN_PROGRESS.value, "start")
                now = self._now()
                self._require_start_window(session, now)

                session.status = SessionStatus.IN_PROGRESS.value
                session.actual_start = now
                session.video_room_id = video_room_id
                self.session_repository.flush()

        prometheus_metrics.record_session_transition("started")
        self.log_operation(
            "start_session", session_id=session_id, caller_id=caller_id, room_id=video_room_id
        )
        return session

    @BaseService.measure_operation("complete_session")
    def complete(
        self, session_id: str, caller_id: str, notes: Optional[str] = None
    ) -> CompletionResult:
        """
        Complete an in-progress session and settle its credits.

        The teacher earns the escrowed amount and the student receives a newly
        minted participation bonus; the escrow debit is never reused.
        """
        with self.locks.hold(session_id):
            session = self._load(session_id)
            self._require_participant(session, caller_id)
            self._require_transition(session, SessionStatus.COMPLETED.value, "complete")
            if notes is not None and len(notes) > settings.session_notes_max_length:
                raise ValidationException(
                    f"Notes must be at most {settings.session_notes_max_length} characters"
                )

            with self.ledger.locked(session.teacher_id, session.student_id):
                with self.transaction():
                    session = self._load(session_id, for_update=True)
                    self._require_transition(session, SessionStatus.COMPLETED.value, "complete")

                    credits = session.credits_amount
                    bonus = participation_bonus(credits)

                    session.status = SessionStatus.COMPLETED.value
                    session.actual_end = self._now()
                    session.notes = notes

                    self.ledger.credit(
                        session.teacher_id,
                        credits,
                        session.id,
                        TransactionType.EARNED,
                        description=f"Credits earned from teaching session: {session.id}",
                        use_transaction=False,
                    )
                    if bonus > 0:
                        self.ledger.credit(
                            session.student_id,
                            bonus,
                            session.id,
                            TransactionType.EARNED,
                            description=f"Participation credits from session: {session.id}",
                            use_transaction=False,
                        )
                    self.conflict_guard.release(
                        session.teacher_id, session.id, use_transaction=False
                    )
                    self.session_repository.flush()

        prometheus_metrics.record_session_transition("completed")
        self.log_operation(
            "complete_session",
            session_id=session_id,
            teacher_credits=credits,
            participation_bonus=bonus,
        )
        return CompletionResult(session=session, teacher_credits=credits, participation_bonus=bonus)

    @BaseService.measure_operation("cancel_session")
    def cancel(self, session_id: str, caller_id: str, reason: str) -> CancellationResult:
        """
        Cancel a scheduled session, refunding the student per the refund policy.

        Only sessions that are still scheduled and whose start has not passed
        can be cancelled; a cancellation at the start instant forfeits the escrow.
        """
        with self.locks.hold(session_id):
            session = self._load(session_id)
            self._require_participant(session, caller_id)
            self._require_cancellable(session)

            cleaned_reason = (reason or "").strip()
            if not cleaned_reason:
                raise ValidationException("A cancellation reason is required")
            if len(cleaned_reason) > settings.cancellation_reason_max_length:
                raise ValidationException(
                    "Cancellation reason must be at most "
                    f"{settings.cancellation_reason_max_length} characters"
                )

            with self.ledger.locked(session.student_id):
                with self.transaction():
                    session = self._load(session_id, for_update=True)
                    self._require_cancellable(session)
                    now = self._now()
                    if now > ensure_utc(session.scheduled_start):
                        raise CannotCancelSessionException(
                            "Session has already started and can no longer be cancelled",
                            session_id=session.id,
                            current=session.status,
                        )

                    decision = self.refund_policy.evaluate(
                        session.scheduled_start, now, session.credits_amount
                    )
                    if decision.refund_amount > 0:
                        self.ledger.credit(
                            session.student_id,
                            decision.refund_amount,
                            session.id,
                            TransactionType.REFUNDED,
                            description=f"Refund for cancelled session: {session.id}",
                            use_transaction=False,
                        )

                    session.status = SessionStatus.CANCELLED.value
                    session.cancellation_reason = cleaned_reason
                    session.cancelled_by_id = caller_id
                    session.cancelled_at = now
                    session.refund_amount = decision.refund_amount
                    self.conflict_guard.release(
                        session.teacher_id, session.id, use_transaction=False
                    )
                    self.session_repository.flush()

        prometheus_metrics.record_session_transition("cancelled")
        self.log_operation(
            "cancel_session",
            session_id=session_id,
            cancelled_by=caller_id,
            **decision.to_payload(),
        )
        return CancellationResult(session=session, refund=decision)

    @staticmethod
    def _require_cancellable(session: SkillSession) -> None:
        if session.status != SessionStatus.SCHEDULED.value:
            raise CannotCancelSessionException(
                f"A session that is {session.status} cannot be cancelled",
                session_id=session.id,
                current=session.status,
            )
