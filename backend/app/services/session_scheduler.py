"""
SessionScheduler: the public entry point for session booking and settlement.

The scheduler authorizes callers against the match, delegates every state
change to ``SessionStateMachine`` and runs the side effects that must never
undo a committed change (notifications, reminders, profile counters) after
the commit. Room provisioning is the one collaborator whose failure is
surfaced, because a session cannot start without a room.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Callable, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    MatchNotAcceptedException,
    MatchNotFoundException,
    SessionNotFoundException,
    UnauthorizedSessionAccessException,
    ValidationException,
)
from app.models.credit import CreditTransaction
from app.models.session import SkillSession
from app.repositories.factory import RepositoryFactory

from .base import BaseService
from .ledger_service import LedgerService
from .match_directory import MatchDirectory
from .notification_service import SessionEvent, SessionNotifier, notify_participants
from .profile_counter_service import ProfileCounterService
from .room_provisioning import RoomGrant, RoomProvisioner
from .session_reminders import SessionReminderQueue
from .session_state_machine import (
    BookingRequest,
    CancellationResult,
    CompletionResult,
    SessionStateMachine,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartResult:
    session: SkillSession
    room_id: str
    join_token: str


class SessionScheduler(BaseService):
    def __init__(
        self,
        db: Session,
        *,
        match_directory: Optional[MatchDirectory] = None,
        notifier: Optional[SessionNotifier] = None,
        room_provisioner: Optional[RoomProvisioner] = None,
        profile_counters: Optional[ProfileCounterService] = None,
        reminders: Optional[SessionReminderQueue] = None,
        ledger: Optional[LedgerService] = None,
        state_machine: Optional[SessionStateMachine] = None,
    ):
        super().__init__(db)
        self.session_repository = RepositoryFactory.create_session_repository(db)
        self.match_directory = match_directory or MatchDirectory(db)
        self.notifier = notifier or SessionNotifier()
        self.room_provisioner = room_provisioner or RoomProvisioner()
        self.profile_counters = profile_counters or ProfileCounterService(db)
        self.reminders = reminders or SessionReminderQueue()
        self.ledger = ledger or LedgerService(db)
        self.state_machine = state_machine or SessionStateMachine(db, ledger=self.ledger)

    def _best_effort(self, action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Run a post-commit side effect, logging instead of raising on failure."""
        try:
            func(*args, **kwargs)
        except Exception:
            self.logger.exception("Best-effort %s failed", action, extra={"action": action})

    def _notify_participants(self, session: SkillSession, event: str, **extra: Any) -> None:
        notify_participants(self.notifier, session, event, **extra)

    # Booking

    @BaseService.measure_operation("scheduler_schedule")
    def schedule(self, caller_id: str, request: BookingRequest) -> SkillSession:
        """
        Book a session on behalf of one of the two matched users.

        Raises:
            UnauthorizedSessionAccessException: caller is neither teacher nor student
            MatchNotFoundException: match does not exist
            MatchNotAcceptedException: match is not accepted
            ValidationException: the request does not pair the match's two users
        """
        if caller_id not in (request.teacher_id, request.student_id):
            raise UnauthorizedSessionAccessException(
                "Only the teacher or the student can schedule this session",
                details={"user_id": caller_id, "match_id": request.match_id},
            )

        match = self.match_directory.get_match(request.match_id)
        if match is None:
            raise MatchNotFoundException(request.match_id)
        if not match.is_accepted:
            raise MatchNotAcceptedException(request.match_id, match.status)
        if not match.pairs(request.teacher_id, request.student_id):
            raise ValidationException(
                "Teacher and student must be the two users of the match",
                details={"match_id": request.match_id},
            )

        session = self.state_machine.schedule(request)
        self._notify_participants(session, SessionEvent.SCHEDULED)
        self._best_effort("queue_reminder", self.reminders.enqueue, session)
        return session

    # Lifecycle

    @BaseService.measure_operation("scheduler_start")
    def start(self, session_id: str, caller_id: str) -> StartResult:
        """
        Provision the video room and move the session to in_progress.

        The room is created without any lock held; the state machine re-checks
        the session afterwards. A room that ends up unused is disabled.
        """
        session = self.state_machine.check_startable(session_id, caller_id)
        role = "host" if caller_id == session.teacher_id else "guest"
        grant: RoomGrant = self.room_provisioner.create_room(session.id, caller_id, role)

        try:
            session = self.state_machine.mark_started(session_id, caller_id, grant.room_id)
        except Exception:
            self._best_effort("disable_room", self.room_provisioner.disable_room, grant.room_id)
            raise

        self._notify_participants(session, SessionEvent.STARTED)
        return StartResult(session=session, room_id=grant.room_id, join_token=grant.join_token)

    @BaseService.measure_operation("scheduler_complete")
    def complete(
        self, session_id: str, caller_id: str, notes: Optional[str] = None
    ) -> CompletionResult:
        result = self.state_machine.complete(session_id, caller_id, notes)
        session = result.session

        self._best_effort(
            "record_completion",
            self.profile_counters.record_completion,
            teacher_id=session.teacher_id,
            student_id=session.student_id,
            teacher_points=result.teacher_credits,
            student_points=result.participation_bonus,
        )
        self._notify_participants(
            session,
            SessionEvent.COMPLETED,
            teacher_credits=result.teacher_credits,
            participation_bonus=result.participation_bonus,
        )
        return result

    @BaseService.measure_operation("scheduler_cancel")
    def cancel(self, session_id: str, caller_id: str, reason: str) -> CancellationResult:
        result = self.state_machine.cancel(session_id, caller_id, reason)
        self._notify_participants(
            result.session, SessionEvent.CANCELLED, **result.refund.to_payload()
        )
        return result

    # Queries

    def get(self, session_id: str, caller_id: str) -> SkillSession:
        session = self.session_repository.get_by_id(session_id)
        if session is None:
            raise SessionNotFoundException(session_id)
        if not session.is_participant(caller_id):
            raise UnauthorizedSessionAccessException(
                details={"session_id": session_id, "user_id": caller_id}
            )
        return session

    def list_upcoming(self, user_id: str) -> List[SkillSession]:
        now = datetime.now(timezone.utc)
        return self.session_repository.get_upcoming_for_user(user_id, now)

    def list_history(self, user_id: str, limit: Optional[int] = None) -> List[SkillSession]:
        if limit is not None and not 1 <= limit <= settings.history_max_limit:
            raise ValidationException(
                f"limit must be between 1 and {settings.history_max_limit}",
                details={"limit": limit},
            )
        return self.session_repository.get_history_for_user(user_id, limit=limit)

    # Credits

    def get_balance(self, user_id: str) -> int:
        return self.ledger.get_balance(user_id)

    def get_transaction_history(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[CreditTransaction]:
        return self.ledger.get_transaction_history(user_id, limit=limit)

    def purchase_credits(self, user_id: str, amount: int, reference: str) -> CreditTransaction:
        return self.ledger.purchase_credits(user_id, amount, reference)
