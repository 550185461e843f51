"""Celery tasks for the session booking lifecycle."""

from __future__ import annotations

from datetime import timedelta
import logging
from typing import Any, Callable, Dict, Optional, ParamSpec, Protocol, TypeVar, cast

from app.core.config import settings
from app.database import SessionLocal
from app.models.session import SessionStatus
from app.repositories.factory import RepositoryFactory
from app.services.notification_service import SessionEvent, SessionNotifier, notify_participants
from app.services.session_reconciler import SessionReconciler
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R", covariant=True)


class TaskWrapper(Protocol[P, R]):
    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> R:
        ...

    def delay(self, *args: P.args, **kwargs: P.kwargs) -> Any:
        ...

    def apply_async(self, *args: Any, **kwargs: Any) -> Any:
        ...


def typed_task(
    *task_args: Any, **task_kwargs: Any
) -> Callable[[Callable[P, R]], TaskWrapper[P, R]]:
    """Return a typed Celery task decorator for mypy."""
    return cast(
        Callable[[Callable[P, R]], TaskWrapper[P, R]],
        celery_app.task(*task_args, **task_kwargs),
    )


@typed_task(name="app.tasks.session_tasks.reconcile_orphaned_reservations", ignore_result=False)
def reconcile_orphaned_reservations(
    older_than_minutes: Optional[int] = None, limit: int = 100
) -> Dict[str, Any]:
    """Complete or release held reservations left behind by interrupted bookings."""
    db = SessionLocal()
    try:
        older_than = (
            timedelta(minutes=older_than_minutes) if older_than_minutes is not None else None
        )
        report = SessionReconciler(db).reconcile(older_than=older_than, limit=limit)
        return report.to_dict()
    finally:
        db.close()


@typed_task(name="app.tasks.session_tasks.send_session_reminder", ignore_result=False)
def send_session_reminder(session_id: str) -> Dict[str, Any]:
    """
    Remind the teacher and the student that their session starts soon.

    Queued with an ETA at booking time; sessions that were cancelled or have
    already started by then are skipped.
    """
    db = SessionLocal()
    try:
        session = RepositoryFactory.create_session_repository(db).get_by_id(session_id)
        if session is None:
            logger.warning("Reminder for unknown session %s", session_id)
            return {"status": "skipped", "session_id": session_id, "reason": "not_found"}
        if session.status != SessionStatus.SCHEDULED.value:
            return {"status": "skipped", "session_id": session_id, "reason": session.status}

        delivered = notify_participants(
            SessionNotifier(),
            session,
            SessionEvent.REMINDER,
            minutes_before_start=settings.session_reminder_minutes,
        )
        return {
            "status": "sent",
            "session_id": session_id,
            "teacher_notified": delivered["teacher"],
            "student_notified": delivered["student"],
        }
    finally:
        db.close()
