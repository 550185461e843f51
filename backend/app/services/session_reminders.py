# backend/app/services/session_reminders.py
"""
Reminder collaborator: queues the Celery task that reminds both participants
shortly before a session starts.

The reminder fires ``settings.session_reminder_minutes`` before the scheduled
start. Sessions booked closer to their start than that get no reminder. The
task re-reads the session when it runs, so cancelled or started sessions are
skipped there.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from ..core.config import settings
from ..models.session import SkillSession
from ..utils.time_helpers import ensure_utc

logger = logging.getLogger(__name__)


class SessionReminderQueue:
    def __init__(self, lead_time: Optional[timedelta] = None):
        self.lead_time = (
            lead_time
            if lead_time is not None
            else timedelta(minutes=settings.session_reminder_minutes)
        )

    def reminder_time(self, session: SkillSession) -> datetime:
        return ensure_utc(session.scheduled_start) - self.lead_time

    def enqueue(self, session: SkillSession) -> bool:
        """Queue the reminder for ``session``. Returns False when it is already too late."""
        eta = self.reminder_time(session)
        if eta <= datetime.now(timezone.utc):
            logger.info(
                "Session starts too soon for a reminder",
                extra={"session_id": session.id, "reminder_at": eta.isoformat()},
            )
            return False

        from ..tasks.session_tasks import send_session_reminder

        send_session_reminder.apply_async(args=[session.id], eta=eta)
        logger.info(
            "Session reminder queued",
            extra={"session_id": session.id, "reminder_at": eta.isoformat()},
        )
        return True
