# backend/app/services/notification_service.py
"""
Session notifications for SkillSwap.

Notifications are fire-and-forget: every event is logged, and when a webhook
endpoint is configured it is POSTed there with a bounded timeout. Delivery
failures are logged and counted and never propagate to the caller.
"""

from datetime import datetime, timezone
import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


class SessionEvent:
    SCHEDULED = "session.scheduled"
    STARTED = "session.started"
    COMPLETED = "session.completed"
    CANCELLED = "session.cancelled"
    REMINDER = "session.reminder"


class SessionNotifier:
    """Dispatches session lifecycle events to participants."""

    collaborator_name = "notifications"

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.webhook_url = webhook_url if webhook_url is not None else settings.notifications_webhook_url
        self.timeout = timeout if timeout is not None else settings.collaborator_timeout_seconds
        self._client = client

    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> bool:
        """
        Send ``event`` to ``user_id``. Returns True when delivered (or logged only).

        Never raises on delivery problems.
        """
        logger.info(
            "Session notification",
            extra={"user_id": user_id, "event": event, "session_id": payload.get("id")},
        )
        if not self.webhook_url:
            return True

        body = {
            "user_id": user_id,
            "event": event,
            "payload": payload,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        started = time.monotonic()
        try:
            if self._client is not None:
                response = self._client.post(self.webhook_url, json=body, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.webhook_url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            prometheus_metrics.record_collaborator_call(
                self.collaborator_name, "error", time.monotonic() - started
            )
            logger.warning(
                "Notification delivery failed for %s (%s): %s",
                user_id,
                event,
                exc,
                extra={"webhook_url": self.webhook_url},
            )
            return False

        prometheus_metrics.record_collaborator_call(
            self.collaborator_name, "success", time.monotonic() - started
        )
        return True


def notify_participants(
    notifier: SessionNotifier, session: Any, event: str, **extra: Any
) -> Dict[str, bool]:
    """
    Send ``event`` to the teacher and the student of ``session``.

    Returns delivery per role. A notifier that raises counts as not delivered.
    """
    payload: Dict[str, Any] = {**session.to_dict(), **extra}
    delivered: Dict[str, bool] = {}
    for role, user_id in (("teacher", session.teacher_id), ("student", session.student_id)):
        try:
            delivered[role] = bool(notifier.notify(user_id, event, {**payload, "role": role}))
        except Exception:
            logger.exception(
                "Notification dispatch failed",
                extra={"user_id": user_id, "event": event, "session_id": session.id},
            )
            delivered[role] = False
    return delivered
