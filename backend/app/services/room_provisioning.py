"""Room-provisioning collaborator backed by the 100ms client."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Optional, Union

from app.core.config import settings
from app.core.exceptions import RoomProvisioningException
from app.integrations.hundredms_client import FakeHundredMsClient, HundredMsClient, HundredMsError
from app.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

VideoClient = Union[HundredMsClient, FakeHundredMsClient]


@dataclass(frozen=True)
class RoomGrant:
    room_id: str
    join_token: str


def build_video_client() -> VideoClient:
    """Real 100ms client when enabled and configured, otherwise the in-memory fake."""
    if settings.hundredms_enabled:
        if not settings.hundredms_access_key or settings.hundredms_app_secret is None:
            raise RuntimeError("HUNDREDMS_ACCESS_KEY and HUNDREDMS_APP_SECRET are required")
        return HundredMsClient(
            access_key=settings.hundredms_access_key,
            app_secret=settings.hundredms_app_secret,
            base_url=settings.hundredms_base_url,
            template_id=settings.hundredms_template_id,
            timeout=settings.collaborator_timeout_seconds,
        )
    return FakeHundredMsClient()


class RoomProvisioner:
    """Creates the video room a session runs in and the caller's join token."""

    collaborator_name = "room_provisioning"

    def __init__(self, client: Optional[VideoClient] = None) -> None:
        self.client = client or build_video_client()

    def create_room(self, session_id: str, user_id: str, role: str = "host") -> RoomGrant:
        started = time.monotonic()
        try:
            room = self.client.create_room(name=f"session-{session_id}")
            room_id = room.get("id")
            if not isinstance(room_id, str) or not room_id:
                raise RoomProvisioningException(
                    "Video room creation returned no room id",
                    details={"session_id": session_id},
                )
            token = self.client.generate_auth_token(room_id=room_id, user_id=user_id, role=role)
        except HundredMsError as e:
            prometheus_metrics.record_collaborator_call(
                self.collaborator_name, "error", time.monotonic() - started
            )
            logger.error(
                "Room provisioning failed for session %s: %s",
                session_id,
                e.message,
                extra={"status_code": e.status_code},
            )
            raise RoomProvisioningException(
                f"Video room provisioning failed: {e.message}",
                details={"session_id": session_id, "status_code": e.status_code},
            ) from e

        prometheus_metrics.record_collaborator_call(
            self.collaborator_name, "success", time.monotonic() - started
        )
        return RoomGrant(room_id=room_id, join_token=token)

    def disable_room(self, room_id: str) -> None:
        """Best-effort teardown of a room that ended up unused."""
        try:
            self.client.disable_room(room_id)
        except HundredMsError as cleanup_error:
            logger.warning(
                "Best-effort room disable failed for room %s: %s",
                room_id,
                cleanup_error.message,
                extra={"status_code": cleanup_error.status_code},
            )
