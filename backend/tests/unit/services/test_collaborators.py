"""Notification, room provisioning, match lookup and profile counters."""

from __future__ import annotations

import json
from typing import Any

import httpx
import jwt
import pytest
from sqlalchemy.orm import Session

from app.core.exceptions import RoomProvisioningException
from app.core.ulid_helper import generate_ulid
from app.integrations.hundredms_client import FakeHundredMsClient, HundredMsClient, HundredMsError
from app.models.match import MatchStatus
from app.services.match_directory import MatchDirectory
from app.services.notification_service import SessionEvent, SessionNotifier
from app.services.profile_counter_service import ProfileCounterService
from app.services.room_provisioning import RoomProvisioner
from tests.factories import create_match

WEBHOOK = "https://hooks.skillswap.test/sessions"


def _client(handler) -> httpx.Client:  # type: ignore[no-untyped-def]
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestSessionNotifier:
    def test_posts_event_to_webhook(self) -> None:
        received: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(202)

        notifier = SessionNotifier(WEBHOOK, client=_client(handler))

        assert notifier.notify("user-1", SessionEvent.SCHEDULED, {"id": "s-1"}) is True
        assert received[0]["user_id"] == "user-1"
        assert received[0]["event"] == "session.scheduled"
        assert received[0]["payload"] == {"id": "s-1"}
        assert "sent_at" in received[0]

    def test_delivery_errors_are_swallowed(self) -> None:
        notifier = SessionNotifier(
            WEBHOOK, client=_client(lambda request: httpx.Response(500))
        )

        assert notifier.notify("user-1", SessionEvent.CANCELLED, {"id": "s-1"}) is False

    def test_transport_errors_are_swallowed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        notifier = SessionNotifier(WEBHOOK, client=_client(handler))

        assert notifier.notify("user-1", SessionEvent.STARTED, {"id": "s-1"}) is False

    def test_without_webhook_only_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        notifier = SessionNotifier("")

        with caplog.at_level("INFO", logger="app.services.notification_service"):
            assert notifier.notify("user-1", SessionEvent.COMPLETED, {"id": "s-1"}) is True
        assert "Session notification" in caplog.text


class TestRoomProvisioner:
    def test_creates_named_room_and_token(self) -> None:
        fake = FakeHundredMsClient()

        grant = RoomProvisioner(client=fake).create_room("S1", "user-1", role="guest")

        assert fake.calls[0] == {"method": "create_room", "name": "session-S1"}
        assert fake.calls[1]["role"] == "guest"
        assert grant.join_token == f"fake_auth_token_{grant.room_id}_user-1"

    def test_upstream_error_becomes_domain_error(self) -> None:
        fake = FakeHundredMsClient()
        fake.set_error("generate_auth_token", HundredMsError("bad role", 400))

        with pytest.raises(RoomProvisioningException) as exc_info:
            RoomProvisioner(client=fake).create_room("S1", "user-1")

        assert exc_info.value.details == {"session_id": "S1", "status_code": 400}

    def test_missing_room_id_is_an_error(self) -> None:
        class NoIdClient(FakeHundredMsClient):
            def create_room(self, *, name: str, description: str | None = None) -> dict[str, Any]:
                return {"name": name}

        with pytest.raises(RoomProvisioningException):
            RoomProvisioner(client=NoIdClient()).create_room("S1", "user-1")

    def test_disable_room_is_best_effort(self) -> None:
        fake = FakeHundredMsClient()
        fake.set_error("disable_room", HundredMsError("gone", 404))

        RoomProvisioner(client=fake).disable_room("room-1")

        assert fake.calls == [{"method": "disable_room", "room_id": "room-1"}]


class TestHundredMsClient:
    SECRET = "test-app-secret"

    def _client(self, handler) -> HundredMsClient:  # type: ignore[no-untyped-def]
        return HundredMsClient(
            access_key="access-key",
            app_secret=self.SECRET,
            base_url="https://api.100ms.test/v2/",
            template_id="tmpl-1",
            transport=httpx.MockTransport(handler),
        )

    def test_create_room_posts_with_management_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "room-42", "name": "session-S1"})

        room = self._client(handler).create_room(name="session-S1")

        assert room["id"] == "room-42"
        request = seen[0]
        assert str(request.url) == "https://api.100ms.test/v2/rooms"
        assert json.loads(request.content) == {"name": "session-S1", "template_id": "tmpl-1"}
        token = request.headers["Authorization"].removeprefix("Bearer ")
        claims = jwt.decode(token, self.SECRET, algorithms=["HS256"])
        assert claims["type"] == "management"
        assert claims["access_key"] == "access-key"

    def test_management_token_is_reused(self) -> None:
        tokens: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            tokens.append(request.headers["Authorization"])
            return httpx.Response(200, json={"id": "room"})

        client = self._client(handler)
        client.create_room(name="a")
        client.disable_room("room")

        assert tokens[0] == tokens[1]

    def test_error_responses_raise(self) -> None:
        client = self._client(
            lambda request: httpx.Response(403, json={"message": "forbidden", "details": ["x"]})
        )

        with pytest.raises(HundredMsError) as exc_info:
            client.create_room(name="session-S1")

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "forbidden"
        assert exc_info.value.details == ["x"]

    def test_unreachable_api_raises_without_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(HundredMsError) as exc_info:
            self._client(handler).disable_room("room-1")

        assert exc_info.value.status_code is None

    def test_join_token_claims(self) -> None:
        client = self._client(lambda request: httpx.Response(500))

        token = client.generate_auth_token(room_id="room-1", user_id="user-1", role="host")

        claims = jwt.decode(token, self.SECRET, algorithms=["HS256"])
        assert (claims["type"], claims["room_id"], claims["user_id"], claims["role"]) == (
            "app",
            "room-1",
            "user-1",
            "host",
        )
        assert claims["exp"] - claims["iat"] == 3600


class TestMatchDirectory:
    def test_resolves_match(self, db: Session, teacher_id: str, student_id: str) -> None:
        match = create_match(db, teacher_id, student_id, status=MatchStatus.PENDING.value)

        info = MatchDirectory(db).get_match(match.id)

        assert info is not None
        assert info.is_accepted is False
        assert info.pairs(student_id, teacher_id)
        assert not info.pairs(teacher_id, generate_ulid())

    def test_unknown_match(self, db: Session) -> None:
        assert MatchDirectory(db).get_match(generate_ulid()) is None


class TestProfileCounterService:
    def test_counters_accumulate(self, db: Session, teacher_id: str, student_id: str) -> None:
        counters = ProfileCounterService(db)

        counters.record_completion(
            teacher_id=teacher_id, student_id=student_id, teacher_points=20, student_points=4
        )
        counters.record_completion(
            teacher_id=teacher_id, student_id=student_id, teacher_points=10, student_points=2
        )

        teacher = counters.get_stats(teacher_id)
        student = counters.get_stats(student_id)
        assert (teacher.sessions_taught, teacher.sessions_completed, teacher.skill_points) == (2, 0, 30)
        assert (student.sessions_taught, student.sessions_completed, student.skill_points) == (0, 2, 6)

    def test_unknown_user_has_no_stats(self, db: Session) -> None:
        assert ProfileCounterService(db).get_stats(generate_ulid()) is None
