"""
SessionScheduler: authorization against the match, collaborator side effects
and the read paths exposed to the API.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy.orm import Session

from app.core.exceptions import (
    InvalidStartTimeException,
    MatchNotAcceptedException,
    MatchNotFoundException,
    RoomProvisioningException,
    SessionNotFoundException,
    UnauthorizedSessionAccessException,
    ValidationException,
)
from app.core.ulid_helper import generate_ulid
from app.integrations.hundredms_client import FakeHundredMsClient, HundredMsError
from app.models.match import MatchStatus, SkillMatch
from app.models.session import SessionStatus, SkillSession
from app.services.notification_service import SessionEvent
from app.services.profile_counter_service import ProfileCounterService
from app.services.room_provisioning import RoomProvisioner
from app.services.session_scheduler import SessionScheduler
from app.services.session_state_machine import SessionStateMachine
from app.utils.time_helpers import ensure_utc
from tests.factories import create_match, freeze_time, make_request

STATE_MACHINE = "app.services.session_state_machine"


@pytest.fixture
def funded_match(accepted_match: SkillMatch, fund) -> SkillMatch:
    fund(accepted_match.student_id, 100)
    return accepted_match


def _in_start_window(monkeypatch: pytest.MonkeyPatch, session: SkillSession) -> None:
    freeze_time(monkeypatch, STATE_MACHINE, ensure_utc(session.scheduled_start))


def _events(notifier: Mock) -> list[tuple[str, str]]:
    return [(c.args[0], c.args[1]) for c in notifier.notify.call_args_list]


# Scheduling


def test_schedule_notifies_both_participants(
    scheduler: SessionScheduler, notifier: Mock, funded_match: SkillMatch
) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))

    assert session.status == SessionStatus.SCHEDULED.value
    assert _events(notifier) == [
        (funded_match.teacher_id, SessionEvent.SCHEDULED),
        (funded_match.student_id, SessionEvent.SCHEDULED),
    ]
    payload = notifier.notify.call_args.args[2]
    assert payload["id"] == session.id
    assert payload["credits_amount"] == 20


def test_outsider_cannot_schedule(scheduler: SessionScheduler, funded_match: SkillMatch) -> None:
    with pytest.raises(UnauthorizedSessionAccessException):
        scheduler.schedule(generate_ulid(), make_request(funded_match))


def test_unknown_match_is_rejected(
    scheduler: SessionScheduler, db: Session, teacher_id: str, student_id: str
) -> None:
    ghost = SkillMatch(id=generate_ulid(), teacher_id=teacher_id, student_id=student_id)

    with pytest.raises(MatchNotFoundException):
        scheduler.schedule(teacher_id, make_request(ghost))


@pytest.mark.parametrize("status", [MatchStatus.PENDING.value, MatchStatus.REJECTED.value])
def test_match_must_be_accepted(
    scheduler: SessionScheduler, db: Session, teacher_id: str, student_id: str, status: str
) -> None:
    match = create_match(db, teacher_id, student_id, status=status)

    with pytest.raises(MatchNotAcceptedException) as exc_info:
        scheduler.schedule(student_id, make_request(match))
    assert exc_info.value.details["status"] == status


def test_request_must_pair_the_match_users(
    scheduler: SessionScheduler, db: Session, funded_match: SkillMatch
) -> None:
    stranger = generate_ulid()
    other = create_match(db, funded_match.teacher_id, stranger)
    request = replace(make_request(other), match_id=funded_match.id)

    with pytest.raises(ValidationException):
        scheduler.schedule(funded_match.teacher_id, request)


def test_reversed_roles_still_pair_the_match(
    scheduler: SessionScheduler, db: Session, funded_match: SkillMatch, fund
) -> None:
    fund(funded_match.teacher_id, 50)
    reversed_match = SkillMatch(
        id=funded_match.id,
        teacher_id=funded_match.student_id,
        student_id=funded_match.teacher_id,
    )

    session = scheduler.schedule(funded_match.teacher_id, make_request(reversed_match))

    assert session.teacher_id == funded_match.student_id


def test_notification_failure_does_not_undo_booking(
    scheduler: SessionScheduler, notifier: Mock, db: Session, funded_match: SkillMatch
) -> None:
    notifier.notify.side_effect = RuntimeError("webhook down")

    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))

    assert db.get(SkillSession, session.id) is not None
    assert notifier.notify.call_count == 2


def test_schedule_queues_a_reminder_before_start(
    scheduler: SessionScheduler, queued_reminders: Mock, funded_match: SkillMatch
) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))

    queued_reminders.assert_called_once()
    call = queued_reminders.call_args
    assert call.kwargs["args"] == [session.id]
    assert call.kwargs["eta"] == ensure_utc(session.scheduled_start) - timedelta(minutes=15)


def test_no_reminder_when_session_starts_within_the_lead_time(
    scheduler: SessionScheduler, queued_reminders: Mock, funded_match: SkillMatch
) -> None:
    scheduler.schedule(
        funded_match.student_id, make_request(funded_match, start_in=timedelta(minutes=10))
    )

    queued_reminders.assert_not_called()


def test_reminder_queue_failure_does_not_undo_booking(
    scheduler: SessionScheduler, queued_reminders: Mock, db: Session, funded_match: SkillMatch
) -> None:
    queued_reminders.side_effect = RuntimeError("broker unreachable")

    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))

    assert db.get(SkillSession, session.id).status == SessionStatus.SCHEDULED.value


# Start


def test_start_provisions_room_and_returns_join_token(
    scheduler: SessionScheduler,
    fake_video_client: FakeHundredMsClient,
    notifier: Mock,
    funded_match: SkillMatch,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))
    _in_start_window(monkeypatch, session)

    result = scheduler.start(session.id, funded_match.teacher_id)

    assert result.session.status == SessionStatus.IN_PROGRESS.value
    assert result.session.video_room_id == result.room_id
    assert result.room_id.startswith("fake_room_")
    assert result.join_token == f"fake_auth_token_{result.room_id}_{funded_match.teacher_id}"
    token_call = [c for c in fake_video_client.calls if c["method"] == "generate_auth_token"][0]
    assert token_call["role"] == "host"
    assert (funded_match.student_id, SessionEvent.STARTED) in _events(notifier)


def test_student_joins_as_guest(
    scheduler: SessionScheduler,
    fake_video_client: FakeHundredMsClient,
    funded_match: SkillMatch,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))
    _in_start_window(monkeypatch, session)

    scheduler.start(session.id, funded_match.student_id)

    token_call = [c for c in fake_video_client.calls if c["method"] == "generate_auth_token"][0]
    assert token_call["role"] == "guest"


def test_room_failure_leaves_session_scheduled(
    scheduler: SessionScheduler,
    fake_video_client: FakeHundredMsClient,
    db: Session,
    funded_match: SkillMatch,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))
    _in_start_window(monkeypatch, session)
    fake_video_client.set_error("create_room", HundredMsError("upstream unavailable", 503))

    with pytest.raises(RoomProvisioningException) as exc_info:
        scheduler.start(session.id, funded_match.teacher_id)

    assert exc_info.value.status_code == 502
    assert exc_info.value.details["status_code"] == 503
    db.refresh(session)
    assert session.status == SessionStatus.SCHEDULED.value
    assert session.video_room_id is None


def test_start_outside_window_provisions_nothing(
    scheduler: SessionScheduler,
    fake_video_client: FakeHundredMsClient,
    funded_match: SkillMatch,
) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))

    with pytest.raises(InvalidStartTimeException):
        scheduler.start(session.id, funded_match.teacher_id)

    assert fake_video_client.calls == []


def test_room_is_disabled_when_the_transition_fails(
    db: Session,
    notifier: Mock,
    fake_video_client: FakeHundredMsClient,
    funded_match: SkillMatch,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    machine = SessionStateMachine(db)
    scheduler = SessionScheduler(
        db,
        notifier=notifier,
        room_provisioner=RoomProvisioner(client=fake_video_client),
        state_machine=machine,
    )
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))
    _in_start_window(monkeypatch, session)
    failure = InvalidStartTimeException(session_id=session.id, window_opens="", window_closes="")
    monkeypatch.setattr(machine, "mark_started", Mock(side_effect=failure))

    with pytest.raises(InvalidStartTimeException):
        scheduler.start(session.id, funded_match.teacher_id)

    created = [c for c in fake_video_client.calls if c["method"] == "create_room"]
    disabled = [c for c in fake_video_client.calls if c["method"] == "disable_room"]
    assert len(created) == 1
    assert len(disabled) == 1


# Completion and cancellation


def test_complete_updates_profile_counters(
    scheduler: SessionScheduler,
    db: Session,
    funded_match: SkillMatch,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))
    _in_start_window(monkeypatch, session)
    scheduler.start(session.id, funded_match.teacher_id)

    result = scheduler.complete(session.id, funded_match.student_id, "Thanks!")

    counters = ProfileCounterService(db)
    teacher = counters.get_stats(funded_match.teacher_id)
    student = counters.get_stats(funded_match.student_id)
    assert (teacher.sessions_taught, teacher.skill_points) == (1, result.teacher_credits)
    assert (student.sessions_completed, student.skill_points) == (1, result.participation_bonus)


def test_profile_counter_failure_does_not_undo_settlement(
    db: Session,
    notifier: Mock,
    fake_video_client: FakeHundredMsClient,
    funded_match: SkillMatch,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    counters = Mock(spec=ProfileCounterService)
    counters.record_completion.side_effect = RuntimeError("stats store offline")
    scheduler = SessionScheduler(
        db,
        notifier=notifier,
        room_provisioner=RoomProvisioner(client=fake_video_client),
        profile_counters=counters,
    )
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))
    _in_start_window(monkeypatch, session)
    scheduler.start(session.id, funded_match.teacher_id)

    result = scheduler.complete(session.id, funded_match.teacher_id)

    assert result.session.status == SessionStatus.COMPLETED.value
    assert scheduler.get_balance(funded_match.teacher_id) == 20
    counters.record_completion.assert_called_once()


def test_cancel_notification_carries_refund(
    scheduler: SessionScheduler, notifier: Mock, funded_match: SkillMatch
) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))
    notifier.reset_mock()

    scheduler.cancel(session.id, funded_match.teacher_id, "Travelling")

    assert _events(notifier) == [
        (funded_match.teacher_id, SessionEvent.CANCELLED),
        (funded_match.student_id, SessionEvent.CANCELLED),
    ]
    payload = notifier.notify.call_args.args[2]
    assert payload["refund_amount"] == 20
    assert payload["status"] == SessionStatus.CANCELLED.value


# Queries


def test_get_checks_participation(scheduler: SessionScheduler, funded_match: SkillMatch) -> None:
    session = scheduler.schedule(funded_match.student_id, make_request(funded_match))

    assert scheduler.get(session.id, funded_match.teacher_id).id == session.id
    with pytest.raises(UnauthorizedSessionAccessException):
        scheduler.get(session.id, generate_ulid())
    with pytest.raises(SessionNotFoundException):
        scheduler.get(generate_ulid(), funded_match.teacher_id)


def test_upcoming_lists_active_sessions_soonest_first(
    scheduler: SessionScheduler, funded_match: SkillMatch
) -> None:
    now = datetime.now(timezone.utc)
    later = scheduler.schedule(
        funded_match.student_id, make_request(funded_match, now=now, start_in=timedelta(hours=72))
    )
    sooner = scheduler.schedule(
        funded_match.student_id, make_request(funded_match, now=now, start_in=timedelta(hours=30))
    )
    cancelled = scheduler.schedule(
        funded_match.student_id, make_request(funded_match, now=now, start_in=timedelta(hours=50))
    )
    scheduler.cancel(cancelled.id, funded_match.student_id, "Conflict")

    upcoming = scheduler.list_upcoming(funded_match.teacher_id)

    assert [s.id for s in upcoming] == [sooner.id, later.id]
    assert scheduler.list_upcoming(generate_ulid()) == []


def test_history_is_newest_first_and_bounded(
    scheduler: SessionScheduler, funded_match: SkillMatch
) -> None:
    now = datetime.now(timezone.utc)
    ids = []
    for hours in (30, 40, 50):
        session = scheduler.schedule(
            funded_match.student_id,
            make_request(funded_match, now=now, start_in=timedelta(hours=hours), credits_amount=5),
        )
        scheduler.cancel(session.id, funded_match.student_id, "Rescheduling")
        ids.append(session.id)

    assert [s.id for s in scheduler.list_history(funded_match.student_id)] == ids[::-1]
    assert [s.id for s in scheduler.list_history(funded_match.student_id, limit=2)] == ids[:0:-1]


@pytest.mark.parametrize("limit", [0, 101])
def test_history_limit_is_validated(
    scheduler: SessionScheduler, funded_match: SkillMatch, limit: int
) -> None:
    with pytest.raises(ValidationException):
        scheduler.list_history(funded_match.student_id, limit=limit)
