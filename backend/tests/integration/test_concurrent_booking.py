"""
Concurrency guarantees against a file-backed database: one booking per slot,
no overdraft and settlement at most once, each worker on its own session.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
import threading
from typing import Callable, List, Tuple, TypeVar

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import (
    CannotCancelSessionException,
    DomainException,
    InsufficientCreditsException,
    InvalidSessionStatusException,
    SchedulingConflictException,
)
from app.core.ulid_helper import generate_ulid
from app.models.calendar import ReservationStatus, SlotReservation
from app.models.credit import TransactionType
from app.models.session import SkillSession
from app.services.ledger_service import LedgerService
from app.services.session_state_machine import SessionStateMachine
from app.utils.time_helpers import ensure_utc
from tests.factories import create_match, freeze_time, make_request

T = TypeVar("T")
WORKERS = 8


def _race(factory: sessionmaker, count: int, fn: Callable[..., T]) -> List[Tuple[str, object]]:
    """Run ``fn(db, index)`` in ``count`` threads released together; collect outcomes."""
    barrier = threading.Barrier(count)

    def run(index: int) -> Tuple[str, object]:
        db = factory()
        try:
            barrier.wait(10)
            return "ok", fn(db, index)
        except DomainException as e:
            return "error", e
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(run, range(count)))


def _errors(outcomes: List[Tuple[str, object]]) -> List[object]:
    return [value for kind, value in outcomes if kind == "error"]


def test_same_slot_is_booked_once(file_session_factory: sessionmaker) -> None:
    setup = file_session_factory()
    teacher = generate_ulid()
    students = [generate_ulid() for _ in range(WORKERS)]
    matches = [create_match(setup, teacher, s) for s in students]
    for student in students:
        LedgerService(setup).purchase_credits(student, 50, f"seed-{student}")
    now = datetime.now(timezone.utc)
    requests = [make_request(m, now=now, credits_amount=20) for m in matches]
    setup.close()

    outcomes = _race(
        file_session_factory,
        WORKERS,
        lambda db, i: SessionStateMachine(db).schedule(requests[i]).id,
    )

    winners = [value for kind, value in outcomes if kind == "ok"]
    assert len(winners) == 1
    assert all(isinstance(e, SchedulingConflictException) for e in _errors(outcomes))

    check = file_session_factory()
    try:
        assert check.query(SkillSession).count() == 1
        active = (
            check.query(SlotReservation)
            .filter(SlotReservation.status != ReservationStatus.RELEASED.value)
            .all()
        )
        assert [r.session_id for r in active] == winners
        ledger = LedgerService(check)
        balances = sorted(ledger.get_balance(s) for s in students)
        assert balances == [30] + [50] * (WORKERS - 1)
    finally:
        check.close()


def test_staggered_overlaps_never_double_book(file_session_factory: sessionmaker) -> None:
    setup = file_session_factory()
    teacher, student = generate_ulid(), generate_ulid()
    match = create_match(setup, teacher, student)
    LedgerService(setup).purchase_credits(student, 500, "seed")
    now = datetime.now(timezone.utc)
    # 60 minute sessions starting 20 minutes apart: every neighbour overlaps
    requests = [
        make_request(match, now=now, start_in=timedelta(hours=48, minutes=20 * i), credits_amount=5)
        for i in range(WORKERS)
    ]
    setup.close()

    _race(file_session_factory, WORKERS, lambda db, i: SessionStateMachine(db).schedule(requests[i]))

    check = file_session_factory()
    try:
        sessions = sorted(check.query(SkillSession).all(), key=lambda s: ensure_utc(s.scheduled_start))
        for earlier, later in zip(sessions, sessions[1:]):
            assert ensure_utc(earlier.scheduled_end) <= ensure_utc(later.scheduled_start)
        assert LedgerService(check).get_balance(student) == 500 - 5 * len(sessions)
    finally:
        check.close()


def test_concurrent_debits_never_overdraw(file_session_factory: sessionmaker) -> None:
    setup = file_session_factory()
    user = generate_ulid()
    LedgerService(setup).purchase_credits(user, 100, "seed")
    setup.close()

    outcomes = _race(
        file_session_factory,
        WORKERS * 2,
        lambda db, i: LedgerService(db).debit(user, 15, f"debit-{i}", TransactionType.SPENT),
    )

    successes = [value for kind, value in outcomes if kind == "ok"]
    assert len(successes) == 6
    assert all(isinstance(e, InsufficientCreditsException) for e in _errors(outcomes))

    check = file_session_factory()
    try:
        ledger = LedgerService(check)
        assert ledger.get_balance(user) == 10
        assert ledger.recompute_balance(user) == 10
    finally:
        check.close()


@pytest.fixture
def booked_session(file_session_factory: sessionmaker) -> SkillSession:
    setup = file_session_factory()
    try:
        teacher, student = generate_ulid(), generate_ulid()
        match = create_match(setup, teacher, student)
        LedgerService(setup).purchase_credits(student, 50, "seed")
        return SessionStateMachine(setup).schedule(make_request(match, credits_amount=20))
    finally:
        setup.close()


def test_concurrent_cancellations_refund_once(
    file_session_factory: sessionmaker, booked_session: SkillSession
) -> None:
    session_id, student = booked_session.id, booked_session.student_id

    outcomes = _race(
        file_session_factory,
        WORKERS,
        lambda db, i: SessionStateMachine(db).cancel(session_id, student, f"reason {i}").refund,
    )

    assert len([v for k, v in outcomes if k == "ok"]) == 1
    assert all(isinstance(e, CannotCancelSessionException) for e in _errors(outcomes))
    check = file_session_factory()
    try:
        assert LedgerService(check).get_balance(student) == 50
    finally:
        check.close()


def test_concurrent_completions_settle_once(
    file_session_factory: sessionmaker,
    booked_session: SkillSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    freeze_time(
        monkeypatch,
        "app.services.session_state_machine",
        ensure_utc(booked_session.scheduled_start),
    )
    setup = file_session_factory()
    SessionStateMachine(setup).mark_started(booked_session.id, booked_session.teacher_id, "room")
    setup.close()

    outcomes = _race(
        file_session_factory,
        WORKERS,
        lambda db, i: SessionStateMachine(db).complete(booked_session.id, booked_session.teacher_id),
    )

    assert len([v for k, v in outcomes if k == "ok"]) == 1
    assert all(isinstance(e, InvalidSessionStatusException) for e in _errors(outcomes))
    check = file_session_factory()
    try:
        ledger = LedgerService(check)
        assert ledger.get_balance(booked_session.teacher_id) == 20
        assert ledger.get_balance(booked_session.student_id) == 34
    finally:
        check.close()
