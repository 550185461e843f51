"""RefundPolicy: full refund at or beyond the window, nothing inside it."""

from datetime import datetime, timedelta, timezone

import pytest

from app.services.refund_policy import RefundPolicy

START = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def policy() -> RefundPolicy:
    return RefundPolicy(full_refund_window=timedelta(hours=24))


def test_cancelling_25_hours_ahead_refunds_everything(policy: RefundPolicy) -> None:
    decision = policy.evaluate(START, START - timedelta(hours=25), 20)

    assert decision.refund_amount == 20
    assert decision.forfeited_amount == 0
    assert decision.is_full_refund
    assert decision.hours_before_start == pytest.approx(25.0)


def test_exactly_24_hours_ahead_is_still_a_full_refund(policy: RefundPolicy) -> None:
    assert policy.refund_amount(START, START - timedelta(hours=24), 20) == 20


def test_inside_the_window_forfeits_the_escrow(policy: RefundPolicy) -> None:
    decision = policy.evaluate(START, START - timedelta(hours=23, minutes=59), 20)

    assert decision.refund_amount == 0
    assert decision.forfeited_amount == 20
    assert not decision.is_full_refund
    assert decision.policy_basis.startswith("<24")


def test_naive_datetimes_are_treated_as_utc(policy: RefundPolicy) -> None:
    naive_start = START.replace(tzinfo=None)
    assert policy.refund_amount(naive_start, START - timedelta(hours=30), 7) == 7


def test_negative_escrow_is_rejected(policy: RefundPolicy) -> None:
    with pytest.raises(ValueError):
        policy.evaluate(START, START - timedelta(days=2), -1)


def test_payload_rounds_hours(policy: RefundPolicy) -> None:
    payload = policy.evaluate(START, START - timedelta(hours=30, minutes=20), 5).to_payload()

    assert payload == {
        "refund_amount": 5,
        "forfeited_amount": 0,
        "hours_before_start": 30.33,
        "policy_basis": ">=24 hours before start: full refund",
    }


def test_window_defaults_to_settings() -> None:
    assert RefundPolicy().full_refund_window == timedelta(hours=24)
