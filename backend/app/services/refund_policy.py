"""Refund policy for cancelled sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.core.config import settings
from app.utils.time_helpers import ensure_utc


@dataclass(frozen=True)
class RefundDecision:
    refund_amount: int
    forfeited_amount: int
    hours_before_start: float
    policy_basis: str

    @property
    def is_full_refund(self) -> bool:
        return self.forfeited_amount == 0

    def to_payload(self) -> dict[str, object]:
        return {
            "refund_amount": int(self.refund_amount),
            "forfeited_amount": int(self.forfeited_amount),
            "hours_before_start": round(self.hours_before_start, 2),
            "policy_basis": self.policy_basis,
        }


class RefundPolicy:
    """
    Maps (scheduled start, cancellation time, escrowed credits) to a refund.

    Cancelling at least ``full_refund_window`` before the start returns the
    whole escrow; anything later forfeits it. Forfeited credits stay with the
    platform and are never paid out to the teacher. Callers must reject
    cancellations after the start before consulting the policy.
    """

    def __init__(self, full_refund_window: Optional[timedelta] = None):
        self.full_refund_window = full_refund_window or timedelta(
            hours=settings.full_refund_window_hours
        )

    def evaluate(
        self, scheduled_start: datetime, cancelled_at: datetime, escrowed: int
    ) -> RefundDecision:
        if escrowed < 0:
            raise ValueError("escrowed amount cannot be negative")

        lead_time = ensure_utc(scheduled_start) - ensure_utc(cancelled_at)
        hours_before_start = lead_time.total_seconds() / 3600
        window_hours = self.full_refund_window.total_seconds() / 3600

        if lead_time >= self.full_refund_window:
            return RefundDecision(
                refund_amount=escrowed,
                forfeited_amount=0,
                hours_before_start=hours_before_start,
                policy_basis=f">={window_hours:g} hours before start: full refund",
            )

        return RefundDecision(
            refund_amount=0,
            forfeited_amount=escrowed,
            hours_before_start=hours_before_start,
            policy_basis=f"<{window_hours:g} hours before start: escrow forfeited",
        )

    def refund_amount(self, scheduled_start: datetime, cancelled_at: datetime, escrowed: int) -> int:
        return self.evaluate(scheduled_start, cancelled_at, escrowed).refund_amount
