# backend/app/schemas/session.py
"""
Skill session schemas.

Request models reject unknown fields; response models are built from the
ORM rows with ``model_validate``.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from ._strict_base import StrictRequestModel
from .base import StandardizedModel


class SessionCreate(StrictRequestModel):
    match_id: str = Field(..., min_length=1, description="Accepted match the session belongs to")
    teacher_id: str = Field(..., min_length=1)
    student_id: str = Field(..., min_length=1)
    skill_id: str = Field(..., min_length=1)
    scheduled_start: datetime = Field(..., description="Start time, timezone-aware")
    scheduled_end: datetime = Field(..., description="End time, timezone-aware")
    credits_amount: int = Field(..., ge=1, description="Credits escrowed from the student")

    @model_validator(mode="after")
    def _require_timezone(self) -> "SessionCreate":
        for name in ("scheduled_start", "scheduled_end"):
            if getattr(self, name).tzinfo is None:
                raise ValueError(f"{name} must include a timezone offset")
        return self


class SessionComplete(StrictRequestModel):
    notes: Optional[str] = Field(None, max_length=2000)


class SessionCancel(StrictRequestModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SessionResponse(StandardizedModel):
    id: str
    match_id: str
    teacher_id: str
    student_id: str
    skill_id: str
    scheduled_start: datetime
    scheduled_end: datetime
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    status: str
    credits_amount: int
    video_room_id: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    refund_amount: Optional[int] = None
    created_at: datetime


class SessionStartResponse(StandardizedModel):
    session: SessionResponse
    room_id: str
    join_token: str


class SessionCompleteResponse(StandardizedModel):
    session: SessionResponse
    teacher_credits: int
    participation_bonus: int


class RefundDetails(StandardizedModel):
    refund_amount: int
    forfeited_amount: int
    hours_before_start: float
    policy_basis: str


class SessionCancelResponse(StandardizedModel):
    session: SessionResponse
    refund: RefundDetails


class SessionListResponse(StandardizedModel):
    sessions: List[SessionResponse]
    total: int
