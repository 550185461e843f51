# backend/app/routes/v1/sessions.py
"""
Skill session routes - API v1

Versioned session endpoints under /api/v1/sessions.
All business logic delegated to SessionScheduler.

Endpoints:
    POST / - Book a session for an accepted match
    GET /upcoming - Sessions that have not started yet
    GET /history - Completed and cancelled sessions
    GET /{session_id} - Session details (participants only)
    POST /{session_id}/start - Provision the room and start the session
    POST /{session_id}/complete - Complete the session and settle credits
    POST /{session_id}/cancel - Cancel the session and refund per policy
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import get_current_user_id, get_session_scheduler
from ...core.exceptions import DomainException
from ...schemas.session import (
    RefundDetails,
    SessionCancel,
    SessionCancelResponse,
    SessionComplete,
    SessionCompleteResponse,
    SessionCreate,
    SessionListResponse,
    SessionResponse,
    SessionStartResponse,
)
from ...services.session_scheduler import SessionScheduler
from ...services.session_state_machine import BookingRequest

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["sessions-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def schedule_session(
    payload: SessionCreate,
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> SessionResponse:
    """Book a session: reserves the teacher's slot and escrows the student's credits."""
    request = BookingRequest(
        match_id=payload.match_id,
        teacher_id=payload.teacher_id,
        student_id=payload.student_id,
        skill_id=payload.skill_id,
        scheduled_start=payload.scheduled_start,
        scheduled_end=payload.scheduled_end,
        credits_amount=payload.credits_amount,
    )
    try:
        session = await asyncio.to_thread(scheduler.schedule, current_user_id, request)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionResponse.model_validate(session)


@router.get("/upcoming", response_model=SessionListResponse)
async def list_upcoming_sessions(
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> SessionListResponse:
    try:
        sessions = await asyncio.to_thread(scheduler.list_upcoming, current_user_id)
    except DomainException as e:
        handle_domain_exception(e)
    items = [SessionResponse.model_validate(s) for s in sessions]
    return SessionListResponse(sessions=items, total=len(items))


@router.get("/history", response_model=SessionListResponse)
async def list_session_history(
    limit: Optional[int] = Query(None, ge=1, le=100),
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> SessionListResponse:
    try:
        sessions = await asyncio.to_thread(scheduler.list_history, current_user_id, limit)
    except DomainException as e:
        handle_domain_exception(e)
    items = [SessionResponse.model_validate(s) for s in sessions]
    return SessionListResponse(sessions=items, total=len(items))


# ============================================================================
# SECTION 2: Session-scoped routes
# ============================================================================


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> SessionResponse:
    try:
        session = await asyncio.to_thread(scheduler.get, session_id, current_user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionResponse.model_validate(session)


@router.post("/{session_id}/start", response_model=SessionStartResponse)
async def start_session(
    session_id: str,
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> SessionStartResponse:
    """Start a scheduled session; returns the caller's video room join token."""
    try:
        result = await asyncio.to_thread(scheduler.start, session_id, current_user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionStartResponse(
        session=SessionResponse.model_validate(result.session),
        room_id=result.room_id,
        join_token=result.join_token,
    )


@router.post("/{session_id}/complete", response_model=SessionCompleteResponse)
async def complete_session(
    session_id: str,
    payload: Optional[SessionComplete] = None,
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> SessionCompleteResponse:
    notes = payload.notes if payload is not None else None
    try:
        result = await asyncio.to_thread(scheduler.complete, session_id, current_user_id, notes)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionCompleteResponse(
        session=SessionResponse.model_validate(result.session),
        teacher_credits=result.teacher_credits,
        participation_bonus=result.participation_bonus,
    )


@router.post("/{session_id}/cancel", response_model=SessionCancelResponse)
async def cancel_session(
    session_id: str,
    payload: SessionCancel,
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> SessionCancelResponse:
    try:
        result = await asyncio.to_thread(
            scheduler.cancel, session_id, current_user_id, payload.reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    return SessionCancelResponse(
        session=SessionResponse.model_validate(result.session),
        refund=RefundDetails(**result.refund.to_payload()),
    )
