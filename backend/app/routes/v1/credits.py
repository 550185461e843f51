# backend/app/routes/v1/credits.py
"""
Credit routes - API v1

Endpoints:
    GET /balance - Current balance derived from the ledger
    GET /transactions - Ledger entries, newest first
    POST /purchase - Record purchased credits
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import get_current_user_id, get_session_scheduler
from ...core.exceptions import DomainException
from ...schemas.credits import (
    CreditBalanceResponse,
    CreditHistoryResponse,
    CreditPurchaseRequest,
    CreditTransactionResponse,
)
from ...services.session_scheduler import SessionScheduler
from .sessions import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["credits-v1"])


@router.get("/balance", response_model=CreditBalanceResponse)
async def get_credit_balance(
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> CreditBalanceResponse:
    balance = await asyncio.to_thread(scheduler.get_balance, current_user_id)
    return CreditBalanceResponse(user_id=current_user_id, balance=balance)


@router.get("/transactions", response_model=CreditHistoryResponse)
async def get_credit_transactions(
    limit: Optional[int] = Query(None, ge=1, le=100),
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> CreditHistoryResponse:
    try:
        entries = await asyncio.to_thread(
            scheduler.get_transaction_history, current_user_id, limit
        )
    except DomainException as e:
        handle_domain_exception(e)
    items = [CreditTransactionResponse.model_validate(entry) for entry in entries]
    return CreditHistoryResponse(transactions=items, total=len(items))


@router.post(
    "/purchase",
    response_model=CreditTransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def purchase_credits(
    payload: CreditPurchaseRequest,
    current_user_id: str = Depends(get_current_user_id),
    scheduler: SessionScheduler = Depends(get_session_scheduler),
) -> CreditTransactionResponse:
    try:
        entry = await asyncio.to_thread(
            scheduler.purchase_credits,
            current_user_id,
            payload.amount,
            payload.payment_reference,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CreditTransactionResponse.model_validate(entry)
