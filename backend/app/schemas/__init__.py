# backend/app/schemas/__init__.py
"""Pydantic schemas for the SkillSwap API."""

from .credits import (
    CreditBalanceResponse,
    CreditHistoryResponse,
    CreditPurchaseRequest,
    CreditTransactionResponse,
)
from .session import (
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

__all__ = [
    "CreditBalanceResponse",
    "CreditHistoryResponse",
    "CreditPurchaseRequest",
    "CreditTransactionResponse",
    "RefundDetails",
    "SessionCancel",
    "SessionCancelResponse",
    "SessionComplete",
    "SessionCompleteResponse",
    "SessionCreate",
    "SessionListResponse",
    "SessionResponse",
    "SessionStartResponse",
]
