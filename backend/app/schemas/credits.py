# backend/app/schemas/credits.py
"""Credit balance, ledger history and purchase schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from ._strict_base import StrictRequestModel
from .base import StandardizedModel


class CreditBalanceResponse(StandardizedModel):
    user_id: str
    balance: int


class CreditTransactionResponse(StandardizedModel):
    id: str
    amount: int
    type: str
    related_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class CreditHistoryResponse(StandardizedModel):
    transactions: List[CreditTransactionResponse]
    total: int


class CreditPurchaseRequest(StrictRequestModel):
    amount: int = Field(..., ge=1, le=10000)
    payment_reference: str = Field(..., min_length=1, max_length=64)

    @field_validator("payment_reference")
    @classmethod
    def _strip_reference(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("payment_reference cannot be blank")
        return cleaned
