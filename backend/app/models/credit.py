# backend/app/models/credit.py
"""
Credit ledger models.

``CreditTransaction`` rows are the append-only source of truth for balances.
``CreditAccount`` is the per-user lock target and holds a cached balance that
is rewritten in the same transaction as each entry and can always be rebuilt
from the log.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, Enum):
    """Kinds of ledger entries."""

    EARNED = "earned"
    SPENT = "spent"
    PURCHASED = "purchased"
    REFUNDED = "refunded"


class CreditTransaction(Base):
    """A single signed credit movement; negative amounts are debits."""

    __tablename__ = "credit_transactions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(String(26), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    related_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_credit_transactions_amount_non_zero"),
        CheckConstraint(
            "type IN ('earned', 'spent', 'purchased', 'refunded')",
            name="ck_credit_transactions_type",
        ),
        Index("ix_credit_transactions_user_created_at", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CreditTransaction {self.id} user={self.user_id} amount={self.amount} type={self.type}>"


class CreditAccount(Base):
    """Per-user ledger head: row-lock target plus a rebuildable balance cache."""

    __tablename__ = "credit_accounts"

    user_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    cached_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<CreditAccount user={self.user_id} cached_balance={self.cached_balance}>"
