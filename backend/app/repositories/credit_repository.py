# backend/app/repositories/credit_repository.py
"""
Credit Repository for SkillSwap

Encapsulates ledger queries: appending signed entries, summing a user's log,
and locking the per-user account row that serializes ledger writes.
"""

from __future__ import annotations

import logging
from typing import List, Optional, cast

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import RepositoryException
from app.models.credit import CreditAccount, CreditTransaction

from ._upsert import insert_if_missing
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CreditRepository(BaseRepository[CreditTransaction]):
    """Repository for the credit transaction log and account heads."""

    def __init__(self, db: Session):
        super().__init__(db, CreditTransaction)
        self.logger = logging.getLogger(__name__)

    def sum_for_user(self, user_id: str) -> int:
        """Return the balance derived from every entry in the user's log."""
        try:
            result = (
                self.db.query(func.coalesce(func.sum(CreditTransaction.amount), 0))
                .filter(CreditTransaction.user_id == user_id)
                .scalar()
            )
            return int(result or 0)
        except Exception as exc:
            self.logger.error("Failed to sum credits for user %s: %s", user_id, str(exc))
            raise RepositoryException("Failed to compute credit balance") from exc

    def add_entry(
        self,
        *,
        user_id: str,
        amount: int,
        transaction_type: str,
        related_id: Optional[str],
        description: Optional[str],
    ) -> CreditTransaction:
        return self.create(
            user_id=user_id,
            amount=amount,
            type=transaction_type,
            related_id=related_id,
            description=description,
        )

    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[CreditTransaction]:
        """Return the user's entries, newest first."""
        try:
            query = (
                self.db.query(CreditTransaction)
                .filter(CreditTransaction.user_id == user_id)
                .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            return cast(List[CreditTransaction], query.all())
        except Exception as exc:
            self.logger.error("Failed to list transactions for user %s: %s", user_id, str(exc))
            raise RepositoryException("Failed to list credit transactions") from exc

    def list_for_related(self, related_id: str) -> List[CreditTransaction]:
        """Return every entry recorded against a session (or other originating entity)."""
        try:
            query = (
                self.db.query(CreditTransaction)
                .filter(CreditTransaction.related_id == related_id)
                .order_by(CreditTransaction.created_at.asc(), CreditTransaction.id.asc())
            )
            return cast(List[CreditTransaction], query.all())
        except Exception as exc:
            self.logger.error("Failed to list transactions for %s: %s", related_id, str(exc))
            raise RepositoryException("Failed to list related credit transactions") from exc

    # Account heads

    def lock_account(self, user_id: str) -> CreditAccount:
        """Ensure the user's account row exists and lock it for the rest of the transaction."""
        try:
            insert_if_missing(
                self.db, CreditAccount, "user_id", {"user_id": user_id, "cached_balance": 0}
            )
            account = (
                self.db.query(CreditAccount)
                .filter(CreditAccount.user_id == user_id)
                .with_for_update()
                .populate_existing()
                .one()
            )
            return cast(CreditAccount, account)
        except Exception as exc:
            self.logger.error("Failed to lock credit account %s: %s", user_id, str(exc))
            raise RepositoryException("Failed to lock credit account") from exc

    def get_account(self, user_id: str) -> Optional[CreditAccount]:
        return cast(Optional[CreditAccount], self.db.get(CreditAccount, user_id))
