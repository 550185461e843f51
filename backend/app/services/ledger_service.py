"""
Credit ledger service.

Balances are always the sum of a user's ``CreditTransaction`` rows. Each write
runs under the user's keyed lock and a row lock on their ``CreditAccount``, so
the balance read and the entry append form one serialized step and two
concurrent debits can never both pass against a stale balance.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Iterator, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InsufficientCreditsException, ValidationException
from app.core.keyed_lock import KeyedLockRegistry, ledger_account_locks
from app.models.credit import CreditAccount, CreditTransaction, TransactionType
from app.monitoring.prometheus_metrics import prometheus_metrics
from app.repositories.factory import RepositoryFactory

from .base import BaseService

logger = logging.getLogger(__name__)

TransactionTypeLike = Union[TransactionType, str]


def _coerce_type(transaction_type: TransactionTypeLike) -> str:
    try:
        return TransactionType(transaction_type).value
    except ValueError as exc:
        raise ValidationException(
            f"Unknown transaction type: {transaction_type}",
            details={"type": str(transaction_type)},
        ) from exc


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationException(
            "Credit amount must be a positive integer", details={"amount": amount}
        )


class LedgerService(BaseService):
    """Append-only, conservation-preserving movement of credits."""

    def __init__(self, db: Session, account_locks: Optional[KeyedLockRegistry] = None):
        super().__init__(db)
        self.credit_repository = RepositoryFactory.create_credit_repository(db)
        self.account_locks = account_locks or ledger_account_locks

    @contextmanager
    def locked(self, *user_ids: str) -> Iterator[None]:
        """
        Hold the ledger locks for ``user_ids`` around a caller-owned transaction.

        Use together with ``use_transaction=False`` and commit before leaving the
        block so no other writer observes the balance between check and append.
        """
        with self.account_locks.hold(*user_ids):
            yield

    def _append(
        self,
        account: CreditAccount,
        signed_amount: int,
        transaction_type: str,
        related_id: Optional[str],
        description: Optional[str],
        *,
        current_balance: int,
    ) -> CreditTransaction:
        entry = self.credit_repository.add_entry(
            user_id=account.user_id,
            amount=signed_amount,
            transaction_type=transaction_type,
            related_id=related_id,
            description=description,
        )
        account.cached_balance = current_balance + signed_amount
        prometheus_metrics.record_ledger_entry(transaction_type, signed_amount)
        return entry

    def _debit(
        self,
        user_id: str,
        amount: int,
        related_id: Optional[str],
        transaction_type: str,
        description: Optional[str],
    ) -> CreditTransaction:
        # Lock the account head before reading the log
        account = self.credit_repository.lock_account(user_id)
        balance = self.credit_repository.sum_for_user(user_id)
        if balance < amount:
            self.logger.info(
                "Debit rejected for insufficient credits",
                extra={"user_id": user_id, "required": amount, "available": balance},
            )
            raise InsufficientCreditsException(user_id=user_id, required=amount, available=balance)
        return self._append(
            account,
            -amount,
            transaction_type,
            related_id,
            description,
            current_balance=balance,
        )

    def _credit(
        self,
        user_id: str,
        amount: int,
        related_id: Optional[str],
        transaction_type: str,
        description: Optional[str],
    ) -> CreditTransaction:
        account = self.credit_repository.lock_account(user_id)
        balance = self.credit_repository.sum_for_user(user_id)
        return self._append(
            account,
            amount,
            transaction_type,
            related_id,
            description,
            current_balance=balance,
        )

    @BaseService.measure_operation("ledger_debit")
    def debit(
        self,
        user_id: str,
        amount: int,
        related_id: Optional[str],
        transaction_type: TransactionTypeLike = TransactionType.SPENT,
        *,
        description: Optional[str] = None,
        use_transaction: bool = True,
    ) -> str:
        """Append ``-amount`` for the user, refusing to overdraw. Returns the entry id."""
        _validate_amount(amount)
        type_value = _coerce_type(transaction_type)

        if use_transaction:
            with self.locked(user_id):
                with self.transaction():
                    entry = self._debit(user_id, amount, related_id, type_value, description)
        else:
            entry = self._debit(user_id, amount, related_id, type_value, description)

        self.log_operation("ledger_debit", user_id=user_id, amount=amount, related_id=related_id)
        return entry.id

    @BaseService.measure_operation("ledger_credit")
    def credit(
        self,
        user_id: str,
        amount: int,
        related_id: Optional[str],
        transaction_type: TransactionTypeLike = TransactionType.EARNED,
        *,
        description: Optional[str] = None,
        use_transaction: bool = True,
    ) -> str:
        """Append ``+amount`` for the user. Crediting never fails on business grounds."""
        _validate_amount(amount)
        type_value = _coerce_type(transaction_type)

        if use_transaction:
            with self.locked(user_id):
                with self.transaction():
                    entry = self._credit(user_id, amount, related_id, type_value, description)
        else:
            entry = self._credit(user_id, amount, related_id, type_value, description)

        self.log_operation("ledger_credit", user_id=user_id, amount=amount, related_id=related_id)
        return entry.id

    @BaseService.measure_operation("ledger_transfer")
    def transfer(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: int,
        related_id: Optional[str],
        *,
        description: Optional[str] = None,
        use_transaction: bool = True,
    ) -> Tuple[str, str]:
        """Debit one user and credit another in a single transaction; both entries or neither."""
        _validate_amount(amount)
        if from_user_id == to_user_id:
            raise ValidationException("Cannot transfer credits to the same user")

        def _transfer() -> Tuple[str, str]:
            debit_entry = self._debit(
                from_user_id, amount, related_id, TransactionType.SPENT.value, description
            )
            credit_entry = self._credit(
                to_user_id, amount, related_id, TransactionType.EARNED.value, description
            )
            return debit_entry.id, credit_entry.id

        if use_transaction:
            with self.locked(from_user_id, to_user_id):
                with self.transaction():
                    result = _transfer()
        else:
            result = _transfer()

        self.log_operation(
            "ledger_transfer",
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            related_id=related_id,
        )
        return result

    @BaseService.measure_operation("ledger_purchase")
    def purchase_credits(self, user_id: str, amount: int, reference: str) -> CreditTransaction:
        """Record credits bought through the payment provider identified by ``reference``."""
        _validate_amount(amount)
        if not reference or not reference.strip():
            raise ValidationException("A payment reference is required to purchase credits")

        with self.locked(user_id):
            with self.transaction():
                entry = self._credit(
                    user_id,
                    amount,
                    reference,
                    TransactionType.PURCHASED.value,
                    f"Purchased {amount} credits",
                )

        self.log_operation("ledger_purchase", user_id=user_id, amount=amount, reference=reference)
        return entry

    def get_balance(self, user_id: str) -> int:
        return self.credit_repository.sum_for_user(user_id)

    def get_cached_balance(self, user_id: str) -> Optional[int]:
        account = self.credit_repository.get_account(user_id)
        return account.cached_balance if account is not None else None

    @BaseService.measure_operation("ledger_recompute_balance")
    def recompute_balance(self, user_id: str) -> int:
        """Rebuild the cached balance from the log, logging any drift it corrects."""
        with self.locked(user_id):
            with self.transaction():
                account = self.credit_repository.lock_account(user_id)
                derived = self.credit_repository.sum_for_user(user_id)
                if account.cached_balance != derived:
                    self.logger.warning(
                        "Cached balance drift corrected",
                        extra={
                            "user_id": user_id,
                            "cached_balance": account.cached_balance,
                            "derived_balance": derived,
                        },
                    )
                    prometheus_metrics.record_balance_drift()
                    account.cached_balance = derived
        return derived

    def get_transaction_history(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[CreditTransaction]:
        if limit is not None and not 1 <= limit <= settings.history_max_limit:
            raise ValidationException(
                f"limit must be between 1 and {settings.history_max_limit}",
                details={"limit": limit},
            )
        return self.credit_repository.list_for_user(user_id, limit=limit)

    def get_entries_for_related(self, related_id: str) -> List[CreditTransaction]:
        return self.credit_repository.list_for_related(related_id)
