"""
Credit Ledger
=============

Authoritative per-user credit balance with race-safe deduction
and an append-only audit trail.

The balance document is the source of truth. History entries are
appended after the balance commit; a failed append is logged and
tolerated rather than rolling back a committed charge.
"""

from __future__ import annotations

from typing import Optional, Union

from src.exceptions import ErrorContext, StorageError, ValidationError
from src.logging_config import get_logger
from src.models import CreditHistoryEntry, CreditTransactionType
from src.repositories.credit_repository import CreditRepository, get_credit_repository

logger = get_logger(__name__)

MAX_HISTORY_LIMIT = 100


def _transaction_type(reason: Union[str, CreditTransactionType]) -> CreditTransactionType:
    try:
        return CreditTransactionType(reason)
    except ValueError:
        raise ValidationError(
            message=f"Invalid credit transaction reason: {reason}",
            field="reason"
        )


def _require_int(value: int, name: str, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        qualifier = "positive" if minimum > 0 else "non-negative"
        raise ValidationError(
            message=f"{name} must be a {qualifier} integer",
            field=name
        )


class CreditLedger:
    """
    Service owning credit balances and their history.

    Example:
        >>> ledger = CreditLedger()
        >>> ledger.get_balance("uid_1")
        50
        >>> ledger.charge("uid_1", 2, "email_generation")
        48
    """

    def __init__(self, repository: Optional[CreditRepository] = None) -> None:
        self._repository = repository or get_credit_repository()

    def get_balance(self, user_id: str) -> int:
        """
        Current balance, creating the default record on first read.

        Raises:
            StorageError: If the ledger store is unavailable.
        """
        balance = self._repository.get_or_create_balance(user_id)
        logger.debug("Balance read", user_id=user_id, credits=balance)
        return balance

    def charge(
        self,
        user_id: str,
        amount: int,
        reason: Union[str, CreditTransactionType] = CreditTransactionType.EMAIL_GENERATION
    ) -> int:
        """
        Deduct ``amount`` credits atomically.

        Args:
            user_id: Owner of the balance.
            amount: Positive number of credits to deduct.
            reason: Transaction type recorded in the history.

        Returns:
            The balance after the charge.

        Raises:
            ValidationError: If amount or reason is invalid.
            InsufficientCreditsError: If the balance is below ``amount``.
            StorageError: If the transaction cannot be committed.
        """
        _require_int(amount, "amount", 1)
        transaction_type = _transaction_type(reason)

        new_balance = self._repository.adjust_balance(user_id, -amount)
        logger.info(
            "Credits charged",
            user_id=user_id,
            amount=amount,
            reason=transaction_type.value,
            balance_after=new_balance
        )
        self._record(user_id, transaction_type, -amount, new_balance)
        return new_balance

    def grant(
        self,
        user_id: str,
        amount: int,
        reason: Union[str, CreditTransactionType] = CreditTransactionType.MANUAL
    ) -> int:
        """
        Add ``amount`` credits (top-up, purchase or manual refund).

        Returns:
            The balance after the grant.
        """
        _require_int(amount, "amount", 1)
        transaction_type = _transaction_type(reason)
        if transaction_type is CreditTransactionType.EMAIL_GENERATION:
            raise ValidationError(
                message="email_generation is a debit-only reason",
                field="reason"
            )

        new_balance = self._repository.adjust_balance(user_id, amount)
        logger.info(
            "Credits granted",
            user_id=user_id,
            amount=amount,
            reason=transaction_type.value,
            balance_after=new_balance
        )
        self._record(user_id, transaction_type, amount, new_balance)
        return new_balance

    def initialize(self, user_id: str, amount: int) -> None:
        """
        Set the starting balance at account creation.

        Overwrites any existing value; callers invoke it once per account.
        """
        _require_int(amount, "amount", 0)
        self._repository.set_balance(user_id, amount)
        logger.info("Credits initialized", user_id=user_id, credits=amount)

    def get_history(self, user_id: str, limit: int = 50) -> list[CreditHistoryEntry]:
        """Most recent history entries first, at most MAX_HISTORY_LIMIT of them."""
        _require_int(limit, "limit", 1)
        return self._repository.list_history(user_id, limit=min(limit, MAX_HISTORY_LIMIT))

    def _record(
        self,
        user_id: str,
        transaction_type: CreditTransactionType,
        change: int,
        balance_after: int
    ) -> None:
        entry = CreditHistoryEntry(
            user_id=user_id,
            type=transaction_type,
            change=change,
            balance_after=balance_after
        )
        try:
            self._repository.append_history(entry)
        except StorageError as e:
            # The committed balance stays authoritative.
            logger.error(
                "Credit history entry missing for committed change",
                user_id=user_id,
                change=change,
                balance_after=balance_after,
                error=str(e),
                context=ErrorContext(operation="append_history", user_id=user_id).to_dict()
            )


_ledger: Optional[CreditLedger] = None


def get_credit_ledger() -> CreditLedger:
    """Get the process-wide CreditLedger."""
    global _ledger
    if _ledger is None:
        _ledger = CreditLedger()
    return _ledger
