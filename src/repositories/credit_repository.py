"""
Credit Repository
=================

Firestore access for per-user credit balances and the
append-only credit history. Balance reads and mutations run
inside Firestore transactions so that the read-check-write
sequence is serialized per user document.
"""

from __future__ import annotations

from typing import Any, Optional

from google.cloud import firestore

from src.config import get_settings
from src.exceptions import (
    ErrorCode,
    ErrorContext,
    InsufficientCreditsError,
    StorageError,
)
from src.logging_config import get_logger
from src.models import CreditHistoryEntry

logger = get_logger(__name__)


def _read_credits(snapshot: Any, default: int) -> int:
    """Credits stored on a balance snapshot, or ``default`` when absent."""
    if not snapshot.exists:
        return default
    credits = (snapshot.to_dict() or {}).get("credits")
    return default if credits is None else int(credits)


def load_or_create_balance(
    transaction: firestore.Transaction,
    balance_ref: firestore.DocumentReference,
    starting_balance: int
) -> int:
    """Read the balance, creating the record with ``starting_balance`` if missing."""
    snapshot = balance_ref.get(transaction=transaction)
    if snapshot.exists:
        return _read_credits(snapshot, starting_balance)
    transaction.set(balance_ref, {"credits": starting_balance})
    return starting_balance


def apply_balance_delta(
    transaction: firestore.Transaction,
    balance_ref: firestore.DocumentReference,
    delta: int,
    starting_balance: int
) -> int:
    """
    Apply ``delta`` to the balance inside ``transaction``.

    A missing record counts as ``starting_balance``. Nothing is
    written when the result would be negative.

    Raises:
        InsufficientCreditsError: If the balance cannot cover a debit.
    """
    snapshot = balance_ref.get(transaction=transaction)
    current = _read_credits(snapshot, starting_balance)
    new_balance = current + delta
    if new_balance < 0:
        raise InsufficientCreditsError(required=-delta, available=current)
    transaction.set(balance_ref, {"credits": new_balance}, merge=True)
    return new_balance


_load_or_create_transactional = firestore.transactional(load_or_create_balance)
_apply_delta_transactional = firestore.transactional(apply_balance_delta)


class CreditRepository:
    """
    Repository for credit balance and history documents.

    Layout:
        users/{user_id}/credits/balance       {credits: int}
        users/{user_id}/creditHistory/{auto}  {type, change, timestamp, balanceAfter}
    """

    def __init__(self, client: Optional[firestore.Client] = None) -> None:
        """
        Initialize the repository.

        Args:
            client: Optional Firestore client. If not provided, creates one.
        """
        self._settings = get_settings()
        self._client = client or firestore.Client(project=self._settings.gcp_project_id)
        self._layout = self._settings.firestore
        self._starting_balance = self._settings.credits.starting_balance

    @property
    def starting_balance(self) -> int:
        return self._starting_balance

    def _user_ref(self, user_id: str) -> firestore.DocumentReference:
        return self._client.collection(self._layout.users_collection).document(user_id)

    def _balance_ref(self, user_id: str) -> firestore.DocumentReference:
        return (
            self._user_ref(user_id)
            .collection(self._layout.credits_subcollection)
            .document(self._layout.balance_document)
        )

    def _history_ref(self, user_id: str) -> firestore.CollectionReference:
        return self._user_ref(user_id).collection(self._layout.history_subcollection)

    def _transaction(self) -> firestore.Transaction:
        return self._client.transaction(max_attempts=self._layout.transaction_max_attempts)

    def get_or_create_balance(self, user_id: str) -> int:
        """
        Read a user's balance, creating the default record if absent.

        Raises:
            StorageError: If Firestore is unavailable.
        """
        try:
            return _load_or_create_transactional(
                self._transaction(),
                self._balance_ref(user_id),
                self._starting_balance
            )
        except Exception as e:
            logger.error("Failed to read balance", user_id=user_id, error=str(e))
            raise StorageError(
                message=f"Failed to read balance: {e}",
                context=ErrorContext(operation="get_balance", user_id=user_id, resource_type="credit_balance"),
                cause=e
            )

    def adjust_balance(self, user_id: str, delta: int) -> int:
        """
        Atomically add ``delta`` to a balance.

        Returns:
            The committed balance.

        Raises:
            InsufficientCreditsError: If a debit exceeds the balance.
            StorageError: If Firestore fails or the transaction exhausts its retries.
        """
        try:
            return _apply_delta_transactional(
                self._transaction(),
                self._balance_ref(user_id),
                delta,
                self._starting_balance
            )
        except InsufficientCreditsError:
            raise
        except Exception as e:
            logger.error("Balance transaction failed", user_id=user_id, delta=delta, error=str(e))
            raise StorageError(
                message=f"Balance transaction failed: {e}",
                code=ErrorCode.LEDGER_TRANSACTION_FAILED,
                context=ErrorContext(operation="adjust_balance", user_id=user_id, resource_type="credit_balance"),
                cause=e
            )

    def set_balance(self, user_id: str, credits: int) -> None:
        """Overwrite a balance unconditionally."""
        try:
            self._balance_ref(user_id).set({"credits": credits})
        except Exception as e:
            logger.error("Failed to set balance", user_id=user_id, error=str(e))
            raise StorageError(
                message=f"Failed to set balance: {e}",
                context=ErrorContext(operation="set_balance", user_id=user_id, resource_type="credit_balance"),
                cause=e
            )

    def append_history(self, entry: CreditHistoryEntry) -> str:
        """
        Append one history document.

        Returns:
            The new document ID.
        """
        try:
            doc_ref = self._history_ref(entry.user_id).document()
            doc_ref.set(entry.to_firestore())
            return doc_ref.id
        except Exception as e:
            raise StorageError(
                message=f"Failed to append credit history: {e}",
                code=ErrorCode.HISTORY_WRITE_ERROR,
                context=ErrorContext(operation="append_history", user_id=entry.user_id, resource_type="credit_history"),
                cause=e
            )

    def list_history(self, user_id: str, limit: int = 50) -> list[CreditHistoryEntry]:
        """Most recent history entries first."""
        try:
            query = (
                self._history_ref(user_id)
                .order_by("timestamp", direction=firestore.Query.DESCENDING)
                .limit(limit)
            )
            return [
                CreditHistoryEntry.from_firestore(user_id, doc.id, doc.to_dict() or {})
                for doc in query.stream()
            ]
        except Exception as e:
            logger.error("Failed to list credit history", user_id=user_id, error=str(e))
            raise StorageError(
                message=f"Failed to list credit history: {e}",
                context=ErrorContext(operation="list_history", user_id=user_id, resource_type="credit_history"),
                cause=e
            )


_repository: Optional[CreditRepository] = None


def get_credit_repository() -> CreditRepository:
    """Get the process-wide CreditRepository."""
    global _repository
    if _repository is None:
        _repository = CreditRepository()
    return _repository
