"""Tests for the credit ledger and its Firestore repository."""

import threading
from unittest.mock import MagicMock, patch

import pytest

from src.exceptions import (
    ErrorCode,
    InsufficientCreditsError,
    StorageError,
    ValidationError,
)
from src.models import CreditHistoryEntry, CreditTransactionType
from src.repositories.credit_repository import (
    CreditRepository,
    apply_balance_delta,
    load_or_create_balance,
)
from src.services.credit_ledger import MAX_HISTORY_LIMIT, CreditLedger


def _snapshot(credits=None, exists=True):
    snapshot = MagicMock()
    snapshot.exists = exists
    snapshot.to_dict.return_value = {"credits": credits} if exists else None
    return snapshot


def _balance_ref(snapshot):
    ref = MagicMock()
    ref.get.return_value = snapshot
    return ref


class TestCreditLedger:
    """Tests for CreditLedger against an in-memory store."""

    def test_first_read_creates_default_balance(self, ledger, credit_repository):
        assert ledger.get_balance("user_1") == 50
        assert credit_repository.balances == {"user_1": 50}

    def test_repeated_read_does_not_write(self, ledger, credit_repository):
        ledger.get_balance("user_1")
        writes = credit_repository.writes

        assert ledger.get_balance("user_1") == 50
        assert credit_repository.writes == writes

    def test_charge_deducts_and_records_history(self, ledger, credit_repository):
        assert ledger.charge("user_1", 2) == 48

        assert credit_repository.balances["user_1"] == 48
        assert len(credit_repository.history) == 1
        entry = credit_repository.history[0]
        assert entry.user_id == "user_1"
        assert entry.type == CreditTransactionType.EMAIL_GENERATION
        assert entry.change == -2
        assert entry.balance_after == 48

    def test_sequential_charges(self, ledger):
        ledger.get_balance("user_1")
        balances = [ledger.charge("user_1", 2) for _ in range(3)]
        assert balances == [48, 46, 44]

    def test_charge_to_exactly_zero(self, ledger, credit_repository):
        credit_repository.balances["user_1"] = 2
        assert ledger.charge("user_1", 2) == 0

    def test_insufficient_credits_leaves_balance(self, ledger, credit_repository):
        credit_repository.balances["user_1"] = 1

        with pytest.raises(InsufficientCreditsError) as exc_info:
            ledger.charge("user_1", 2)

        assert exc_info.value.code == ErrorCode.INSUFFICIENT_CREDITS
        assert exc_info.value.required == 2
        assert exc_info.value.available == 1
        assert credit_repository.balances["user_1"] == 1
        assert credit_repository.history == []

    @pytest.mark.parametrize("amount", [0, -1, True, 1.5, "2"])
    def test_charge_rejects_invalid_amount(self, ledger, credit_repository, amount):
        with pytest.raises(ValidationError):
            ledger.charge("user_1", amount)
        assert credit_repository.writes == 0

    def test_charge_rejects_unknown_reason(self, ledger, credit_repository):
        with pytest.raises(ValidationError) as exc_info:
            ledger.charge("user_1", 2, reason="coffee")

        assert "coffee" in exc_info.value.message
        assert credit_repository.writes == 0

    def test_charge_accepts_reason_string(self, ledger, credit_repository):
        ledger.charge("user_1", 2, reason="email_generation")
        assert credit_repository.history[0].type == CreditTransactionType.EMAIL_GENERATION

    def test_history_failure_keeps_committed_charge(self, ledger, credit_repository):
        credit_repository.fail_history = True

        assert ledger.charge("user_1", 2) == 48
        assert credit_repository.balances["user_1"] == 48

    def test_storage_failure_propagates(self, ledger, credit_repository):
        credit_repository.unavailable = True

        with pytest.raises(StorageError):
            ledger.charge("user_1", 2)

    def test_grant_adds_credits(self, ledger, credit_repository):
        credit_repository.balances["user_1"] = 10

        assert ledger.grant("user_1", 20, reason=CreditTransactionType.PURCHASE) == 30
        assert credit_repository.history[0].change == 20
        assert credit_repository.history[0].type == CreditTransactionType.PURCHASE

    def test_grant_rejects_debit_reason(self, ledger):
        with pytest.raises(ValidationError):
            ledger.grant("user_1", 5, reason=CreditTransactionType.EMAIL_GENERATION)

    def test_initialize_overwrites(self, ledger, credit_repository):
        credit_repository.balances["user_1"] = 3

        ledger.initialize("user_1", 100)

        assert credit_repository.balances["user_1"] == 100

    def test_initialize_allows_zero(self, ledger, credit_repository):
        ledger.initialize("user_1", 0)
        assert credit_repository.balances["user_1"] == 0

    def test_initialize_rejects_negative(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            ledger.initialize("user_1", -5)
        assert exc_info.value.message == "amount must be a non-negative integer"

    def test_history_newest_first(self, ledger):
        ledger.charge("user_1", 2)
        ledger.grant("user_1", 10)
        ledger.charge("user_2", 2)

        history = ledger.get_history("user_1")

        assert [entry.change for entry in history] == [10, -2]

    def test_history_limit(self, ledger):
        for _ in range(5):
            ledger.charge("user_1", 1)
        assert len(ledger.get_history("user_1", limit=3)) == 3

    def test_history_limit_capped(self):
        repository = MagicMock()
        repository.list_history.return_value = []

        CreditLedger(repository=repository).get_history("user_1", limit=500)

        repository.list_history.assert_called_once_with("user_1", limit=MAX_HISTORY_LIMIT)

    def test_concurrent_charges_respect_repository_contract(self, ledger, credit_repository):
        """Ledger never overdraws against a repository that serializes per-user adjustments."""
        credit_repository.balances["user_1"] = 10
        results = []
        errors = []

        def charge():
            try:
                results.append(ledger.charge("user_1", 2))
            except InsufficientCreditsError as e:
                errors.append(e)

        threads = [threading.Thread(target=charge) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 5
        assert len(errors) == 3
        assert sorted(results) == [0, 2, 4, 6, 8]
        assert credit_repository.balances["user_1"] == 0


class TestBalanceTransactions:
    """Tests for the functions run inside Firestore transactions."""

    def test_apply_delta_writes_new_balance(self):
        transaction = MagicMock()
        ref = _balance_ref(_snapshot(credits=10))

        assert apply_balance_delta(transaction, ref, -2, 50) == 8

        ref.get.assert_called_once_with(transaction=transaction)
        transaction.set.assert_called_once_with(ref, {"credits": 8}, merge=True)

    def test_apply_delta_missing_record_uses_starting_balance(self):
        transaction = MagicMock()
        ref = _balance_ref(_snapshot(exists=False))

        assert apply_balance_delta(transaction, ref, -2, 50) == 48
        transaction.set.assert_called_once_with(ref, {"credits": 48}, merge=True)

    def test_apply_delta_insufficient_writes_nothing(self):
        transaction = MagicMock()
        ref = _balance_ref(_snapshot(credits=1))

        with pytest.raises(InsufficientCreditsError):
            apply_balance_delta(transaction, ref, -2, 50)

        transaction.set.assert_not_called()

    def test_load_creates_missing_record(self):
        transaction = MagicMock()
        ref = _balance_ref(_snapshot(exists=False))

        assert load_or_create_balance(transaction, ref, 50) == 50
        transaction.set.assert_called_once_with(ref, {"credits": 50})

    def test_load_existing_record(self):
        transaction = MagicMock()
        ref = _balance_ref(_snapshot(credits=12))

        assert load_or_create_balance(transaction, ref, 50) == 12
        transaction.set.assert_not_called()


class TestCreditRepository:
    """Tests for CreditRepository with a mocked Firestore client."""

    @pytest.fixture
    def mock_client(self):
        return MagicMock()

    @pytest.fixture
    def repository(self, mock_client):
        return CreditRepository(client=mock_client)

    def test_adjust_balance_wraps_commit_failure(self, repository):
        with patch(
            "src.repositories.credit_repository._apply_delta_transactional",
            side_effect=ValueError("Failed to commit transaction in 5 attempts."),
        ):
            with pytest.raises(StorageError) as exc_info:
                repository.adjust_balance("user_1", -2)

        assert exc_info.value.code == ErrorCode.LEDGER_TRANSACTION_FAILED
        assert exc_info.value.context.user_id == "user_1"

    def test_adjust_balance_passes_insufficient_credits(self, repository):
        with patch(
            "src.repositories.credit_repository._apply_delta_transactional",
            side_effect=InsufficientCreditsError(required=2, available=1),
        ):
            with pytest.raises(InsufficientCreditsError):
                repository.adjust_balance("user_1", -2)

    def test_adjust_balance_uses_configured_attempts(self, repository, mock_client):
        with patch(
            "src.repositories.credit_repository._apply_delta_transactional",
            return_value=48,
        ) as transactional:
            assert repository.adjust_balance("user_1", -2) == 48

        mock_client.transaction.assert_called_once_with(max_attempts=5)
        args = transactional.call_args[0]
        assert args[2] == -2
        assert args[3] == 50

    def test_balance_document_path(self, repository, mock_client):
        with patch(
            "src.repositories.credit_repository._load_or_create_transactional",
            return_value=50,
        ):
            repository.get_or_create_balance("user_1")

        mock_client.collection.assert_called_with("users")
        mock_client.collection.return_value.document.assert_called_with("user_1")
        user_ref = mock_client.collection.return_value.document.return_value
        user_ref.collection.assert_called_with("credits")
        user_ref.collection.return_value.document.assert_called_with("balance")

    def test_get_balance_wraps_failure(self, repository):
        with patch(
            "src.repositories.credit_repository._load_or_create_transactional",
            side_effect=RuntimeError("unavailable"),
        ):
            with pytest.raises(StorageError) as exc_info:
                repository.get_or_create_balance("user_1")

        assert exc_info.value.code == ErrorCode.STORAGE_UNAVAILABLE

    def test_append_history(self, repository, mock_client):
        history = mock_client.collection.return_value.document.return_value.collection.return_value
        history.document.return_value.id = "hist_1"
        entry = CreditHistoryEntry(
            user_id="user_1",
            type=CreditTransactionType.EMAIL_GENERATION,
            change=-2,
            balance_after=48,
        )

        assert repository.append_history(entry) == "hist_1"

        written = history.document.return_value.set.call_args[0][0]
        assert written["type"] == "email_generation"
        assert written["change"] == -2
        assert written["balanceAfter"] == 48
        assert "timestamp" in written

    def test_append_history_failure(self, repository, mock_client):
        history = mock_client.collection.return_value.document.return_value.collection.return_value
        history.document.return_value.set.side_effect = RuntimeError("write failed")
        entry = CreditHistoryEntry(
            user_id="user_1",
            type=CreditTransactionType.MANUAL,
            change=5,
            balance_after=55,
        )

        with pytest.raises(StorageError) as exc_info:
            repository.append_history(entry)

        assert exc_info.value.code == ErrorCode.HISTORY_WRITE_ERROR

    def test_list_history_keeps_unknown_types(self, repository, mock_client):
        history = mock_client.collection.return_value.document.return_value.collection.return_value
        known = MagicMock(id="hist_1")
        known.to_dict.return_value = {"type": "manual", "change": 10, "balanceAfter": 60}
        unknown = MagicMock(id="hist_2")
        unknown.to_dict.return_value = {"type": "bonus", "change": 5}
        history.order_by.return_value.limit.return_value.stream.return_value = [known, unknown]

        entries = repository.list_history("user_1")

        assert [entry.id for entry in entries] == ["hist_1", "hist_2"]
        assert entries[0].type == CreditTransactionType.MANUAL
        assert entries[1].type == "bonus"
        assert entries[1].change == 5
        assert entries[1].balance_after is None
