"""Test fixtures and configuration."""

from __future__ import annotations

import threading
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from src.config import CompletionSettings
from src.exceptions import ErrorContext, InsufficientCreditsError, StorageError
from src.models import CreditHistoryEntry
from src.services.completion_service import CompletionService
from src.services.credit_ledger import CreditLedger
from src.services.generation_service import GenerationOrchestrator

TWO_DRAFTS = "Hi Alex...<<<DRAFT_SPLIT>>>Hey Alex..."


class InMemoryCreditRepository:
    """Credit repository backed by dicts, serialized with a lock."""

    def __init__(self, starting_balance: int = 50) -> None:
        self.starting_balance = starting_balance
        self.balances: dict[str, int] = {}
        self.history: list[CreditHistoryEntry] = []
        self.writes = 0
        self.fail_history = False
        self.unavailable = False
        self._lock = threading.Lock()

    def _check_available(self, operation: str) -> None:
        if self.unavailable:
            raise StorageError(
                message="Firestore unavailable",
                context=ErrorContext(operation=operation)
            )

    def get_or_create_balance(self, user_id: str) -> int:
        self._check_available("get_balance")
        with self._lock:
            if user_id not in self.balances:
                self.balances[user_id] = self.starting_balance
                self.writes += 1
            return self.balances[user_id]

    def adjust_balance(self, user_id: str, delta: int) -> int:
        self._check_available("adjust_balance")
        with self._lock:
            current = self.balances.get(user_id, self.starting_balance)
            if current + delta < 0:
                raise InsufficientCreditsError(required=-delta, available=current)
            self.balances[user_id] = current + delta
            self.writes += 1
            return current + delta

    def set_balance(self, user_id: str, credits: int) -> None:
        self._check_available("set_balance")
        with self._lock:
            self.balances[user_id] = credits
            self.writes += 1

    def append_history(self, entry: CreditHistoryEntry) -> str:
        if self.fail_history:
            raise StorageError(message="history write failed")
        self.history.append(entry)
        return f"history_{len(self.history)}"

    def list_history(self, user_id: str, limit: int = 50) -> list[CreditHistoryEntry]:
        entries = [e for e in self.history if e.user_id == user_id]
        return list(reversed(entries))[:limit]


@pytest.fixture
def credit_repository() -> InMemoryCreditRepository:
    """In-memory credit repository with the default starting balance."""
    return InMemoryCreditRepository()


@pytest.fixture
def ledger(credit_repository: InMemoryCreditRepository) -> CreditLedger:
    return CreditLedger(repository=credit_repository)


@pytest.fixture
def completion_settings() -> CompletionSettings:
    return CompletionSettings(
        api_key="test-key",
        model="gpt-4o",
        temperature=0.7,
        max_tokens=6000,
        use_mock_mode=False,
    )


@pytest.fixture
def mock_completion() -> MagicMock:
    """Completion service returning two delimited drafts."""
    service = MagicMock(spec=CompletionService)
    service.complete.return_value = TWO_DRAFTS
    return service


@pytest.fixture
def mock_draft_repository() -> MagicMock:
    repository = MagicMock()
    repository.append_draft.return_value = "draft_123"
    return repository


@pytest.fixture
def orchestrator(
    ledger: CreditLedger,
    mock_completion: MagicMock,
    mock_draft_repository: MagicMock,
    completion_settings: CompletionSettings
) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        ledger=ledger,
        completion_service=mock_completion,
        draft_repository=mock_draft_repository,
        settings=completion_settings,
    )


@pytest.fixture
def raw_fields() -> dict[str, Any]:
    """Raw form fields as posted by the web form."""
    return {
        "companyName": "Outreach Labs",
        "senderNameTitle": "Sam Rivera, Head of Growth",
        "productService": "We write and send personalized cold email sequences for SaaS teams.",
        "prospectFirstName": "Alex",
        "prospectCompany": "Acme Corp",
        "prospectTitle": "VP of Sales",
        "ctaType": "Demo Request",
        "keyDifferentiator": "",
        "primaryPain": "",
        "socialProofClient": "Brightwave",
        "socialProofResult": "",
        "line3Input": "",
    }


@pytest.fixture
def make_fields() -> Callable[..., dict[str, Any]]:
    """Factory for a minimal valid snake_case field set with overrides applied."""

    def _make(**overrides: Any) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "company_name": "Outreach Labs",
            "sender_name_title": "Sam Rivera, Founder",
            "product_service": "Personalized cold email sequences for SaaS teams",
            "prospect_first_name": "Alex",
            "prospect_company": "Acme Corp",
        }
        fields.update(overrides)
        return fields

    return _make
