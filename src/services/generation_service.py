"""
Generation Service
==================

Sequences validation, credit authorization, prompting, completion
and parsing into one request/response cycle.

Credits are charged before the completion call and are not returned
when the upstream call fails or yields fewer than two drafts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from src.config import CompletionSettings, get_settings
from src.exceptions import (
    DraftGeneratorError,
    InsufficientCreditsError,
    ValidationError,
)
from src.logging_config import get_logger, log_execution_time
from src.models import DRAFT_TONE, CreditTransactionType, GenerationRequest
from src.repositories.draft_repository import DraftRepository, get_draft_repository
from src.services.completion_service import (
    CompletionService,
    RecipientEnvelope,
    get_completion_service,
)
from src.services.credit_ledger import CreditLedger, get_credit_ledger
from src.services.draft_parser import parse_drafts
from src.services.input_sanitizer import sanitize_fields
from src.services.prompt_builder import (
    SYSTEM_INSTRUCTION,
    build_completion_prompt,
    build_prompt,
)

logger = get_logger(__name__)

GENERATION_COST = 2


class GenerationState(str, Enum):
    """Stages of one generation run."""
    IDLE = "idle"
    VALIDATING = "validating"
    AUTHORIZING = "authorizing"
    PROMPTING = "prompting"
    AWAITING_COMPLETION = "awaiting_completion"
    PARSING = "parsing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({GenerationState.DONE, GenerationState.FAILED})


@dataclass
class GenerationRun:
    """State and results of one generation attempt."""

    user_id: str
    state: GenerationState = GenerationState.IDLE
    failed_in: Optional[GenerationState] = None
    failure: Optional[Exception] = None
    request: Optional[GenerationRequest] = None
    balance_after: Optional[int] = None
    prompt: Optional[str] = None
    drafts: list[str] = field(default_factory=list)

    def advance(self, state: GenerationState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Generation run already {self.state.value}")
        logger.debug(
            "Generation state change",
            user_id=self.user_id,
            from_state=self.state.value,
            to_state=state.value
        )
        self.state = state

    def fail(self, error: Exception) -> None:
        self.failed_in = self.state
        self.failure = error
        self.state = GenerationState.FAILED

    @property
    def charged(self) -> bool:
        return self.balance_after is not None


class GenerationOrchestrator:
    """
    Service producing email drafts for a user.

    Example:
        >>> orchestrator = GenerationOrchestrator()
        >>> drafts = orchestrator.generate("uid_1", {"companyName": "Acme", ...})
        >>> len(drafts) <= 2
        True
    """

    def __init__(
        self,
        ledger: Optional[CreditLedger] = None,
        completion_service: Optional[CompletionService] = None,
        draft_repository: Optional[DraftRepository] = None,
        settings: Optional[CompletionSettings] = None
    ) -> None:
        self._settings = settings or get_settings().completion
        self._ledger = ledger or get_credit_ledger()
        self._completion = completion_service or get_completion_service(self._settings)
        self._draft_repository = draft_repository

    @property
    def draft_repository(self) -> DraftRepository:
        if self._draft_repository is None:
            self._draft_repository = get_draft_repository()
        return self._draft_repository

    def generate(self, user_id: str, raw_fields: Mapping[str, Any]) -> list[str]:
        """
        Generate up to two drafts for ``user_id``.

        Raises:
            ValidationError: With every violated field constraint.
            InsufficientCreditsError: If the balance is below the generation cost.
            CompletionServiceError: If the completion call fails.
            StorageError: If the ledger is unavailable.
        """
        return self.run(user_id, raw_fields).drafts

    @log_execution_time()
    def run(self, user_id: str, raw_fields: Mapping[str, Any]) -> GenerationRun:
        """
        Execute one generation and return its run record.

        The run records the stage a failure happened in before the
        error propagates.
        """
        run = GenerationRun(user_id=user_id)
        try:
            self._execute(run, raw_fields)
        except Exception as e:
            run.fail(e)
            self._log_failure(run, e)
            raise
        return run

    def _execute(self, run: GenerationRun, raw_fields: Mapping[str, Any]) -> None:
        run.advance(GenerationState.VALIDATING)
        request = sanitize_fields(raw_fields)
        run.request = request

        run.advance(GenerationState.AUTHORIZING)
        run.balance_after = self._ledger.charge(
            run.user_id, GENERATION_COST, CreditTransactionType.EMAIL_GENERATION
        )

        run.advance(GenerationState.PROMPTING)
        run.prompt = build_prompt(request)
        user_prompt = build_completion_prompt(request, run.prompt)

        run.advance(GenerationState.AWAITING_COMPLETION)
        raw_text = self._completion.complete(
            SYSTEM_INSTRUCTION,
            user_prompt,
            self._settings.temperature,
            self._settings.max_tokens,
            envelope=RecipientEnvelope(
                recipient_name=request.prospect_first_name,
                recipient_email=request.recipient_email,
                goal=request.cta_type.value,
                tone=DRAFT_TONE,
            ),
        )

        run.advance(GenerationState.PARSING)
        run.drafts = parse_drafts(raw_text)
        if len(run.drafts) < 2:
            logger.warning(
                "Completion yielded fewer drafts than requested",
                user_id=run.user_id,
                draft_count=len(run.drafts)
            )

        run.advance(GenerationState.DONE)
        logger.info(
            "Drafts generated",
            user_id=run.user_id,
            draft_count=len(run.drafts),
            credits_remaining=run.balance_after
        )

    def _log_failure(self, run: GenerationRun, error: Exception) -> None:
        failed_in = run.failed_in.value if run.failed_in else None
        fields = {
            "user_id": run.user_id,
            "failed_in": failed_in,
            "charged": run.charged,
            "error_type": type(error).__name__,
        }
        if isinstance(error, DraftGeneratorError):
            fields["error_code"] = error.code.value

        if isinstance(error, (ValidationError, InsufficientCreditsError)):
            logger.info("Generation rejected", **fields)
        else:
            logger.error("Generation failed", error=str(error), **fields)

    def save_draft(
        self,
        user_id: str,
        raw_fields: Mapping[str, Any],
        generated_text: str
    ) -> str:
        """
        Persist one chosen draft with the fields it was generated from.

        Returns:
            The saved draft ID.
        """
        request = sanitize_fields(raw_fields)
        return self.draft_repository.append_draft(user_id, request, generated_text.strip())


_orchestrator: Optional[GenerationOrchestrator] = None


def get_generation_orchestrator() -> GenerationOrchestrator:
    """Get the process-wide GenerationOrchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = GenerationOrchestrator()
    return _orchestrator
