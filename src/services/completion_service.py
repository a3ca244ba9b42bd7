"""
Completion Service
==================

Clients for the hosted text-completion capability.

Three interchangeable backends share one ``complete`` call:
the OpenAI SDK, an intermediary generate-email HTTP endpoint, and a
deterministic mock used in development without consuming quota.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import openai
import requests

from src.config import CompletionSettings, get_settings
from src.exceptions import CompletionServiceError, ErrorCode, ErrorContext
from src.logging_config import get_logger
from src.services.prompt_builder import DRAFT_DELIMITER

logger = get_logger(__name__)

# Upper bound for both drafts combined, whatever the configuration says.
MAX_TOKENS_CAP = 12000


@dataclass(frozen=True)
class RecipientEnvelope:
    """Recipient facts carried alongside the prompt."""

    recipient_name: str
    recipient_email: str
    goal: str
    tone: str


class CompletionService(ABC):
    """A hosted text-generation capability."""

    name = "completion"

    @abstractmethod
    def complete(
        self,
        system_instruction: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        envelope: Optional[RecipientEnvelope] = None
    ) -> str:
        """
        Generate text for a prompt.

        Returns:
            The raw completion text.

        Raises:
            CompletionServiceError: On upstream failure or an empty response.
        """

    def _error(self, message: str, code: ErrorCode = ErrorCode.COMPLETION_ERROR,
               cause: Optional[Exception] = None) -> CompletionServiceError:
        return CompletionServiceError(
            message=message,
            code=code,
            service_name=self.name,
            context=ErrorContext(operation="complete"),
            cause=cause
        )


class OpenAICompletionService(CompletionService):
    """Chat completion through the OpenAI SDK."""

    name = "openai"

    def __init__(
        self,
        settings: Optional[CompletionSettings] = None,
        client: Optional[openai.OpenAI] = None
    ) -> None:
        self._settings = settings or get_settings().completion
        self._client = client

    @property
    def client(self) -> openai.OpenAI:
        """
        Get or create the SDK client.

        Raises:
            CompletionServiceError: If no API key is configured.
        """
        if self._client is None:
            try:
                self._client = openai.OpenAI(
                    api_key=self._settings.api_key or None,
                    timeout=self._settings.timeout_seconds,
                    max_retries=0
                )
            except openai.OpenAIError as e:
                raise self._error("Invalid OpenAI API key", ErrorCode.COMPLETION_AUTH_ERROR, e)
        return self._client

    def complete(
        self,
        system_instruction: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        envelope: Optional[RecipientEnvelope] = None
    ) -> str:
        model = self._settings.model
        logger.info("Requesting completion", service=self.name, model=model)
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=min(max_tokens, MAX_TOKENS_CAP),
            )
        except openai.AuthenticationError as e:
            raise self._error("Invalid OpenAI API key", ErrorCode.COMPLETION_AUTH_ERROR, e)
        except openai.RateLimitError as e:
            raise self._error("API rate limit exceeded", ErrorCode.COMPLETION_RATE_LIMITED, e)
        except openai.APITimeoutError as e:
            raise self._error("Completion request timed out", ErrorCode.COMPLETION_TIMEOUT, e)
        except openai.OpenAIError as e:
            raise self._error(f"Completion request failed: {e}", cause=e)

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise self._error("No response generated", ErrorCode.COMPLETION_EMPTY_RESPONSE)
        return content


class HttpCompletionService(CompletionService):
    """
    Client for the intermediary generate-email endpoint.

    The endpoint takes the recipient envelope plus the prompt as
    ``context`` and answers ``{"drafts": [...]}``. Drafts are joined with
    the draft delimiter so the caller parses every backend the same way.
    """

    name = "generate-email-proxy"

    def __init__(
        self,
        url: str,
        settings: Optional[CompletionSettings] = None,
        session: Optional[requests.Session] = None
    ) -> None:
        self._url = url.rstrip("/")
        self._settings = settings or get_settings().completion
        self._session = session or requests.Session()

    def complete(
        self,
        system_instruction: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        envelope: Optional[RecipientEnvelope] = None
    ) -> str:
        if envelope is None:
            raise self._error("Recipient envelope is required by the generate-email endpoint")

        payload = {
            "recipientName": envelope.recipient_name,
            "recipientEmail": envelope.recipient_email,
            "context": user_prompt,
            "goal": envelope.goal,
            "tone": envelope.tone,
            "config": {
                "temperature": temperature,
                "maxTokens": min(max_tokens, MAX_TOKENS_CAP),
            },
            "model": self._settings.model,
        }

        logger.info("Requesting completion", service=self.name, url=self._url)
        try:
            response = self._session.post(
                self._url,
                json=payload,
                timeout=self._settings.timeout_seconds
            )
        except requests.exceptions.Timeout as e:
            raise self._error("Completion request timed out", ErrorCode.COMPLETION_TIMEOUT, e)
        except requests.exceptions.RequestException as e:
            raise self._error(f"Completion request failed: {e}", cause=e)

        try:
            body = response.json()
        except ValueError as e:
            raise self._error(
                f"Malformed response body (HTTP {response.status_code})", cause=e
            )

        if not response.ok:
            detail = body.get("error") if isinstance(body, dict) else None
            raise self._error(
                f"Generate-email endpoint returned HTTP {response.status_code}: "
                f"{detail or response.text[:200]}"
            )

        drafts = body.get("drafts") if isinstance(body, dict) else None
        if not isinstance(drafts, list):
            raise self._error("Response is missing the drafts list")

        text = f"\n{DRAFT_DELIMITER}\n".join(str(draft) for draft in drafts)
        if not text.strip():
            raise self._error("No response generated", ErrorCode.COMPLETION_EMPTY_RESPONSE)
        return text


class MockCompletionService(CompletionService):
    """Two templated drafts, no network call."""

    name = "mock"

    def complete(
        self,
        system_instruction: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        envelope: Optional[RecipientEnvelope] = None
    ) -> str:
        name = envelope.recipient_name if envelope else "there"
        goal = envelope.goal if envelope else "Cold Outreach"
        logger.warning("Mock mode: returning sample drafts", service=self.name)

        first = (
            f"Subject: {goal} - Let's Connect\n\n"
            f"Hi {name},\n\n"
            "I hope this email finds you well. I wanted to reach out regarding "
            f"{goal.lower()}. Based on what I know about your work, I believe there "
            "could be a great opportunity for us to collaborate.\n\n"
            "Would you be available for a brief conversation this week? I'd love to "
            "learn more about your current priorities and share a few ideas.\n\n"
            "Looking forward to connecting!\n\n"
            "Best regards"
        )
        second = (
            f"Subject: Quick Question for {name}\n\n"
            f"Hello {name},\n\n"
            "I came across your profile and was impressed by your work. I'm reaching "
            f"out about {goal.lower()} and have some insights that could help you and "
            "your team.\n\n"
            "Could we schedule a 15-minute call this week? I'll keep it brief.\n\n"
            "Thanks for considering!\n\n"
            "Warm regards"
        )
        return f"{first}\n{DRAFT_DELIMITER}\n{second}"


def get_completion_service(settings: Optional[CompletionSettings] = None) -> CompletionService:
    """
    Select the completion backend from configuration.

    Mock mode wins, then the intermediary endpoint, then the SDK.
    """
    settings = settings or get_settings().completion
    if settings.use_mock_mode:
        return MockCompletionService()
    if settings.proxy_url:
        return HttpCompletionService(settings.proxy_url, settings=settings)
    return OpenAICompletionService(settings=settings)
