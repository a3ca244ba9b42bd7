"""
Custom Exception Hierarchy
==========================

Structured exceptions for the draft generator with error codes,
user-facing messages, and context preservation for diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for the application."""

    # Generic errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    MISSING_USER = "ERR_1002"

    # Credit errors (2xxx)
    INSUFFICIENT_CREDITS = "ERR_2000"

    # Storage errors (3xxx)
    STORAGE_UNAVAILABLE = "ERR_3000"
    LEDGER_TRANSACTION_FAILED = "ERR_3001"
    HISTORY_WRITE_ERROR = "ERR_3002"
    DRAFT_WRITE_ERROR = "ERR_3003"

    # Completion service errors (4xxx)
    COMPLETION_ERROR = "ERR_4000"
    COMPLETION_EMPTY_RESPONSE = "ERR_4001"
    COMPLETION_RATE_LIMITED = "ERR_4002"
    COMPLETION_AUTH_ERROR = "ERR_4003"
    COMPLETION_TIMEOUT = "ERR_4004"


@dataclass
class ErrorContext:
    """Context information for error tracking and debugging."""

    operation: str = ""
    user_id: Optional[str] = None
    resource_type: Optional[str] = None
    additional_info: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging/serialization."""
        result = {"operation": self.operation}
        if self.user_id:
            result["user_id"] = self.user_id
        if self.resource_type:
            result["resource_type"] = self.resource_type
        if self.additional_info:
            result.update(self.additional_info)
        return result


class DraftGeneratorError(Exception):
    """
    Base exception for all draft generator errors.

    Carries an error code for programmatic handling, a diagnostic
    message, a user-facing message, debugging context and the
    original exception when one exists.

    Example:
        >>> raise DraftGeneratorError(
        ...     message="Ledger unavailable",
        ...     code=ErrorCode.STORAGE_UNAVAILABLE,
        ...     context=ErrorContext(operation="charge", user_id="uid_1")
        ... )
    """

    user_message: Optional[str] = None

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or ErrorContext()
        self.cause = cause

    @property
    def public_message(self) -> str:
        """Message safe to show to the end user."""
        return self.user_message or self.message

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Diagnostic detail is left out when the error defines a
        generic user-facing message.
        """
        result = {
            "error": True,
            "code": self.code.value,
            "message": self.public_message,
        }
        if self.user_message is None and self.context.operation:
            result["context"] = self.context.to_dict()
        return result

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.operation:
            parts.append(f"(operation: {self.context.operation})")
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " ".join(parts)


class ValidationError(DraftGeneratorError):
    """Raised when one or more input constraints are violated."""

    def __init__(
        self,
        message: str = "Input validation failed",
        violations: Optional[list[str]] = None,
        field: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        context = kwargs.pop("context", ErrorContext())
        if field:
            context.additional_info["field"] = field
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            context=context,
            **kwargs
        )
        self.violations = list(violations) if violations else [message]

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["violations"] = self.violations
        return result


class MissingUserError(DraftGeneratorError):
    """Raised when a request carries no authenticated user id."""

    def __init__(self, message: str = "Authenticated user id is required", **kwargs: Any) -> None:
        super().__init__(message=message, code=ErrorCode.MISSING_USER, **kwargs)


class InsufficientCreditsError(DraftGeneratorError):
    """Raised when a charge exceeds the available balance."""

    def __init__(
        self,
        required: int,
        available: int,
        message: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        msg = message or "Insufficient credits. Please purchase more."
        context = kwargs.pop("context", ErrorContext())
        context.additional_info.update({"required": required, "available": available})
        super().__init__(
            message=msg,
            code=ErrorCode.INSUFFICIENT_CREDITS,
            context=context,
            **kwargs
        )
        self.required = required
        self.available = available


class StorageError(DraftGeneratorError):
    """Raised when the ledger store is unavailable or a transaction gives up."""

    user_message = "Credit storage is temporarily unavailable. Please try again."

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.STORAGE_UNAVAILABLE,
        **kwargs: Any
    ) -> None:
        super().__init__(message=message, code=code, **kwargs)


class CompletionServiceError(DraftGeneratorError):
    """Raised when the hosted completion service fails or returns nothing usable."""

    user_message = "Failed to generate email drafts. Please try again."

    def __init__(
        self,
        message: str = "Completion service error",
        code: ErrorCode = ErrorCode.COMPLETION_ERROR,
        service_name: str = "completion",
        **kwargs: Any
    ) -> None:
        context = kwargs.pop("context", ErrorContext())
        context.additional_info["service"] = service_name
        super().__init__(message=message, code=code, context=context, **kwargs)
        self.service_name = service_name
