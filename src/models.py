"""
Data Models
===========

Pydantic models for the generation pipeline, the credit ledger
records and the HTTP request/response payloads.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from src.logging_config import get_logger

logger = get_logger(__name__)

PROMPT_TONE = "Confident and professional"
DRAFT_TONE = "Confident but conversational"


class CreditTransactionType(str, Enum):
    """Kind of balance mutation recorded in the credit history."""
    EMAIL_GENERATION = "email_generation"
    MANUAL = "manual"
    REFUND = "refund"
    PURCHASE = "purchase"


class CtaType(str, Enum):
    """Call-to-action style requested for the email."""
    COLD_OUTREACH = "Cold Outreach"
    FOLLOW_UP = "Follow-Up"
    DEMO_REQUEST = "Demo Request"
    DEAL_CLOSING = "Deal Closing"


# ============================================================================
# Domain Records
# ============================================================================

class GenerationRequest(BaseModel):
    """
    Sanitized and validated field set for one generation.

    Optional members are empty strings when the user left them
    blank; the prompt builder resolves their effective values.
    """

    model_config = ConfigDict(frozen=True)

    company_name: str
    sender_name_title: str
    product_service: str
    prospect_first_name: str
    prospect_company: str
    prospect_title: str = ""
    cta_type: CtaType = CtaType.COLD_OUTREACH

    key_differentiator: str = ""
    primary_pain: str = ""
    social_proof_client: str = ""
    social_proof_result: str = ""
    signature_line: str = ""

    tone: str = PROMPT_TONE

    @property
    def recipient_email(self) -> str:
        """Placeholder address derived from prospect name and company."""
        local = self.prospect_first_name.lower().replace(" ", "")
        domain = "".join(self.prospect_company.lower().split())
        return f"{local}@{domain}.com"

    def to_record(self) -> dict[str, Any]:
        """Field set in the camelCase layout used for saved drafts."""
        return {
            "companyName": self.company_name,
            "senderNameTitle": self.sender_name_title,
            "productService": self.product_service,
            "prospectFirstName": self.prospect_first_name,
            "prospectCompany": self.prospect_company,
            "prospectTitle": self.prospect_title,
            "ctaType": self.cta_type.value,
            "tone": DRAFT_TONE,
            "keyDifferentiator": self.key_differentiator or None,
            "primaryPain": self.primary_pain or None,
            "socialProofClient": self.social_proof_client or None,
            "socialProofResult": self.social_proof_result or None,
            "signatureLine": self.signature_line or None,
        }


class CreditHistoryEntry(BaseModel):
    """
    One append-only record of a balance mutation.

    Older history documents may carry a type outside
    CreditTransactionType or no ``balanceAfter``; those are kept as the
    raw string and ``None`` respectively.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )

    id: Optional[str] = None
    user_id: str
    type: Union[CreditTransactionType, str]
    change: int
    balance_after: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def type_value(self) -> str:
        return self.type.value if isinstance(self.type, CreditTransactionType) else self.type

    def to_firestore(self) -> dict[str, Any]:
        return {
            "type": self.type_value,
            "change": self.change,
            "timestamp": self.timestamp,
            "balanceAfter": self.balance_after,
        }

    @classmethod
    def from_firestore(cls, user_id: str, doc_id: str, data: dict[str, Any]) -> CreditHistoryEntry:
        """Create an entry from a Firestore history document."""
        raw_type = str(data.get("type") or CreditTransactionType.MANUAL.value)
        try:
            entry_type: Union[CreditTransactionType, str] = CreditTransactionType(raw_type)
        except ValueError:
            logger.warning(
                "Unrecognized credit history type",
                user_id=user_id,
                history_id=doc_id,
                type=raw_type
            )
            entry_type = raw_type

        return cls(
            id=doc_id,
            user_id=user_id,
            type=entry_type,
            change=data.get("change", 0),
            balance_after=data.get("balanceAfter"),
            timestamp=data.get("timestamp") or datetime.now(timezone.utc),
        )


# ============================================================================
# Request Models
# ============================================================================

class BaseRequestModel(BaseModel):
    """Base model for all requests with common configuration."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore"
    )


class SaveDraftRequest(BaseRequestModel):
    """Request model for saving one generated draft."""

    fields: dict[str, Any] = Field(
        ...,
        description="Raw form fields the draft was generated from"
    )
    generated_text: str = Field(
        ...,
        min_length=1,
        alias="generatedText",
        description="Draft body chosen by the user"
    )


class CompletionConfig(BaseRequestModel):
    """Sampling options accepted by the generate-email endpoint."""

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=600, ge=1, alias="maxTokens")


class GenerateEmailRequest(BaseRequestModel):
    """Wire contract of the intermediary generate-email endpoint."""

    recipient_name: str = Field(..., min_length=1, alias="recipientName")
    recipient_email: str = Field(..., min_length=1, alias="recipientEmail")
    context: str = Field(..., min_length=1)
    goal: str = Field(..., min_length=1)
    tone: str = Field(..., min_length=1)
    config: Optional[CompletionConfig] = None
    model: Optional[str] = None


# ============================================================================
# Response Models
# ============================================================================

class BaseResponseModel(BaseModel):
    """Base model for all responses."""

    model_config = ConfigDict(
        from_attributes=True
    )


class BalanceResponse(BaseResponseModel):
    user_id: str
    credits: int = Field(..., ge=0)


class CreditHistoryResponse(BaseResponseModel):
    user_id: str
    entries: list[CreditHistoryEntry]


class GenerateDraftsResponse(BaseResponseModel):
    """Response after a successful generation."""

    success: bool = True
    drafts: list[str] = Field(
        ...,
        max_length=2,
        description="Ordered candidate email bodies"
    )
    credits_remaining: int = Field(
        ...,
        ge=0,
        description="Balance after the generation charge"
    )


class DraftSavedResponse(BaseResponseModel):
    success: bool = True
    draft_id: str
