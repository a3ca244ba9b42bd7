"""
Input Sanitizer
===============

Cleans raw form fields and checks them against per-field limits
before they reach a prompt or a persisted record.

Sanitization runs first; limits are checked on the cleaned value.
Violations for a whole field set are collected and reported together.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from src.exceptions import ValidationError
from src.logging_config import get_logger
from src.models import CtaType, GenerationRequest

logger = get_logger(__name__)

_HTML_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")
_TERMINAL_PUNCTUATION = re.compile(r"[.!?]")

_COMPANY_STRIP = str.maketrans("", "", "<>#")
_PLAIN_TEXT_STRIP = str.maketrans("", "", "<>#{}")


class FieldKind(str, Enum):
    """Sanitization class of a field."""
    NAME = "name"
    COMPANY = "company"
    PLAIN_TEXT = "plain_text"


@dataclass(frozen=True)
class FieldRule:
    """Shape and length constraints for one input field."""

    name: str
    label: str
    kind: FieldKind
    max_chars: int
    alias: Optional[str] = None
    required: bool = False
    max_words: Optional[int] = None
    single_sentence: bool = False


FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule("company_name", "Your Company Name", FieldKind.COMPANY, 50,
              alias="companyName", required=True),
    FieldRule("sender_name_title", "Your Name & Title", FieldKind.PLAIN_TEXT, 50,
              alias="senderNameTitle", required=True),
    FieldRule("product_service", "Product/Service", FieldKind.PLAIN_TEXT, 200,
              alias="productService", required=True, single_sentence=True),
    FieldRule("prospect_first_name", "Prospect First Name", FieldKind.NAME, 30,
              alias="prospectFirstName", required=True),
    FieldRule("prospect_company", "Prospect Company", FieldKind.COMPANY, 50,
              alias="prospectCompany", required=True),
    FieldRule("prospect_title", "Prospect Title", FieldKind.PLAIN_TEXT, 70,
              alias="prospectTitle"),
    FieldRule("key_differentiator", "Key Differentiator", FieldKind.PLAIN_TEXT, 150,
              alias="keyDifferentiator", max_words=25),
    FieldRule("primary_pain", "Primary Pain Point", FieldKind.PLAIN_TEXT, 120,
              alias="primaryPain", max_words=20),
    FieldRule("social_proof_client", "Social Proof Client", FieldKind.PLAIN_TEXT, 60,
              alias="socialProofClient", max_words=10),
    FieldRule("social_proof_result", "Social Proof Result", FieldKind.PLAIN_TEXT, 90,
              alias="socialProofResult", max_words=15),
    FieldRule("signature_line", "Signature 3rd Line", FieldKind.PLAIN_TEXT, 60,
              alias="line3Input", max_words=10),
)

RULES_BY_NAME: dict[str, FieldRule] = {rule.name: rule for rule in FIELD_RULES}


def strip_html(value: str) -> str:
    return _HTML_TAG.sub("", value)


def normalize_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def sanitize(raw_value: Any, rule: FieldRule) -> str:
    """
    Clean one raw value according to its field class.

    ``None`` becomes an empty string; other non-string values are
    converted with ``str`` first.
    """
    if raw_value is None:
        return ""
    value = strip_html(str(raw_value))

    if rule.kind is FieldKind.NAME:
        value = "".join(
            ch for ch in value
            if ch.isalpha() or ch.isspace() or ch in "'-"
        )
    elif rule.kind is FieldKind.COMPANY:
        value = value.translate(_COMPANY_STRIP)
    else:
        value = value.translate(_PLAIN_TEXT_STRIP)

    return normalize_whitespace(value)


def count_words(value: str) -> int:
    return len(value.split())


def has_multiple_sentences(value: str) -> bool:
    return len(_TERMINAL_PUNCTUATION.findall(value)) > 1


def validate(cleaned_value: str, rule: FieldRule) -> list[str]:
    """
    Check a sanitized value against its rule.

    Returns:
        Human-readable violations, empty when the value is valid.
    """
    if not cleaned_value:
        return [f"{rule.label} is required"] if rule.required else []

    violations = []
    if len(cleaned_value) > rule.max_chars:
        violations.append(f"{rule.label} must be {rule.max_chars} characters or less")
    if rule.max_words is not None and count_words(cleaned_value) > rule.max_words:
        violations.append(f"{rule.label} must be {rule.max_words} words or less")
    if rule.single_sentence and has_multiple_sentences(cleaned_value):
        violations.append(f"{rule.label} must be a single sentence.")
    return violations


def _raw_value(raw_fields: Mapping[str, Any], rule: FieldRule) -> Any:
    if rule.name in raw_fields:
        return raw_fields[rule.name]
    if rule.alias:
        return raw_fields.get(rule.alias)
    return None


def _cta_type(raw_fields: Mapping[str, Any]) -> tuple[CtaType, list[str]]:
    raw = raw_fields.get("cta_type", raw_fields.get("ctaType"))
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return CtaType.COLD_OUTREACH, []
    try:
        return CtaType(normalize_whitespace(str(raw))), []
    except ValueError:
        options = ", ".join(option.value for option in CtaType)
        return CtaType.COLD_OUTREACH, [f"CTA Type must be one of: {options}"]


def sanitize_fields(raw_fields: Mapping[str, Any]) -> GenerationRequest:
    """
    Sanitize and validate a complete raw field set.

    Fields may be keyed by their snake_case name or the camelCase
    name used by the web form.

    Returns:
        The validated GenerationRequest.

    Raises:
        ValidationError: Listing every violated constraint.
    """
    cleaned: dict[str, Any] = {}
    violations: list[str] = []

    for rule in FIELD_RULES:
        value = sanitize(_raw_value(raw_fields, rule), rule)
        cleaned[rule.name] = value
        violations.extend(validate(value, rule))

    cleaned["cta_type"], cta_violations = _cta_type(raw_fields)
    violations.extend(cta_violations)

    if violations:
        logger.info("Input rejected", violation_count=len(violations))
        raise ValidationError(
            message=f"Please fix the following: {', '.join(violations)}",
            violations=violations
        )

    return GenerationRequest(**cleaned)
