"""
Prompt Builder
==============

Renders the instruction document sent to the completion service.

Every optional field resolves to an effective value, either a static
fallback or a value inferred from other fields, so the model sees the
same structure however sparse the input was. Rendering is pure: the
same GenerationRequest always yields the same string.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from src.models import DRAFT_TONE, GenerationRequest

DRAFT_DELIMITER = "<<<DRAFT_SPLIT>>>"
DRAFT_COUNT = 2

SYSTEM_INSTRUCTION = (
    "You are a professional sales email writer. Generate compelling, "
    "personalized sales emails based on the provided context."
)

DEFAULT_PRIMARY_PAIN = "outbound volume but replies stuck under 5%"
DEFAULT_CATEGORY = "SaaS outbound optimization"
SECONDARY_PAIN = "leads slipping through pipeline"

# Ordered: the first matching group wins.
PAIN_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("sdr", "bdr", "sales development", "business development"),
     "SDRs spending hours on manual emails that get under 5% replies"),
    (("cro", "chief revenue", "vp sales", "vp of sales", "head of sales", "sales director"),
     "pipeline coverage falling short of quota targets"),
    (("founder", "co-founder", "ceo", "owner"),
     "founder-led sales not scaling past the first customers"),
    (("marketing", "demand gen", "demand generation", "growth"),
     "leads slipping through pipeline before sales follows up"),
    (("revops", "revenue operations", "sales operations", "sales ops"),
     "outbound data scattered across CRM and spreadsheets"),
    (("account executive", "ae", "account manager"),
     "too few qualified demos on the calendar each week"),
)

CATEGORY_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("email", "outreach", "cold", "sequence", "outbound"), "SaaS outbound optimization"),
    (("crm", "pipeline", "deal"), "Sales pipeline management"),
    (("data", "lead", "leads", "prospect", "prospects", "enrichment", "contact"),
     "Lead data and enrichment"),
    (("analytics", "reporting", "dashboard", "forecast", "forecasting"), "Revenue analytics"),
    (("ai", "automation", "automate", "automates", "workflow"), "Sales automation"),
    (("call", "calls", "dialer", "meeting", "meetings", "calendar"), "Meeting booking"),
)


def _matches(text: str, keywords: tuple[str, ...]) -> bool:
    return any(re.search(rf"\b{re.escape(keyword)}\b", text) for keyword in keywords)


def infer_primary_pain(prospect_title: str) -> str:
    """Dominant pain point for a prospect, guessed from their job title."""
    title = prospect_title.lower()
    for keywords, pain in PAIN_KEYWORDS:
        if _matches(title, keywords):
            return pain
    return DEFAULT_PRIMARY_PAIN


def infer_category(product_service: str) -> str:
    """Topical category of the offer, guessed from its description."""
    description = product_service.lower()
    for keywords, category in CATEGORY_KEYWORDS:
        if _matches(description, keywords):
            return category
    return DEFAULT_CATEGORY


def infer_social_proof_style(client: str, result: str) -> str:
    """Framing for social proof depending on which proof inputs were given."""
    if client and result:
        return "case study + metrics"
    if client:
        return "named client reference"
    if result:
        return "metric-led result"
    return "peer benchmark without named clients"


def _static(value: str) -> Callable[[GenerationRequest], str]:
    return lambda request: value


# Effective value for each optional member of GenerationRequest.
OPTIONAL_FIELD_DEFAULTS: dict[str, Callable[[GenerationRequest], str]] = {
    "prospect_title": _static("decision maker"),
    "key_differentiator": _static("built specifically for SaaS outbound"),
    "primary_pain": lambda request: infer_primary_pain(request.prospect_title),
    "social_proof_client": _static("similar SaaS companies"),
    "social_proof_result": _static("higher demo rates"),
    "signature_line": _static("B2B SaaS outbound expert"),
}


@dataclass(frozen=True)
class ResolvedFields:
    """Field values as they appear in the rendered prompt."""

    company_name: str
    sender_name_title: str
    product_service: str
    prospect_first_name: str
    prospect_company: str
    prospect_title: str
    cta_type: str
    tone: str
    key_differentiator: str
    primary_pain: str
    social_proof_client: str
    social_proof_result: str
    social_proof_style: str
    authority_line: str
    category: str
    context_trigger: str = "hiring SDRs or pipeline growth focus"
    free_value_offer: str = "free 3-email sequence teardown"
    target_department: str = "Sales/SDR"
    current_workflow: str = "HubSpot + manual emails"


def resolve_fields(request: GenerationRequest) -> ResolvedFields:
    """Apply fallbacks and inference to every optional field."""
    effective = {
        name: getattr(request, name) or default(request)
        for name, default in OPTIONAL_FIELD_DEFAULTS.items()
    }
    return ResolvedFields(
        company_name=request.company_name,
        sender_name_title=request.sender_name_title,
        product_service=request.product_service,
        prospect_first_name=request.prospect_first_name,
        prospect_company=request.prospect_company,
        prospect_title=effective["prospect_title"],
        cta_type=request.cta_type.value,
        tone=request.tone,
        key_differentiator=effective["key_differentiator"],
        primary_pain=effective["primary_pain"],
        social_proof_client=effective["social_proof_client"],
        social_proof_result=effective["social_proof_result"],
        social_proof_style=infer_social_proof_style(
            request.social_proof_client, request.social_proof_result
        ),
        authority_line=effective["signature_line"],
        category=infer_category(request.product_service),
    )


def build_prompt(request: GenerationRequest) -> str:
    """
    Render the full instruction document for one request.

    Returns:
        The prompt text. Identical requests render identical text.
    """
    f = resolve_fields(request)
    pain_points = ", ".join(dict.fromkeys((f.primary_pain, SECONDARY_PAIN)))

    sections = [
        (
            "You are an elite B2B sales copywriter for B2B SaaS. You write cold emails "
            "that earn opens, replies and demo bookings for outbound teams at SaaS "
            "companies with 50-100 employees. Each email must read like a personal 1:1 "
            "note from one senior sales leader to another, never generic, corporate or "
            "AI-sounding."
        ),
        "\n".join([
            "## CONTEXT",
            f"- Sender Company: {f.company_name}",
            f"- Sender Name & Title: {f.sender_name_title}",
            f"- Product/Service: {f.product_service}",
            f"- Key Differentiator: {f.key_differentiator}",
            f"- Prospect: {f.prospect_first_name}, {f.prospect_title} at {f.prospect_company}",
            f"- Context/Trigger: {f.context_trigger}",
            f"- Category: {f.category}",
            f"- Target Department: {f.target_department}",
            f"- Current Workflow: {f.current_workflow}",
            f"- Social Proof: {f.social_proof_client} -> {f.social_proof_result}",
            f"- Social Proof Style: {f.social_proof_style}",
            f"- Free Value Offer: {f.free_value_offer} (lead with it in the body)",
            f"- Tone: {f.tone}",
            f"- CTA Type: {f.cta_type}",
            f"- Core Pain Points: {pain_points}",
            f"- PRIMARY Pain: {f.primary_pain}",
        ]),
        "\n".join([
            "## SAFETY RULES",
            "- Do not invent prospect details, metrics, client names or results",
            "- Do not promise metrics that were not provided",
            "- No meta-comments and nothing that sounds machine-written",
            "- No all-caps words and no repeated punctuation",
            "- At most 1 link, no attachments, no spam trigger words",
        ]),
        "\n".join([
            "## STRUCTURE RULES",
            "- BODY: 75-100 words, 3-5 sentences of about 10-14 words each",
            "- 2-3 paragraphs, no block longer than 3 lines",
            "- 6th grade reading level; pipeline/SDR/outbound/demo jargon is fine, buzzwords are not",
            "- Mention the current workflow where it fits",
        ]),
        "\n".join([
            "## FRAMEWORK (follow this order)",
            "1. Hook (max 20 words): use the exact context trigger",
            f"2. Problem (max 20 words): the PRIMARY pain ({f.primary_pain})",
            "3. Agitation (max 20 words): quantify the cost with a number or percentage",
            f"4. Solution + Proof (max 25 words): {f.product_service} with {f.social_proof_style} proof",
            f"5. Call to action (8-20 words): {f.cta_type}, answerable in 1-3 words, not open-ended",
        ]),
        "\n".join([
            "## PSYCHOLOGICAL TRIGGERS",
            "- Reciprocity: offer the free value first",
            "- Social proof: one comparable SaaS client",
            "- Loss aversion: quantify lost leads",
            "- Authority: the signature shows outbound expertise",
            "- Commitment: a yes/no call to action",
        ]),
        "\n".join([
            "## FORMATTING",
            "- Plain text only, no markdown, no bold, no bullet points",
            "- Signature of exactly 3 lines:",
            f"  {f.sender_name_title}",
            f"  {f.company_name}",
            f"  B2B SaaS outbound | {f.authority_line}",
        ]),
        "\n".join([
            "## OUTPUT",
            "- The email body followed by the signature",
            "- No subject line, no analysis, no variant labels",
        ]),
        "\n".join([
            "## QUALITY CHECK (rewrite if any item fails)",
            "- 75-100 words in 2-3 paragraphs",
            "- Reciprocity, social proof and loss aversion are all present",
            "- The call to action can be answered in 1-3 words",
            "- Plain text, at most 1 link, no spam triggers",
            "- USE ONLY THE PROVIDED CONTEXT. DO NOT ASSUME OR FILL ANY MISSING FACTS.",
        ]),
    ]
    return "\n\n".join(sections)


def build_completion_prompt(request: GenerationRequest, prompt: str) -> str:
    """Wrap a rendered prompt in the instruction to return two delimited drafts."""
    return "\n".join([
        f"Generate {DRAFT_COUNT} email drafts in plain text only. Do NOT include a subject "
        "line, analysis, variants, markdown, or bold. Return only the full email body text.",
        "",
        f"Recipient Name: {request.prospect_first_name}",
        f"Recipient Email: {request.recipient_email}",
        f"Context: {prompt}",
        f"Goal: {request.cta_type.value}",
        f"Tone: {DRAFT_TONE}",
        "",
        "Each draft should:",
        "- Address the recipient by name",
        "- Incorporate the provided context naturally",
        "- Align with the specified goal and match the desired tone",
        "- Include a clear call-to-action",
        "",
        "Return only the email body for each draft, separated by the exact delimiter on its own line:",
        DRAFT_DELIMITER,
    ])
