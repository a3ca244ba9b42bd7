"""Splits a raw completion into individual email drafts."""

from __future__ import annotations

import re

from src.services.prompt_builder import DRAFT_COUNT, DRAFT_DELIMITER

_SEPARATOR_RULE = re.compile(r"-{3,}")

# Leftover headings and labels the model sometimes emits around a body.
_LABEL_LINES = (
    re.compile(r"\bdraft\b", re.IGNORECASE),
    re.compile(r"subject:", re.IGNORECASE),
    re.compile(r"^\s*#+"),
    re.compile(r"^\s*(\*+|[-+]\s)"),
)


def _is_label_line(line: str) -> bool:
    return any(pattern.search(line) for pattern in _LABEL_LINES)


def clean_draft(segment: str) -> str:
    """Drop heading/label lines from one segment and trim it."""
    kept = [line for line in segment.splitlines() if not _is_label_line(line)]
    return "\n".join(kept).strip()


def parse_drafts(raw_text: str, limit: int = DRAFT_COUNT) -> list[str]:
    """
    Split a completion on the draft delimiter.

    Args:
        raw_text: Model output.
        limit: Maximum number of drafts returned.

    Returns:
        Up to ``limit`` non-empty drafts in response order. A non-empty
        response without any usable segment is returned whole as one draft.
    """
    text = _SEPARATOR_RULE.sub("", raw_text or "")
    drafts = [
        draft
        for draft in (clean_draft(segment) for segment in text.split(DRAFT_DELIMITER))
        if draft
    ]

    if not drafts and text.strip() and DRAFT_DELIMITER not in text:
        return [text.strip()]

    return drafts[:limit]
