"""Repositories package."""

from src.repositories.credit_repository import CreditRepository, get_credit_repository
from src.repositories.draft_repository import DraftRepository, get_draft_repository

__all__ = [
    "CreditRepository",
    "get_credit_repository",
    "DraftRepository",
    "get_draft_repository",
]
