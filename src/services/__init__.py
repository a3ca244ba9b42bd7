"""Services package."""

from src.services.credit_ledger import CreditLedger, get_credit_ledger
from src.services.generation_service import (
    GENERATION_COST,
    GenerationOrchestrator,
    get_generation_orchestrator,
)

__all__ = [
    "CreditLedger",
    "get_credit_ledger",
    "GENERATION_COST",
    "GenerationOrchestrator",
    "get_generation_orchestrator",
]
