"""
Outbound Draft Generator
========================

A credit-gated service that turns prospect and sender facts into
AI-generated outbound sales email drafts.

Architecture:
    - config: Application configuration with Pydantic Settings
    - models: Data models with Pydantic validation
    - services/: Ledger, sanitization, prompting, completion, parsing
    - repositories/: Data access layer (Firestore)
    - exceptions: Custom exception hierarchy
    - logging_config: Structured Cloud Run logging
"""

__version__ = "1.0.0"
