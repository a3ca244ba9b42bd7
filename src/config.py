"""
Configuration Management
========================

Centralized configuration using Pydantic Settings with validation,
environment variable loading, and type safety.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _as_bool(v) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in ("true", "1", "yes")
    return bool(v)


class FirestoreSettings(BaseSettings):
    """Firestore layout for balances, credit history and saved drafts."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    users_collection: str = Field(
        default="users",
        description="Top-level collection keyed by user id"
    )
    credits_subcollection: str = Field(
        default="credits",
        description="Per-user subcollection holding the balance document"
    )
    balance_document: str = Field(
        default="balance",
        description="Document id of the balance record"
    )
    history_subcollection: str = Field(
        default="creditHistory",
        description="Per-user append-only credit history"
    )
    drafts_subcollection: str = Field(
        default="drafts",
        description="Per-user saved drafts"
    )
    transaction_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Optimistic retries before a ledger transaction gives up"
    )


class CreditSettings(BaseSettings):
    """Credit ledger configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CREDITS_",
        extra="ignore"
    )

    starting_balance: int = Field(
        default=50,
        ge=0,
        description="Balance created lazily for users without a record"
    )


class CompletionSettings(BaseSettings):
    """Hosted text-completion configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    api_key: str = Field(
        default="",
        alias="OPENAI_API_KEY",
        description="API key for the hosted completion service"
    )
    model: str = Field(
        default="gpt-4o",
        alias="OPENAI_MODEL",
        description="Model identifier"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        alias="OPENAI_TEMPERATURE",
        description="Sampling temperature"
    )
    max_tokens: int = Field(
        default=6000,
        ge=1,
        alias="OPENAI_MAX_TOKENS",
        description="Token budget for both drafts combined"
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        alias="OPENAI_TIMEOUT_SECONDS",
        description="Upstream request timeout"
    )
    use_mock_mode: bool = Field(
        default=False,
        alias="USE_MOCK_MODE",
        description="Return templated drafts instead of calling the hosted service"
    )
    proxy_url: Optional[str] = Field(
        default=None,
        alias="COMPLETION_PROXY_URL",
        description="Intermediary generate-email endpoint; used instead of the SDK when set"
    )

    @field_validator("use_mock_mode", mode="before")
    @classmethod
    def validate_mock_mode(cls, v):
        """Convert string to boolean."""
        return _as_bool(v)


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    # Core settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Current environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Server port"
    )

    # GCP settings
    gcp_project_id: Optional[str] = Field(
        default=None,
        alias="GCP_PROJECT_ID",
        description="Google Cloud project ID (defaults to ambient credentials)"
    )

    # Nested settings
    firestore: FirestoreSettings = Field(default_factory=FirestoreSettings)
    credits: CreditSettings = Field(default_factory=CreditSettings)
    completion: CompletionSettings = Field(default_factory=CompletionSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str) -> Environment:
        """Validate and convert environment string to enum."""
        if isinstance(v, Environment):
            return v
        return Environment(v.lower())

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get cached application settings.

    Settings are read from the environment once and reused
    for the lifetime of the process.

    Returns:
        AppSettings: The application settings instance.
    """
    return AppSettings()
