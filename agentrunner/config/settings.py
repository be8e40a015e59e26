"""Environment-bound configuration objects.

This module provides Pydantic BaseSettings-based configuration loading from .env files.
All settings classes automatically load from environment variables with support for
multiple alias names (e.g., AGENT_MODEL and MODEL_ID both work).

Example:
    from agentrunner.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    max_steps = settings.governance.max_steps
    budget = settings.governance.guardrail_retry_budget
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


class ModelSettings(BaseSettings):
    """Model identifier and credentials for the default chat model gateway.

    Loads from .env with alias support:
    - AGENT_MODEL, MODEL_ID (model identifier)
    - AGENT_MODEL_API_KEY, OPENAI_API_KEY (credential)
    - AGENT_MODEL_BASE_URL, OPENAI_BASE_URL (OpenAI-compatible endpoint)
    """

    model_id: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("AGENT_MODEL", "MODEL_ID"),
    )
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AGENT_MODEL_API_KEY", "OPENAI_API_KEY"),
    )
    base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AGENT_MODEL_BASE_URL", "OPENAI_BASE_URL"),
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        validation_alias=AliasChoices("AGENT_MODEL_TEMPERATURE", "MODEL_TEMPERATURE"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
        populate_by_name=True,
    )


class GovernanceSettings(BaseSettings):
    """Runtime governance and control settings.

    Controls run behavior limits and policies:
    - max_steps: Step limit for a run when neither the caller nor the agent sets one (1-500, default: 50)
    - guardrail_retry_budget: Consecutive output-guardrail failures tolerated per check (0-10, default: 1)
    - tool_timeout_seconds: Default per-call wall-clock timeout for tools (default: 30)
    - isolate_transfers: Whether transfers hand the new agent a clean message list (default: True)
    """

    max_steps: int = Field(
        default=50,
        ge=1,
        le=500,
        validation_alias=AliasChoices("MAX_STEPS", "AGENT_MAX_STEPS"),
    )
    guardrail_retry_budget: int = Field(
        default=1,
        ge=0,
        le=10,
        validation_alias=AliasChoices("GUARDRAIL_RETRY_BUDGET", "GUARDRAIL_RETRIES"),
    )
    tool_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias=AliasChoices("TOOL_TIMEOUT_SECONDS", "TOOL_TIMEOUT"),
    )
    isolate_transfers: bool = Field(default=True, alias="ISOLATE_TRANSFERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ObservabilitySettings(BaseSettings):
    """Logging and persistence configuration.

    - log_level: Level for the agentrunner logger (default: INFO)
    - log_dir: Directory for detailed log files; unset disables file logging
    - log_preview_length: Max characters of tool args/results written to logs
    - session_db_path: SQLite path used by SQLiteSessionStore when no path is passed
    """

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: Optional[str] = Field(default=None, alias="LOG_DIR")
    log_preview_length: int = Field(default=500, ge=100, le=5000, alias="LOG_PREVIEW_LENGTH")
    session_db_path: str = Field(default="data/sessions.db", alias="SESSION_DB_PATH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class Settings(BaseSettings):
    """Root application settings loaded from .env file.

    Hierarchical structure containing three nested settings groups:
    - models: Default model identifier and credentials (ModelSettings)
    - governance: Run limits and policies (GovernanceSettings)
    - observability: Logging and session persistence (ObservabilitySettings)

    Use get_settings() to obtain a cached singleton instance, or build one
    explicitly and hand it to the Runner.
    """

    environment: str = Field(default="dev", alias="APP_ENV")
    models: ModelSettings = Field(default_factory=ModelSettings)
    governance: GovernanceSettings = Field(default_factory=GovernanceSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        case_sensitive=False,
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Returns:
        Settings: Cached application settings instance
    """
    return Settings()
