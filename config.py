"""
Configuration settings for the bacdz-tutor application.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".bactutor"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Generative backend (Gemini)
    # ========================================
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Generative AI (Gemini) API key",
    )
    ai_model_fast: str = Field(
        default="gemini-2.5-flash",
        description="Model for quick explanations, exercises, quizzes and suggestions",
    )
    ai_model_think: str = Field(
        default="gemini-2.5-pro",
        description="Model for step-by-step reasoning explanations",
    )
    ai_model_analyze: str = Field(
        default="gemini-2.5-pro",
        description="Model for in-depth analysis and teacher documents",
    )
    ai_model_search: str = Field(
        default="gemini-2.5-flash",
        description="Model used with Google Search grounding (needs google_search tool support, Gemini 2.x)",
    )
    ai_temperature: float = Field(
        default=0.7,
        description="Sampling temperature for free-form text",
    )
    ai_structured_temperature: float = Field(
        default=0.3,
        description="Sampling temperature for schema-constrained JSON",
    )
    ai_max_output_tokens: int = Field(
        default=8192,
        description="Upper bound on generated tokens per call",
    )

    # ========================================
    # Generation policy
    # ========================================
    schema_retry_attempts: int = Field(
        default=1,
        description="Retries after a structured response fails validation",
    )
    suggestion_count: int = Field(
        default=3,
        description="Follow-up suggestions generated after a chat reply",
    )
    chat_history_turns: int = Field(
        default=6,
        description="Previous transcript messages sent with a chat reply",
    )
    math_notation_subjects: list[str] = Field(
        default=[
            "math",
            "physics",
            "science",
            "tech_civil",
            "tech_electrical",
            "tech_mechanical",
            "tech_process",
            "accounting",
            "economics",
        ],
        description="Subject ids whose prose uses LaTeX notation markers",
    )

    # ========================================
    # Curriculum data
    # ========================================
    catalog_path: Path | None = Field(
        default=None,
        description="Override for the packaged curriculum catalog YAML",
    )
    filter_rules_path: Path | None = Field(
        default=None,
        description="Override for the packaged curriculum filter rules YAML",
    )

    # ========================================
    # Persistence
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DATA_DIR / 'profiles.db'}",
        description="Profile store connection string",
    )
    local_cache_path: Path = Field(
        default=DEFAULT_DATA_DIR / "preferences.db",
        description="Local non-authoritative preference cache",
    )

    # ========================================
    # Identity provider (Supabase)
    # ========================================
    supabase_url: str | None = Field(
        default=None,
        description="Supabase project URL",
    )
    supabase_anon_key: str | None = Field(
        default=None,
        description="Supabase anonymous (public) API key",
    )
    auth_redirect_url: str = Field(
        default="http://localhost:3000",
        description="Redirect target after an OAuth sign-in",
    )

    # ========================================
    # Session
    # ========================================
    single_role_mode: bool = Field(
        default=False,
        description="Skip role selection and start every session as a student",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @property
    def has_gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def has_supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    def uses_math_notation(self, subject_id: str) -> bool:
        """Notation register is configuration keyed by subject id."""
        return subject_id in self.math_notation_subjects


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
