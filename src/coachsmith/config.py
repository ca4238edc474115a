"""Configuration management for CoachSmith."""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FALLBACK_MODELS = [
    "models/gemini-pro",
    "gemini-pro",
    "models/gemini-1.5-flash",
    "gemini-1.5-flash",
    "models/gemini-1.5-pro",
    "gemini-1.5-pro",
]


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "CoachSmith"
    environment: str = Field(default="development", validation_alias=AliasChoices("COACH_ENV", "ENVIRONMENT"))

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_timezone: str = "UTC"

    # API Keys
    gemini_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY")
    )

    # Database
    database_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL", "SUPABASE_DB_URL")
    )
    database_sslmode: str = Field(default="require", validation_alias=AliasChoices("COACH_DB_SSLMODE"))

    # LLM Configuration
    default_model: str = Field(default="gemini-pro", validation_alias=AliasChoices("COACH_DEFAULT_MODEL"))
    fallback_models: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FALLBACK_MODELS),
        validation_alias=AliasChoices("COACH_FALLBACK_MODELS"),
    )
    discover_models: bool = Field(default=True, validation_alias=AliasChoices("COACH_DISCOVER_MODELS"))
    llm_debug_prompts: bool = Field(default=False, validation_alias=AliasChoices("LLM_DEBUG_PROMPTS"))

    # Response cache
    cache_ttl_seconds: int = Field(default=300, ge=1, validation_alias=AliasChoices("COACH_CACHE_TTL_SECONDS"))
    cache_max_entries: int = Field(default=1000, ge=1, validation_alias=AliasChoices("COACH_CACHE_MAX_ENTRIES"))

    # Identity
    identity_header: str = Field(default="X-User-Id", validation_alias=AliasChoices("COACH_IDENTITY_HEADER"))

    # Schema description
    schema_file: Optional[str] = Field(default=None, validation_alias=AliasChoices("COACH_SCHEMA_FILE"))

    # Prompt budget
    max_prompt_rows: int = Field(default=50, ge=1, validation_alias=AliasChoices("COACH_MAX_PROMPT_ROWS"))
    max_prompt_chars: int = Field(default=12000, ge=500, validation_alias=AliasChoices("COACH_MAX_PROMPT_CHARS"))
    sample_rows: int = Field(default=3, ge=0, validation_alias=AliasChoices("COACH_SAMPLE_ROWS"))

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, reading ``.env`` once."""
    return Settings()
