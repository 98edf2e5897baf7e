"""
Configuration settings for the tutor.

Uses Pydantic Settings for environment variable management with .env file support.
Every setting can be overridden with a ``LEX_TUTOR_`` prefixed variable.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lex_tutor.db import DEFAULT_DB_PATH


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LEX_TUTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    db_path: str = Field(default=DEFAULT_DB_PATH, description="SQLite database file")

    # Gemini
    google_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("LEX_TUTOR_GOOGLE_API_KEY", "GOOGLE_API_KEY", "API_KEY"),
        description="Google AI Studio API key",
    )
    model_name: str = Field(default="gemini-2.5-flash", description="Gemini model used for generation")
    request_timeout: float = Field(default=60.0, gt=0, description="Seconds before a generation call is abandoned")

    # Logging
    log_level: str = Field(default="INFO")
    log_file: str = Field(default=str(Path.home() / ".lex_tutor" / "lex_tutor.log"))

    # Tutor
    subject: str = Field(default="Sanskrit", description="Subject the tutor teaches")
    quiz_advance_delay: float = Field(default=1.5, ge=0, description="Pause after a quiz answer, in seconds")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
