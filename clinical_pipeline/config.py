"""
Configuration settings for the clinical pipeline.

Reads credentials from the environment (or a .env file) and provides typed
settings. A single Settings instance is built at startup and handed to the
services that need it.
"""

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_DIR = Path(__file__).parent
PROJECT_ROOT = PACKAGE_DIR.parent
ENV_FILE = PROJECT_ROOT / ".env"

SUPPORTED_PROVIDERS = ("gemini", "openai")


class Settings(BaseSettings):
    """Application settings loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Gemini API
    gemini_api_key: str = Field(
        default="",
        alias="GEMINI_API_KEY",
        description="Google Gemini API key"
    )
    gemini_model: str = Field(default="gemini-1.5-flash", alias="GEMINI_MODEL")

    # OpenAI API (extraction, transcription, optional diagnosis backend)
    openai_api_key: str = Field(
        default="",
        alias="OPENAI_API_KEY",
        description="OpenAI API key"
    )
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    transcription_model: str = Field(default="whisper-1", alias="TRANSCRIPTION_MODEL")

    # Backend selection
    provider: str = Field(
        default="gemini",
        alias="PROVIDER",
        description="Structured-completion backend for the diagnose stage"
    )
    extraction_provider: str = Field(
        default="openai",
        alias="EXTRACTION_PROVIDER",
        description="Structured-completion backend for the extract stage"
    )

    # Language handling
    default_language: str = Field(default="es-AR", alias="DEFAULT_LANGUAGE")
    supported_languages: List[str] = Field(
        default_factory=lambda: ["es", "en"],
        alias="SUPPORTED_LANGUAGES",
        description="Primary subtags accepted by the language gate"
    )

    # Transport
    audio_download_timeout: float = Field(
        default=60.0,
        alias="AUDIO_DOWNLOAD_TIMEOUT",
        description="Timeout in seconds for fetching URL-sourced audio"
    )
    max_body_mb: int = Field(default=20, alias="MAX_BODY_MB")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    # Application settings
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @computed_field
    @property
    def prompts_dir(self) -> Path:
        """Path to prompts directory."""
        return PACKAGE_DIR / "prompts"

    @property
    def max_body_bytes(self) -> int:
        return self.max_body_mb * 1024 * 1024

    def resolve_provider(self, override: str = None) -> str:
        """Request override, else configured default, else gemini."""
        return (override or self.provider or "gemini").lower()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
