"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase Configuration
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")

    # LLM (routed through LiteLLM)
    ANTHROPIC_API_KEY: SecretStr = SecretStr("")
    LLM_MODEL: str = "anthropic/claude-sonnet-4-20250514"
    LLM_INPUT_TOKEN_COST_PER_M: float = 3.00
    LLM_OUTPUT_TOKEN_COST_PER_M: float = 15.00

    # Application Settings
    APP_ENV: Literal["development", "staging", "production"] = "development"
    APP_URL: str = "http://localhost:3000"
    # Generic completion endpoint used as the last drafting tier
    GENERATE_RESPONSE_URL: str = ""
    FALLBACK_GENERATION_TIMEOUT_SECONDS: float = 30.0

    # Draft cache lifecycle
    DRAFT_CACHE_TTL_DAYS: int = 7
    USER_DRAFT_TTL_DAYS: int = 30
    FALLBACK_DRAFT_CONFIDENCE: float = 0.6
    DRAFT_BATCH_SIZE: int = 5

    # Feedback scoring
    EDIT_SUCCESS_THRESHOLD: float = 0.8
    EDIT_PARTIAL_THRESHOLD: float = 0.6

    # Logging
    LOG_FORMAT: Literal["text", "json"] = "text"
    LOG_LEVEL: str = "INFO"

    # CORS Configuration
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @field_validator("SUPABASE_URL", "APP_URL")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that URL settings carry a scheme and drop trailing slashes."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("URL settings must start with http:// or https://")
        return v.rstrip("/") if v else v

    @field_validator("EDIT_SUCCESS_THRESHOLD", "EDIT_PARTIAL_THRESHOLD", "FALLBACK_DRAFT_CONFIDENCE")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        """Scores and thresholds live in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("value must be between 0 and 1")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def generate_response_url(self) -> str:
        """Resolve the generic completion endpoint URL."""
        if self.GENERATE_RESPONSE_URL:
            return self.GENERATE_RESPONSE_URL
        return f"{self.APP_URL}/api/email/generate-response"

    def validate_startup(self) -> None:
        """Validate that all required secrets are configured.

        Raises:
            ValueError: If any required secret is missing or empty.
        """
        required_secrets = {
            "SUPABASE_URL": self.SUPABASE_URL,
            "SUPABASE_SERVICE_ROLE_KEY": self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
            "ANTHROPIC_API_KEY": self.ANTHROPIC_API_KEY.get_secret_value(),
        }
        missing = [name for name, value in required_secrets.items() if not value]
        if missing:
            raise ValueError(f"Required secrets are missing or empty: {', '.join(missing)}")
        if self.EDIT_PARTIAL_THRESHOLD > self.EDIT_SUCCESS_THRESHOLD:
            raise ValueError("EDIT_PARTIAL_THRESHOLD must not exceed EDIT_SUCCESS_THRESHOLD")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance with validated configuration.

    Raises:
        ValueError: If required secrets are missing.
    """
    settings = Settings()
    settings.validate_startup()
    return settings


# Global settings instance - import this for easy access
settings = get_settings()
