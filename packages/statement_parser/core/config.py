"""Centralized engine configuration via Pydantic Settings.

Loads the extraction collaborator endpoint, upload ceiling and logging
options from the environment (or a local .env file).
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Extraction collaborator (document path)
    EXTRACTION_API_URL: str = Field(
        default="https://quotla-ml.onrender.com",
        description="Base URL of the document extraction service",
    )
    EXTRACTION_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for a single extraction request",
    )
    EXTRACTION_MAX_RETRIES: int = Field(
        default=1,
        ge=0,
        description="Retries after a transport error (timeouts included)",
    )

    # Uploads
    MAX_UPLOAD_BYTES: int = Field(
        default=10 * 1024 * 1024,
        description="Largest artifact accepted for parsing",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Python log level")
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production",
    )

    @field_validator("EXTRACTION_API_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def json_logs(self) -> bool:
        return self.ENVIRONMENT == "production"

    model_config = {"env_file": ".env", "extra": "ignore"}


def get_settings() -> Settings:
    """Factory for Settings; tests override values through the environment."""
    return Settings()
