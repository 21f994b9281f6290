"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ledger backend
    backend_base_url: str = Field(
        default="http://localhost:5000/api", description="Ledger backend base URL"
    )
    backend_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-request timeout (seconds)"
    )
    backend_retry_attempts: int = Field(
        default=3, ge=1, description="Attempts for idempotent backend reads"
    )
    backend_retry_wait_seconds: float = Field(
        default=0.5, ge=0, description="Base backoff between backend read retries (seconds)"
    )

    # Checkout widget presentation
    currency: str = Field(default="INR", description="Ledger currency code")
    merchant_display_name: str = Field(
        default="Balajee Sales", description="Name shown in the checkout widget"
    )
    payment_description: str = Field(
        default="Khata Payment", description="Description shown in the checkout widget"
    )
    theme_color: str = Field(default="#007bff", description="Checkout widget theme colour")
    default_prefill_name: str = Field(
        default="Customer", description="Prefill name when the customer has none"
    )

    # Reconciliation flow
    max_payment_amount_minor_units: int = Field(
        default=1_000_000_000,
        gt=0,
        le=999_999_999_999_999,
        description="Largest accepted payment in paise",
    )
    success_redirect_delay_seconds: float = Field(
        default=1.5, ge=0, description="Delay before returning to the ledger view"
    )

    # Application Configuration
    app_name: str = Field(default="khata-pay", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("backend_base_url")
    @classmethod
    def validate_backend_base_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Backend base URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        if len(v) != 3:
            raise ValueError("Currency must be 3-letter code")
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
