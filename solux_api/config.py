"""
Configuration for Solux API.
"""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    API configuration settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # API Server
    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=3001, description="API port")
    debug: bool = Field(default=False, description="Enable debug mode (auto reload)")
    allowed_origins: list[str] = Field(
        default=["*"],
        description="CORS allowed origins"
    )

    # Issuing API (Lithic sandbox)
    # The key is attached server-side only; the browser never sees it.
    lithic_api_key: Optional[str] = Field(
        default=None,
        description="Lithic API key",
        validation_alias=AliasChoices("LITHIC_API_KEY", "VITE_LITHIC_API_KEY", "lithic_api_key"),
    )
    lithic_base_url: str = Field(
        default="https://sandbox.lithic.com/v1",
        description="Lithic API base URL"
    )

    # Mail dispatch (Resend)
    resend_api_key: Optional[str] = Field(
        default=None,
        description="Resend API key (unset: codes are written to the log instead of mailed)"
    )
    resend_base_url: str = Field(default="https://api.resend.com", description="Resend API base URL")
    mail_from: str = Field(default="support@solux.cash", description="Sender address for login codes")

    # Verification codes
    code_ttl_seconds: int = Field(default=600, gt=0, description="Verification code TTL in seconds")
    code_rollback_on_mail_failure: bool = Field(
        default=False,
        description="Drop the stored code again when the mail could not be dispatched"
    )
    code_sweep_interval_seconds: float = Field(
        default=0,
        ge=0,
        description="Interval for sweeping expired codes (0 disables; expired codes are then removed lazily)"
    )

    # Card defaults
    card_spend_limit: int = Field(default=1_000_000, gt=0, description="Default spend limit in minor units")
    card_spend_limit_duration: str = Field(default="MONTHLY", description="Spend limit reset cadence")
    card_memo: str = Field(default="Solux Virtual Card", description="Memo attached to issued cards")

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=30.0, gt=0, description="Transport timeout for outbound calls")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
