"""
Configuration Management

Pydantic-settings based configuration for the stockroom console backend.
All settings can be overridden via environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with STOCKROOM_ and are case-insensitive.
    Example: STOCKROOM_DYNAMODB_TABLE_NAME=MyTable
    """

    model_config = SettingsConfigDict(
        env_prefix="STOCKROOM_",
        env_file=[".env.local", ".env"],  # Try .env.local first
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # DynamoDB Configuration
    dynamodb_table_name: str = Field(
        default="Stockroom",
        description="DynamoDB table holding stock, orders, products and operators",
    )
    dynamodb_gsi1_name: str = Field(
        default="GSI1",
        description="GSI1 index name for per-product stock range reads",
    )
    dynamodb_endpoint_url: str | None = Field(
        default=None,
        description="DynamoDB endpoint URL (for local development)",
    )

    # AWS Configuration
    aws_region: str = Field(
        default="us-west-2",
        description="AWS region",
    )

    # Application Configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Telegram Delivery Channel
    telegram_bot_token: str = Field(
        default="",
        description="Bot token used for buyer delivery",
    )
    telegram_api_base: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL",
    )
    telegram_timeout_seconds: float = Field(
        default=15.0,
        description="HTTP timeout for Telegram calls",
    )
    telegram_max_message_length: int = Field(
        default=4096,
        description="Single message size limit of the transport",
    )
    delivery_length_margin: int = Field(
        default=50,
        description="Inline messages within this many chars of the limit go out as a file",
    )
    inline_delivery_max_items: int = Field(
        default=5,
        description="Orders with more items than this are delivered as a file",
    )

    # Fulfillment Configuration
    order_expire_minutes: int = Field(
        default=10,
        ge=1,
        description="Pending orders older than this are cancelled instead of fulfilled",
    )

    # Verification Configuration
    check_default_concurrency: int = Field(default=20, ge=1)
    check_max_concurrency: int = Field(default=50, ge=1)
    check_max_mail_column_index: int = Field(default=30, ge=1)
    check_max_selected_ids: int = Field(
        default=2000,
        description="Maximum explicit stock ids per verification run",
    )
    check_max_items: int = Field(
        default=10000,
        description="Maximum stock rows loaded for a whole-product verification run",
    )
    stock_page_size: int = Field(default=1000, ge=1)
    delete_chunk_size: int = Field(default=500, ge=1)
    cron_secret: str = Field(
        default="",
        description="Shared secret for scheduled verification runs",
    )

    # Mailbox Sources
    tempmail_api_base: str = Field(default="https://email.devtai.net/api")
    tinyhost_api_url: str = Field(
        default="https://email-inbox-receiver.vercel.app/api/tempmail-tinyhost",
    )
    hotmail_proxy_url: str = Field(
        default="https://email-inbox-receiver.vercel.app/api/read-inbox",
    )
    hotmail_default_client_id: str = Field(
        default="d3590ed6-52b3-4102-aeff-aad2292ab01c",
        description="Client id used when a credential record carries none",
    )
    hotmail_auth_mode: str = Field(default="graph")
    hotmail_max_messages: int = Field(default=20, ge=1)
    source_timeout_seconds: float = Field(
        default=20.0,
        description="HTTP timeout for mailbox source calls",
    )

    @property
    def is_local(self) -> bool:
        """Detect if running in local mode."""
        return (
            self.environment == "development"
            or self.dynamodb_endpoint_url == "mock"
        )

    @property
    def dynamodb_config(self) -> dict:
        """DynamoDB client configuration."""
        config = {"region_name": self.aws_region}
        if self.dynamodb_endpoint_url and self.dynamodb_endpoint_url != "mock":
            config["endpoint_url"] = self.dynamodb_endpoint_url
        return config

    @property
    def inline_length_threshold(self) -> int:
        """Inline text at or above this length switches to file delivery."""
        return self.telegram_max_message_length - self.delivery_length_margin


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are loaded only once.
    Pass Settings(...) directly to the engines in tests to override.
    """
    return Settings()
