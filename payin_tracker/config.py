"""
Configuration for the pay-in tracker.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .address import get_network


class Settings(BaseSettings):
    """
    Tracker configuration settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Tracking
    confirmation_limit: int = Field(
        default=6,
        ge=0,
        description="Blocks mined on top of a block before it is scanned",
    )
    start_height: int = Field(
        default=0,
        ge=0,
        description="Height treated as processed when no checkpoint is stored",
    )
    btc_network: str = Field(default="testnet", description="mainnet, testnet or regtest")
    poll_interval_seconds: int = Field(default=60, gt=0, description="Seconds between tracking runs")
    tracking_enabled: bool = Field(
        default=True,
        description="Run the periodic tracker inside the API process",
    )

    # Block indexer (QBitNinja-compatible)
    indexer_url: str = Field(
        default="http://localhost:8085/",
        description="Base URL of the block indexer API",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    retry_attempts: int = Field(default=5, ge=1, description="Attempts per indexer request")
    retry_base_delay: float = Field(default=1.0, ge=0, description="First retry delay in seconds")
    retry_max_delay: float = Field(default=30.0, ge=0, description="Retry delay cap in seconds")

    # Payment records
    explorer_url: str = Field(
        default="https://live.blockcypher.com/btc-testnet/tx/",
        description="Explorer base URL; the transaction hash is appended",
    )
    payments_url: Optional[str] = Field(
        default=None,
        description="Downstream endpoint receiving payment batches (log-only when unset)",
    )
    payments_api_key: Optional[str] = Field(
        default=None,
        description="Sent as X-API-Key to the downstream endpoint",
    )

    # Database
    database_url: str = Field(default="sqlite:///./tracker.db", description="SQLAlchemy database URL")

    # Admin API
    host: str = Field(default="127.0.0.1", description="API host")
    port: int = Field(default=5001, description="API port")
    debug: bool = Field(default=False, description="Enable debug mode")
    api_token: Optional[str] = Field(
        default=None,
        description="API token for admin endpoints (REQUIRED for non-local use)",
    )

    @field_validator("btc_network")
    @classmethod
    def _known_network(cls, value: str) -> str:
        return get_network(value).name


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
