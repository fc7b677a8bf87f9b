"""
Configuration management for Arbitrage Price Aggregator.
Uses pydantic-settings for environment variable management.
"""

from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_EXCHANGES = "Binance,Coinbase,CoinMarketCap,CoinGecko,CryptoCompare,Bitfinex,Kraken"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="Arbitrage Price Aggregator")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # HTTP server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=5000)
    cors_origins: str = Field(default="http://localhost:3000")

    # Fan-out limits (in seconds where applicable)
    request_timeout: float = Field(default=10.0)
    call_timeout: float = Field(default=5.0)
    connect_timeout: float = Field(default=3.0)
    max_concurrency: int = Field(default=8)
    call_attempts: int = Field(default=2)
    cancel_grace: float = Field(default=0.25)

    # Exchange selection
    default_base_currency: str = Field(default="USDT")
    enabled_exchanges: str = Field(default=DEFAULT_EXCHANGES)

    # Optional key for CoinMarketCap; the other sources are keyless
    coinmarketcap_api_key: Optional[str] = Field(default=None)

    user_agent: str = Field(default="Arbitrage-Price-Aggregator/1.0.0")

    # Logging configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = {'json', 'text'}
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {', '.join(sorted(valid_formats))}")
        return v.lower()

    @field_validator('request_timeout', 'call_timeout', 'connect_timeout')
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator('cancel_grace')
    @classmethod
    def validate_cancel_grace(cls, v: float) -> float:
        if v < 0:
            raise ValueError("cancel_grace cannot be negative")
        return v

    @field_validator('max_concurrency', 'call_attempts')
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator('default_base_currency')
    @classmethod
    def validate_base_currency(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("default_base_currency cannot be empty")
        return v.strip().upper()

    def get_enabled_exchanges_list(self) -> List[str]:
        """Get enabled exchanges as a list."""
        return [name.strip() for name in self.enabled_exchanges.split(',') if name.strip()]

    def get_cors_origins_list(self) -> List[str]:
        """Get allowed CORS origins as a list."""
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(',') if origin.strip()]


# Global settings instance
settings = Settings()
