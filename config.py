"""
Configuration management for the portfolio tracker.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'  # Allow extra fields in .env for flexibility
    )

    # Database
    database_url: str = "sqlite:///portfolio_tracker.db"
    db_echo: bool = False

    # Transactions
    supported_currencies: List[str] = ["USD", "IDR", "EUR", "GBP", "JPY"]

    # Exchange rate feed (no API key required)
    exchange_api_base: str = "https://api.exchangerate-api.com/v4/latest"
    exchange_api_timeout: float = 10.0
    fx_cache_ttl_seconds: int = 600  # 10 minutes

    # Market data
    price_fetch_workers: int = 5

    # Local dashboard owner when no identity provider is wired in
    default_user_id: Optional[str] = None

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
