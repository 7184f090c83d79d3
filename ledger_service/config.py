"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Ledger service configuration"""

    # Database configuration
    database_url: str = "sqlite:///ledger.db"  # memory:// for an in-process store

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Ledger rules
    operation_timeout_seconds: Optional[float] = 10.0
    account_number_max_attempts: int = 5

    # User directory (None = resolve from the local users table)
    user_directory_url: Optional[str] = None
    user_directory_timeout: float = 2.0
    user_directory_cache_ttl_seconds: float = 300.0
    user_directory_cache_size: int = 1024

    # Notifications
    enable_notifications: bool = True
    notification_webhook_url: Optional[str] = None
    notification_timeout: float = 5.0

    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
