"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class GovernanceConfig(BaseSettings):
    """Governance workflow engine configuration"""

    # Database configuration
    database_url: str = "sqlite:///governance.db"  # or memory://

    # Audit chain configuration
    default_audit_partition: str = "unite-workflows"
    audit_append_max_attempts: int = 5
    audit_append_backoff_seconds: float = 0.01  # doubled on every retry

    # Voting configuration
    super_majority_basis: str = "votes_cast"  # votes_cast or eligible

    # Scheduler configuration
    scheduler_enabled: bool = False
    scheduler_interval_seconds: int = 300

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8095
    api_workers: int = 1

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Notification configuration
    notification_webhook_url: Optional[str] = None  # None = log only
    notification_webhook_timeout: float = 5.0

    class Config:
        env_prefix = "GOVERNANCE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = GovernanceConfig()


def get_config() -> GovernanceConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> GovernanceConfig:
    """Reload configuration from environment"""
    global config
    config = GovernanceConfig()
    return config
