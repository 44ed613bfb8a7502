"""Configuration management system using Pydantic v2 and YAML.

This module provides type-safe configuration loading with validation
for the Dealflow ingestion pipeline.
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from src.utils.exceptions import ConfigFileNotFoundError


DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
]


class PlatformLimitConfig(BaseModel):
    """Rate limit override for a single platform."""

    min_delay: float = Field(ge=0.0, description="Minimum seconds between requests")
    max_delay: float = Field(ge=0.0, description="Maximum seconds between requests")
    max_requests_per_hour: int = Field(ge=1, description="Sliding-window hourly cap")

    @model_validator(mode='after')
    def validate_delay_order(self) -> 'PlatformLimitConfig':
        """Ensure min_delay does not exceed max_delay."""
        if self.min_delay > self.max_delay:
            raise ValueError("min_delay must be less than or equal to max_delay")
        return self


class FilterDefaults(BaseModel):
    """Default search filters applied when a scrape is triggered without any."""

    state: Optional[str] = Field(default="CO", description="Target state")
    city: Optional[str] = Field(default=None)
    min_price: Optional[float] = Field(default=None, ge=0.0)
    max_price: Optional[float] = Field(default=None, ge=0.0)
    min_cash_flow: Optional[float] = Field(default=None, ge=0.0)
    keyword: Optional[str] = Field(default=None)


class ScraperConfig(BaseModel):
    """Configuration for marketplace scraping."""

    timeout: int = Field(default=30, ge=5, description="Per-request timeout in seconds")
    max_pages: int = Field(default=50, ge=1, description="Pagination cap per run")
    detail_retries: int = Field(default=3, ge=1, description="Attempts per detail page")
    detail_backoff_base: float = Field(default=2.0, ge=0.0, description="Detail retry backoff base in seconds")
    http_max_attempts: int = Field(default=3, ge=1, description="HTTP-level attempts per fetch")
    default_retry_after: float = Field(default=30.0, ge=0.0, description="Wait on 429 without Retry-After")
    headless: bool = Field(default=True, description="Run the fallback browser headless")
    user_agents: list[str] = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS))
    platform_limits: dict[str, PlatformLimitConfig] = Field(
        default_factory=dict,
        description="Per-platform rate limit overrides keyed by platform name",
    )
    default_filters: FilterDefaults = Field(default_factory=FilterDefaults)

    @field_validator('user_agents')
    @classmethod
    def validate_user_agents(cls, v: list[str]) -> list[str]:
        """Ensure at least one user agent is provided."""
        if not v:
            raise ValueError("At least one user agent is required")
        return v

    @field_validator('platform_limits')
    @classmethod
    def normalize_platform_keys(cls, v: dict[str, PlatformLimitConfig]) -> dict[str, PlatformLimitConfig]:
        """Platform keys are matched case-insensitively."""
        return {key.upper(): value for key, value in v.items()}


class DatabaseConfig(BaseModel):
    """Configuration for the relational store."""

    url: str = Field(default="sqlite+aiosqlite:///./data/dealflow.db", description="SQLAlchemy async URL")
    echo: bool = Field(default=False, description="Log emitted SQL")

    @field_validator('url')
    @classmethod
    def normalize_async_driver(cls, v: str) -> str:
        """Rewrite sync driver URLs to their async equivalents."""
        if v.startswith("sqlite:///") and "+aiosqlite" not in v:
            return v.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if v.startswith("postgresql://") and "+asyncpg" not in v:
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v


class SecurityConfig(BaseModel):
    """Configuration for secret encryption at rest."""

    encryption_key_env: str = Field(
        default="DEALFLOW_ENCRYPTION_KEY",
        description="Environment variable holding the Fernet key",
    )


class OAuthClientConfig(BaseModel):
    """Environment variable names for one OAuth client."""

    client_id_env: str
    client_secret_env: str
    tenant_env: Optional[str] = None


class MailConfig(BaseModel):
    """Configuration for mailbox sync."""

    graph_base_url: str = Field(default="https://graph.microsoft.com/v1.0")
    gmail_base_url: str = Field(default="https://gmail.googleapis.com/gmail/v1/users/me")
    page_size: int = Field(default=100, ge=1, le=500)
    outlook_initial_max_messages: int = Field(default=100, ge=1)
    gmail_initial_max_messages: int = Field(default=500, ge=1)
    token_refresh_buffer_seconds: int = Field(default=300, ge=0)
    request_timeout: int = Field(default=30, ge=5)
    microsoft: OAuthClientConfig = Field(
        default_factory=lambda: OAuthClientConfig(
            client_id_env="AZURE_AD_CLIENT_ID",
            client_secret_env="AZURE_AD_CLIENT_SECRET",
            tenant_env="AZURE_AD_TENANT_ID",
        )
    )
    google: OAuthClientConfig = Field(
        default_factory=lambda: OAuthClientConfig(
            client_id_env="GOOGLE_CLIENT_ID",
            client_secret_env="GOOGLE_CLIENT_SECRET",
        )
    )


class ReconcilerConfig(BaseModel):
    """Configuration for listing reconciliation."""

    default_metro_area: str = Field(default="Denver Metro")
    target_state: str = Field(default="CO", description="State that qualifies for tiers 1 and 2")
    target_multiple_low: float = Field(default=3.0, gt=0.0)
    target_multiple_high: float = Field(default=5.0, gt=0.0)
    tier_one_threshold: float = Field(default=60.0, ge=0.0, le=100.0)
    tier_two_threshold: float = Field(default=40.0, ge=0.0, le=100.0)

    @model_validator(mode='after')
    def validate_ranges(self) -> 'ReconcilerConfig':
        """Ensure multiples and thresholds are ordered."""
        if self.target_multiple_low > self.target_multiple_high:
            raise ValueError("target_multiple_low must not exceed target_multiple_high")
        if self.tier_two_threshold > self.tier_one_threshold:
            raise ValueError("tier_two_threshold must not exceed tier_one_threshold")
        return self


class AppConfig(BaseModel):
    """Root configuration model containing all sub-configurations."""

    scraper: ScraperConfig = Field(default_factory=ScraperConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    mail: MailConfig = Field(default_factory=MailConfig)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Choose from: {valid_levels}")
        return v_upper


# Singleton pattern for configuration
_config: Optional[AppConfig] = None


def load_config(config_path: Optional[Path | str] = None) -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to configuration file. Defaults to the DEALFLOW_CONFIG
                    env var, then config/config.yaml relative to project root

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigFileNotFoundError: If config file doesn't exist
        ValueError: If configuration is invalid
    """
    if config_path is None:
        env_config_path = os.environ.get('DEALFLOW_CONFIG')
        if env_config_path:
            config_path = Path(env_config_path)
        else:
            project_root = Path(__file__).parent.parent.parent
            config_path = project_root / "config" / "config.yaml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        example_path = config_path.parent / "config.example.yaml"
        raise ConfigFileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            f"Please copy {example_path} to {config_path} and customize it.\n"
            f"Alternatively, set the DEALFLOW_CONFIG environment variable to the config file path.",
            path=str(config_path),
        )

    with open(config_path, 'r', encoding='utf-8') as f:
        config_dict = yaml.safe_load(f) or {}

    return AppConfig.model_validate(config_dict)


def get_config(config_path: Optional[Path | str] = None, reload: bool = False) -> AppConfig:
    """Get configuration instance (singleton pattern).

    Args:
        config_path: Path to configuration file (only used on first call or if reload=True)
        reload: Force reload of configuration

    Returns:
        Cached or newly loaded AppConfig instance
    """
    global _config

    if _config is None or reload:
        _config = load_config(config_path)

    return _config


def reset_config() -> None:
    """Reset cached configuration (useful for testing)."""
    global _config
    _config = None
