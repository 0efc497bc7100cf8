"""
Settings Module for API Watcher

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Every section validates its own ranges so a bad deployment fails at
startup instead of halfway through a sweep.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import (
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from api_watcher.exceptions.base import ConfigurationError


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    Supports PostgreSQL (production) and SQLite (development, tests).
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: postgresql or sqlite"
    )

    # PostgreSQL settings
    host: str = Field(
        default="localhost",
        description="Database host address"
    )
    port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="Database port number"
    )
    name: str = Field(
        default="api_watcher",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(
        default="postgres",
        min_length=1,
        max_length=64,
        description="Database username"
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password"
    )

    # SQLite settings
    sqlite_path: Path = Field(
        default=Path("data/api_watcher.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings (ignored for SQLite)
    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size"
    )
    max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum overflow connections"
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Pool connection timeout in seconds"
    )
    pool_recycle: int = Field(
        default=1800,
        ge=60,
        le=7200,
        description="Connection recycle time in seconds"
    )

    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )

    @property
    def is_sqlite(self) -> bool:
        return self.type == DatabaseType.SQLITE

    @property
    def url(self) -> str:
        """Generate the async database URL based on configuration."""
        if self.type == DatabaseType.SQLITE:
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        elif self.type == DatabaseType.POSTGRESQL:
            password = self.password.get_secret_value()
            return (
                f"postgresql+asyncpg://{self.user}:{password}"
                f"@{self.host}:{self.port}/{self.name}"
            )

        raise ValueError(f"Unsupported database type: {self.type}")

    @field_validator("sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: Path) -> Path:
        """Validate and normalize SQLite path."""
        if not v.suffix:
            v = v.with_suffix(".db")
        return v


class MonitoringSettings(BaseSettingsConfig):
    """
    Monitoring Engine Configuration Settings

    Controls the sweep tick, probe concurrency, uptime smoothing and
    high-latency alert deduplication.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        extra="ignore"
    )

    sweep_interval: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Seconds between due-check sweeps"
    )
    max_concurrent_probes: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Upper bound on probes running at the same time"
    )
    user_agent: str = Field(
        default="APIWatcher/1.0",
        description="User-Agent header sent when a monitor defines none"
    )
    follow_redirects: bool = Field(
        default=True,
        description="Follow HTTP redirects while probing"
    )
    uptime_weight: float = Field(
        default=0.1,
        gt=0.0,
        le=1.0,
        description="Weight of the newest probe in the uptime moving average"
    )
    high_latency_cooldown: int = Field(
        default=0,
        ge=0,
        le=86400,
        description=(
            "Seconds during which repeated HighLatency alerts for one monitor "
            "are suppressed; 0 raises one alert per qualifying check"
        )
    )
    skip_overlapping_sweeps: bool = Field(
        default=True,
        description="Skip a tick when the previous sweep is still running"
    )


class NotificationSettings(BaseSettingsConfig):
    """
    Outbound Notification Settings

    SMTP credentials for email, the shared secret used to sign webhook
    bodies, and request limits for webhook delivery.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        extra="ignore"
    )

    smtp_host: Optional[str] = Field(
        default=None,
        description="SMTP server host; email is disabled when unset"
    )
    smtp_port: int = Field(
        default=587,
        ge=1,
        le=65535,
        description="SMTP server port"
    )
    smtp_user: Optional[str] = Field(
        default=None,
        description="SMTP login user"
    )
    smtp_password: SecretStr = Field(
        default=SecretStr(""),
        description="SMTP login password"
    )
    smtp_starttls: bool = Field(
        default=True,
        description="Upgrade the SMTP connection with STARTTLS"
    )
    email_from: str = Field(
        default="alerts@api-watcher.local",
        description="Sender address for alert emails"
    )
    subject_prefix: str = Field(
        default="[API Watcher]",
        description="Prefix prepended to every email subject"
    )

    webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Key used to sign webhook bodies"
    )
    webhook_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Webhook request timeout in seconds"
    )

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host)


class RealtimeSettings(BaseSettingsConfig):
    """
    Realtime Delivery Settings

    Where the websocket server listens and how per-user rooms are named.
    """

    model_config = SettingsConfigDict(
        env_prefix="REALTIME_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Start the websocket server"
    )
    host: str = Field(
        default="0.0.0.0",
        description="Bind address"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Bind port"
    )
    ws_path: str = Field(
        default="/ws",
        description="Websocket endpoint path"
    )
    room_prefix: str = Field(
        default="user_",
        min_length=1,
        description="Prefix of per-user room names"
    )
    global_fallback: bool = Field(
        default=True,
        description="Also broadcast new alerts to every connected client"
    )

    @field_validator("ws_path")
    @classmethod
    def validate_ws_path(cls, v: str) -> str:
        if not v.startswith("/"):
            v = "/" + v
        return v


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and rotating file sinks for loguru.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )

    # Console logging
    console_enabled: bool = Field(
        default=True,
        description="Enable console logging"
    )
    console_colored: bool = Field(
        default=True,
        description="Enable colored console output"
    )

    # File logging
    file_enabled: bool = Field(
        default=False,
        description="Enable file logging"
    )
    file_path: Path = Field(
        default=Path("logs/api_watcher.log"),
        description="Log file path"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    file_retention: str = Field(
        default="30 days",
        description="Log retention period"
    )

    # Error logging (separate file for errors)
    error_file_enabled: bool = Field(
        default=False,
        description="Enable separate error log file"
    )
    error_file_path: Path = Field(
        default=Path("logs/errors.log"),
        description="Error log file path"
    )

    json_enabled: bool = Field(
        default=False,
        description="Serialize file records as JSON"
    )


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    app_name: str = Field(
        default="API Watcher",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Nested settings
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    monitoring: MonitoringSettings = Field(
        default_factory=MonitoringSettings
    )
    notifications: NotificationSettings = Field(
        default_factory=NotificationSettings
    )
    realtime: RealtimeSettings = Field(
        default_factory=RealtimeSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            # Force secure defaults in production
            self.debug = False
            self.database.echo = False
        elif self.debug and self.logging.level == LogLevel.INFO:
            self.logging.level = LogLevel.DEBUG
        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings instance

    Raises:
        ConfigurationError: If the environment holds invalid values
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False)},
            cause=e
        ) from e
