"""Application settings and configuration management using Pydantic."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Delivery engine settings read from the environment and ``.env``."""

    # Environment and deployment
    environment: str = "development"
    debug: bool = False

    # Retry policy
    retry_base_delay_minutes: int = 5
    retry_max_delay_hours: int = 24
    default_max_delivery_attempts: int = 3

    # Dispatch settings
    channel_send_timeout_seconds: float = 10.0
    dispatch_batch_size: int = 10

    # Fallback limits for users without stored preferences
    default_max_notifications_per_hour: int = 10
    default_max_notifications_per_day: int = 50

    # Minutes after a delivery during which the same product is not alerted again
    cooldown_minutes: int = 60

    # Database settings
    database_url: Optional[str] = None
    data_directory: str = "data"
    database_echo_sql: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "structured"  # 'structured' or 'plain'
    log_file_enabled: bool = False
    log_file_path: str = "data/pricewatch.log"
    log_max_file_size: str = "10MB"
    log_backup_count: int = 5

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        valid_environments = ["development", "testing", "production"]
        if v.lower() not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v.lower()

    @field_validator("retry_base_delay_minutes", "retry_max_delay_hours")
    @classmethod
    def validate_retry_delay(cls, v):
        """Retry delays must be positive."""
        if v < 1:
            raise ValueError("Retry delays must be at least 1")
        return v

    @field_validator("default_max_delivery_attempts")
    @classmethod
    def validate_max_attempts(cls, v):
        """Validate the default attempt budget."""
        if v < 1 or v > 20:
            raise ValueError("Max delivery attempts must be between 1 and 20")
        return v

    @field_validator("channel_send_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        """Validate channel send timeout."""
        if v <= 0 or v > 300:
            raise ValueError("Channel send timeout must be between 0 and 300 seconds")
        return v

    @field_validator(
        "dispatch_batch_size",
        "default_max_notifications_per_hour",
        "default_max_notifications_per_day",
    )
    @classmethod
    def validate_positive_count(cls, v):
        """Validate counts that must be at least one."""
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator("cooldown_minutes")
    @classmethod
    def validate_cooldown(cls, v):
        """Cooldown may be zero (disabled) but not negative."""
        if v < 0:
            raise ValueError("Cooldown minutes must not be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format."""
        valid_formats = ["structured", "plain"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v.lower()

    def get_database_url(self) -> str:
        """Get the complete database URL."""
        if self.database_url:
            return self.database_url

        # Default to SQLite in data directory
        db_dir = Path(self.data_directory)
        db_dir.mkdir(parents=True, exist_ok=True)
        db_path = db_dir / "pricewatch.db"
        return f"sqlite:///{db_path}"

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
