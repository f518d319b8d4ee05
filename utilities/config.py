"""
Configuration management using environment variables.
Handles store connection and logging settings with validation and defaults.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class ServiceConfig(BaseSettings):
    """
    Configuration for the shared store connections and logging.
    Uses pydantic BaseSettings for environment variable management.
    """

    # Relational store
    database_url: str = Field(
        default="postgresql+asyncpg://openstays_user@localhost:5432/openstays",
        description="SQLAlchemy async URL of the PostGIS database",
    )
    database_pool_size: int = Field(default=20, description="Pooled connections")
    database_pool_timeout: float = Field(default=2.0, description="Seconds to wait for a pooled connection")

    # Counter store
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL for rate limit counters")
    redis_socket_timeout: float = Field(default=2.0, description="Seconds before a Redis call times out")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Development/Testing
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("database_pool_size")
    @classmethod
    def validate_pool_size(cls, v):
        """Ensure pool size is reasonable."""
        if v < 1 or v > 100:
            raise ValueError("database_pool_size must be between 1 and 100")
        return v

    @field_validator("database_pool_timeout", "redis_socket_timeout")
    @classmethod
    def validate_timeout(cls, v):
        """Ensure timeouts are positive and bounded."""
        if v <= 0 or v > 60:
            raise ValueError("timeouts must be between 0 and 60 seconds")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production" and not self.debug


# Global configuration instance
config = ServiceConfig()
