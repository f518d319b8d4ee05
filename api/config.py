"""
API configuration settings.
"""

from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "OpenStays Property Catalog API"
    api_version: str = "1.0.0"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Authentication
    api_key_prefix: str = "osk_"
    required_scopes: List[str] = []  # empty: anonymous catalog access allowed

    # Rate Limiting
    rate_limit_enabled: bool = True
    rate_limit_window_ms: int = 60000
    rate_limit_max_requests: int = 1200

    # Pagination
    default_page_limit: int = 50
    max_page_limit: int = 200

    # CORS Settings
    cors_origins: List[str] = ["*"]
    cors_allow_credentials: bool = True

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @field_validator("rate_limit_window_ms")
    @classmethod
    def validate_window(cls, v):
        """Ensure the window is at least one second."""
        if v < 1000:
            raise ValueError("rate_limit_window_ms must be at least 1000")
        return v

    @field_validator("rate_limit_max_requests", "default_page_limit", "max_page_limit")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("limits must be positive")
        return v


# Global config instance
config = APIConfig()
