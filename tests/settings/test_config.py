"""
Tests for configuration settings.
"""

import pytest
from pydantic import ValidationError

from api.config import APIConfig
from utilities.config import ServiceConfig


class TestServiceConfig:
    """Test cases for ServiceConfig."""

    def test_defaults(self):
        config = ServiceConfig(_env_file=None)
        assert config.database_url.startswith("postgresql+asyncpg://")
        assert config.redis_url.startswith("redis://")
        assert config.get_log_file_path() is None

    def test_log_settings_normalized(self):
        config = ServiceConfig(_env_file=None, log_level="debug", log_format="CONSOLE")
        assert config.log_level == "DEBUG"
        assert config.log_format == "console"

    @pytest.mark.parametrize("overrides", [
        {"log_level": "LOUD"},
        {"log_format": "xml"},
        {"database_pool_size": 0},
        {"redis_socket_timeout": 0},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            ServiceConfig(_env_file=None, **overrides)

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
        monkeypatch.setenv("ENVIRONMENT", "production")
        config = ServiceConfig(_env_file=None)
        assert config.redis_url == "redis://cache:6379/2"
        assert config.is_production()


class TestAPIConfig:
    """Test cases for APIConfig."""

    def test_defaults(self):
        config = APIConfig(_env_file=None)
        assert config.rate_limit_window_ms == 60000
        assert config.rate_limit_max_requests == 1200
        assert config.max_page_limit == 200
        assert config.api_key_prefix == "osk_"

    @pytest.mark.parametrize("overrides", [
        {"rate_limit_window_ms": 500},
        {"rate_limit_max_requests": 0},
        {"max_page_limit": 0},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            APIConfig(_env_file=None, **overrides)
