"""
Tests for Module Engine Configuration
=====================================

Tests centralized config loading and logging setup.
"""

import json
import logging
import os
from unittest.mock import patch

from module_engine.config import ApiConfig, EngineConfig
from module_engine.logging_config import JSONFormatter, configure_logging


class TestEngineConfig:
    """Test config loading."""

    def test_defaults(self):
        """Default config has sensible values."""
        config = EngineConfig()
        assert config.api.base_url == "http://localhost:3000/api"
        assert config.api.read_timeout == 8.0
        assert config.api.mutation_timeout == 30.0
        assert config.auto_reload is True
        assert config.reject_cyclic_catalogs is True
        assert config.log_level == "INFO"
        assert config.log_format == "json"
        assert config.max_tenants == 256

    def test_from_env(self):
        """Config loads from environment variables."""
        env = {
            "MODULES_API_URL": "https://console.example.com/api/",
            "MODULES_API_TOKEN": "secret",
            "MODULES_READ_TIMEOUT": "3",
            "MODULES_MUTATION_TIMEOUT": "45.5",
            "MODULES_AUTO_RELOAD": "false",
            "CATALOG_REJECT_CYCLES": "0",
            "LOG_LEVEL": "DEBUG",
            "MODULES_MAX_TENANTS": "8",
        }
        with patch.dict(os.environ, env, clear=False):
            config = EngineConfig.from_env()
            assert config.api.base_url == "https://console.example.com/api"
            assert config.api.api_token == "secret"
            assert config.api.read_timeout == 3.0
            assert config.api.mutation_timeout == 45.5
            assert config.auto_reload is False
            assert config.reject_cyclic_catalogs is False
            assert config.log_level == "DEBUG"
            assert config.max_tenants == 8

    def test_cors_origins_from_env(self):
        """CORS origins parsed from comma-separated string."""
        with patch.dict(os.environ, {"CORS_ORIGINS": "https://a.com,https://b.com"}):
            config = EngineConfig.from_env()
            assert "https://a.com" in config.cors_origins
            assert "https://b.com" in config.cors_origins


class TestApiConfig:
    """Test authority connection settings."""

    def test_headers_with_token(self):
        """Token becomes a bearer header."""
        headers = ApiConfig(api_token="abc").headers
        assert headers["Authorization"] == "Bearer abc"

    def test_headers_without_token(self):
        """No token, no Authorization header."""
        assert "Authorization" not in ApiConfig().headers

    def test_not_configured(self):
        """Empty base URL reports not configured."""
        assert ApiConfig(base_url="").is_configured is False


class TestLogging:
    """Test structured logging."""

    def test_json_formatter_context(self):
        """Operation context lands in the JSON line."""
        record = logging.LogRecord("module_engine", logging.INFO, __file__, 1, "installed", None, None)
        record.tenant_id = "org-1"
        record.module_key = "stock"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "installed"
        assert entry["level"] == "INFO"
        assert entry["tenant_id"] == "org-1"
        assert entry["module_key"] == "stock"
        assert "suite_key" not in entry

    def test_configure_logging(self):
        """Root logger gets exactly one handler at the given level."""
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging("DEBUG", "text")
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert not isinstance(root.handlers[0].formatter, JSONFormatter)

            configure_logging("WARNING", "json")
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
