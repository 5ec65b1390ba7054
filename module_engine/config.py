"""
Module Engine Configuration
===========================

Single source of truth for all configuration values.
Reads from environment variables with sensible defaults.
"""

import os
from typing import List
from dataclasses import dataclass, field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ApiConfig:
    """Connection settings for the remote module authority."""
    base_url: str = "http://localhost:3000/api"
    api_token: str = ""
    read_timeout: float = 8.0       # catalog / enabled-set loads
    mutation_timeout: float = 30.0  # install / uninstall / suites

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    @property
    def headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers


@dataclass
class EngineConfig:
    """Master configuration for the module engine."""

    api: ApiConfig = field(default_factory=ApiConfig)

    # Engine behaviour
    auto_reload: bool = True
    reject_cyclic_catalogs: bool = True
    max_tenants: int = 256          # orchestrators kept by the API facade

    # Application settings
    log_level: str = "INFO"
    log_format: str = "json"
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:4200"]
    )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        return cls(
            api=ApiConfig(
                base_url=os.environ.get("MODULES_API_URL", "http://localhost:3000/api").rstrip("/"),
                api_token=os.environ.get("MODULES_API_TOKEN", ""),
                read_timeout=float(os.environ.get("MODULES_READ_TIMEOUT", "8.0")),
                mutation_timeout=float(os.environ.get("MODULES_MUTATION_TIMEOUT", "30.0")),
            ),
            auto_reload=_env_bool("MODULES_AUTO_RELOAD", True),
            reject_cyclic_catalogs=_env_bool("CATALOG_REJECT_CYCLES", True),
            max_tenants=int(os.environ.get("MODULES_MAX_TENANTS", "256")),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_format=os.environ.get("LOG_FORMAT", "json"),
            cors_origins=os.environ.get(
                "CORS_ORIGINS", "http://localhost:4200"
            ).split(","),
        )
