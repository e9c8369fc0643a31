"""Local settings for the agent process."""

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field


DEFAULT_CONFIG_PATH = "config/agent.yaml"


class AgentSettings(BaseModel):
    """Settings read at process start. Operating parameters come from the remote API."""

    # Remote API
    api_key: str = Field(default="", description="Bearer token for the config and ingest endpoints")
    config_url: str = Field(default="", description="Base URL of the Nemea API")
    http_timeout_seconds: float = Field(default=15.0, description="Timeout for config/ingest calls")
    retry_delay_seconds: float = Field(default=5.0, description="Delay before the single retry of a 5xx call")
    config_retry_interval_seconds: float = Field(
        default=60.0, description="How often startup retries a config fetch that failed"
    )

    # Geolocation
    geo_api_key: Optional[str] = Field(default=None, description="ipinfo.io token; geolocation is off without it")
    geo_url: str = Field(default="https://ipinfo.io/json", description="Geolocation lookup URL")
    geo_cache_seconds: float = Field(default=60.0, description="How long a location lookup is reused")

    # Probes
    dns_timeout_seconds: float = Field(default=5.0, description="Lifetime of one DNS lookup")
    ping_timeout_seconds: float = Field(default=2.0, description="Wait for one echo reply")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="'json' or 'console'")
    error_log_path: Optional[str] = Field(default="error.log", description="File receiving ERROR records")

    def require_credentials(self) -> None:
        missing = [name for name, value in (("API_KEY", self.api_key), ("CONFIG_URL", self.config_url)) if not value]
        if missing:
            raise RuntimeError(f"Missing {' and '.join(missing)} env vars")


def load_settings(config_path: Optional[str] = None) -> AgentSettings:
    """Load settings from a YAML file, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("NEMEA_CONFIG", DEFAULT_CONFIG_PATH)

    config_data = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ValueError("Config YAML must be a mapping")

    env_overrides = {
        "api_key": os.getenv("API_KEY"),
        "config_url": os.getenv("CONFIG_URL"),
        "geo_api_key": os.getenv("GEO_API_KEY"),
        "log_level": os.getenv("LOG_LEVEL"),
        "error_log_path": os.getenv("NEMEA_ERROR_LOG"),
    }
    for key, value in env_overrides.items():
        if value is not None:
            config_data[key] = value.strip()

    # An empty error log path disables the file handler.
    if config_data.get("error_log_path") == "":
        config_data["error_log_path"] = None

    return AgentSettings(**config_data)
