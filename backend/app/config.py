"""SSO resource proxy configuration.

Loads settings from a single YAML file:
  * sso-proxy.settings.yaml: non-secret configuration

There is no secrets file: AWS credentials are never configured here.
Identity Center issues them per session at runtime, and boto3 handles its
own region/credential discovery for everything else.

Environment overrides:
  * SSO_PROXY_SETTINGS: path to an alternate settings file
  * PORT: listening port (overrides server.port)
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("sso-proxy.settings.yaml")
SETTINGS_ENV  = "SSO_PROXY_SETTINGS"
PORT_ENV      = "PORT"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3001
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class SSOSettings(BaseModel):
    """IAM Identity Center OIDC settings."""
    default_region: str = "us-east-1"
    client_name:    str = "sso-resource-proxy"


class SessionSettings(BaseModel):
    """Retention is measured from session creation, not credential expiry."""
    retention_minutes:      int = Field(default=60, ge=1)
    sweep_interval_minutes: int = Field(default=10, ge=1)

    @property
    def retention_seconds(self) -> int:
        return self.retention_minutes * 60

    @property
    def sweep_interval_seconds(self) -> int:
        return self.sweep_interval_minutes * 60


class PollingSettings(BaseModel):
    """Caller-side device-flow polling cadence."""
    interval_seconds: float = Field(default=5.0, ge=5.0)
    max_attempts:     int   = Field(default=60, ge=1)


class ResourceSettings(BaseModel):
    default_region: str = "us-east-1"


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value!r}")
        return value.lower()


class ProxyConfig(BaseModel):
    server:    ServerSettings   = Field(default_factory=ServerSettings)
    sso:       SSOSettings      = Field(default_factory=SSOSettings)
    sessions:  SessionSettings  = Field(default_factory=SessionSettings)
    polling:   PollingSettings  = Field(default_factory=PollingSettings)
    resources: ResourceSettings = Field(default_factory=ResourceSettings)
    logging:   LoggingSettings  = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay the PORT environment variable onto raw settings data."""
    port = os.environ.get(PORT_ENV)
    if port:
        data.setdefault("server", {})
        data["server"]["port"] = int(port)
        logger.info("Listening port overridden from env: %s", port)
    return data


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(path: Optional[Path] = None) -> ProxyConfig:
    """Load settings into a single *ProxyConfig* object."""
    if path is None:
        path = Path(os.environ.get(SETTINGS_ENV, SETTINGS_FILE))
    data = _apply_env_overrides(_load_yaml(path))

    config = ProxyConfig(**data)
    logger.info(
        "Settings loaded (server=%s:%s, sso.region=%s, retention=%smin)",
        config.server.host,
        config.server.port,
        config.sso.default_region,
        config.sessions.retention_minutes,
    )
    return config


_config: Optional[ProxyConfig] = None


def get_config() -> ProxyConfig:
    """Return the process config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() reloads it."""
    global _config
    _config = None
