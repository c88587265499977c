"""Agora application configuration.

Loads settings from a single YAML file:
  * agora.settings.yaml  — non-secret configuration

The path can be overridden with the ``AGORA_SETTINGS`` environment variable.
A missing file is not an error; every section falls back to its defaults.
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

SETTINGS_FILE = Path("agora.settings.yaml")
SETTINGS_ENV_VAR = "AGORA_SETTINGS"


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
    port:            int       = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if not isinstance(logging.getLevelName(value.upper()), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class RealtimeSettings(BaseModel):
    """Tuning for the WebSocket presence and messaging layer."""
    typing_debounce_ms:        int  = Field(default=3000, gt=0)
    typing_stop_on_disconnect: bool = False
    max_frame_bytes:           int  = Field(default=64 * 1024, gt=0)

    @property
    def typing_debounce_seconds(self) -> float:
        return self.typing_debounce_ms / 1000.0


class NotificationSettings(BaseModel):
    db_path:           str = "notifications.duckdb"
    default_page_size: int = Field(default=20, ge=1)
    max_page_size:     int = Field(default=100, ge=1)


class AppSettings(BaseModel):
    server:        ServerSettings       = Field(default_factory=ServerSettings)
    logging:       LoggingSettings      = Field(default_factory=LoggingSettings)
    realtime:      RealtimeSettings     = Field(default_factory=RealtimeSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

_config: Optional[AppSettings] = None


def settings_path() -> Path:
    return Path(os.environ.get(SETTINGS_ENV_VAR, str(SETTINGS_FILE)))


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load *path* (or the default settings file) into an *AppSettings* object."""
    settings_data = _load_yaml(path or settings_path())

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, typing_debounce_ms=%s, notifications.db=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.realtime.typing_debounce_ms,
        app_settings.notifications.db_path,
    )
    return app_settings


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(settings: AppSettings) -> None:
    global _config
    _config = settings


def reset_config() -> None:
    """Drop the cached settings so the next ``get_config()`` reloads them."""
    global _config
    _config = None
