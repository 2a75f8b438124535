"""Roomchat application configuration.

Loads settings from a single YAML file (``roomchat.settings.yaml``) and
validates it into pydantic models. The file is located by, in order:

  * an explicit ``settings_path`` argument
  * the ``ROOMCHAT_SETTINGS`` environment variable
  * ``roomchat.settings.yaml`` in the working directory

A missing file is not an error; every section has defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("roomchat.settings.yaml")
SETTINGS_ENV_VAR = "ROOMCHAT_SETTINGS"
MEMORY_DB = ":memory:"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _resolve_settings_path(settings_path: Optional[Union[str, Path]]) -> Path:
    if settings_path is not None:
        return Path(settings_path)
    env_path = os.environ.get(SETTINGS_ENV_VAR)
    if env_path:
        return Path(env_path)
    return SETTINGS_FILE


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class StorageSettings(BaseModel):
    """Where room logs and the room directory are persisted."""
    data_dir:    str = "./data"
    messages_db: str = "messages.duckdb"
    rooms_db:    str = "rooms.duckdb"

    def messages_path(self) -> str:
        return self._db_path(self.messages_db)

    def rooms_path(self) -> str:
        return self._db_path(self.rooms_db)

    def _db_path(self, name: str) -> str:
        if name == MEMORY_DB:
            return name
        path = Path(name)
        if path.is_absolute():
            return str(path)
        return str(Path(self.data_dir) / path)


class WindowSettings(BaseModel):
    page_size:        int   = Field(default=20, ge=1)
    extend_delay_ms:  int   = Field(default=800, ge=0)
    # load_older is honoured only while the client is scrolled this close to the top
    top_threshold_px: float = Field(default=0.0, ge=0)


class ReplySettings(BaseModel):
    """Timing and content of simulated replies."""
    throttle_ms:   int  = Field(default=2000, ge=0)
    base_delay_ms: int  = Field(default=1000, ge=0)
    jitter_ms:     int  = Field(default=600, ge=0)
    text:          str  = "Gemini response (simulated)"
    queue_replies: bool = False


class SeedSettings(BaseModel):
    count:       int = Field(default=60, ge=0)
    interval_ms: int = Field(default=60_000, ge=1)


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    window:  WindowSettings  = Field(default_factory=WindowSettings)
    replies: ReplySettings   = Field(default_factory=ReplySettings)
    seed:    SeedSettings    = Field(default_factory=SeedSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Union[str, Path]] = None) -> AppSettings:
    """Load settings from YAML into an *AppSettings* object.

    A relative ``storage.data_dir`` is resolved against the directory of the
    settings file so the service behaves the same from any working directory.
    """
    path = _resolve_settings_path(settings_path)
    settings = AppSettings(**_load_yaml(path))

    data_dir = Path(settings.storage.data_dir)
    if not data_dir.is_absolute() and path.exists():
        settings.storage.data_dir = str(path.resolve().parent / data_dir)

    logger.info(
        "Settings loaded from %s (page_size=%d, throttle_ms=%d, data_dir=%s)",
        path,
        settings.window.page_size,
        settings.replies.throttle_ms,
        settings.storage.data_dir,
    )
    return settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached settings (used by tests)."""
    global _config
    _config = None
