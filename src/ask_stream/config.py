"""Configuration management using Pydantic settings with optional file persistence."""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Paths ---

APP_NAME = "ask-stream"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/ask-stream)."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / ".config")).expanduser()
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()

    return base / APP_NAME


def get_config_file() -> Path:
    """Location of the JSON config file. ASK_STREAM_CONFIG_FILE overrides it."""
    override = os.environ.get("ASK_STREAM_CONFIG_FILE")
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "config.json"


def load_config_file() -> dict[str, Any]:
    """Load settings from the JSON config file if it exists."""
    config_file = get_config_file()
    if not config_file.exists():
        return {}

    try:
        text = config_file.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config_file(config_data: dict[str, Any]) -> Path:
    """Save settings to the JSON config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config_data, indent=2), encoding="utf-8")
    return config_file


GenerateModeType = Literal["list", "summarize", "generate"]


class ClientSettings(BaseSettings):
    """Request-building configuration supplied to every query."""

    model_config = SettingsConfigDict(env_prefix="ASK_STREAM_CLIENT_")

    api_endpoint: str = Field(default="http://localhost:8000/ask", description="Streaming endpoint queries are sent to")
    site: Optional[str] = Field(default=None, description="Site to restrict the query to (omitted when unset)")
    generate_mode: GenerateModeType = Field(default="list", description="Answer mode: list, summarize, or generate")
    context_url: Optional[str] = Field(default=None, description="Page the user is currently looking at")


class ConnectionSettings(BaseSettings):
    """Reconnect and transport configuration."""

    model_config = SettingsConfigDict(env_prefix="ASK_STREAM_CONNECTION_")

    max_retries: int = Field(default=3, ge=0, le=10, description="Reconnect attempts before a session fails")
    initial_delay: float = Field(default=1.0, gt=0, description="Backoff base in seconds")
    max_delay: float = Field(default=10.0, gt=0, description="Backoff ceiling in seconds")
    timeout: float = Field(default=30.0, gt=0, description="Connect timeout in seconds; reads never time out")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="ASK_STREAM_LOGGING_")

    level: str = Field(default="WARNING")
    json_output: bool = Field(default=False, description="Render log lines as JSON instead of key=value")


class AppSettings(BaseSettings):
    """Root application settings.

    Priority: Environment Variables > Config File > Defaults
    """

    model_config = SettingsConfigDict(env_prefix="ASK_STREAM_", extra="ignore")

    client: ClientSettings = Field(default_factory=ClientSettings)
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def save(self) -> Path:
        """Save current configuration to file."""
        return save_config_file(self.model_dump(mode="json", exclude_none=True))


def _load_settings() -> AppSettings:
    """Load settings with file config as base, env vars overlay."""
    file_data = load_config_file()
    # Nested groups read their own env prefix, so only seed them from the file
    # when the file actually has them.
    groups = {
        "client": ClientSettings,
        "connection": ConnectionSettings,
        "logging": LoggingSettings,
    }
    kwargs: dict[str, Any] = {}
    for name, cls in groups.items():
        section = file_data.get(name)
        if isinstance(section, dict):
            env_values = cls().model_dump(exclude_defaults=True)
            kwargs[name] = cls(**{**section, **env_values})
    return AppSettings(**kwargs)


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Cached application settings."""
    return _load_settings()
