"""
Configuration loader for the Snow Shield backend.

Settings come from three layers, later layers winning:
built-in defaults, backend/config/settings.yaml, environment variables.
"""
import os
from dataclasses import dataclass, field, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from snowshield.logging_config import get_logger

logger = get_logger(__name__)


DEFAULTS: Dict[str, Any] = {
    "database_url": "sqlite:///./snowshield.db",
    "media_root": "./media",
    "media_base_url": "/media",
    "openweather_api_key": None,
    "openweather_base_url": "https://api.openweathermap.org/data/2.5",
    "weather_timeout_seconds": 10.0,
    "default_country_code": "us",
    "max_photos": 5,
    "max_photo_bytes": 5 * 1024 * 1024,
    "allowed_photo_types": ["image/jpeg", "image/png", "image/jpg"],
    "dashboard_feed_limit": 6,
    "log_level": "INFO",
}

# setting name -> environment variable
ENV_OVERRIDES: Dict[str, str] = {
    "database_url": "DATABASE_URL",
    "media_root": "MEDIA_ROOT",
    "media_base_url": "MEDIA_BASE_URL",
    "openweather_api_key": "OPENWEATHER_API_KEY",
    "openweather_base_url": "OPENWEATHER_BASE_URL",
    "weather_timeout_seconds": "WEATHER_TIMEOUT_SECONDS",
    "default_country_code": "DEFAULT_COUNTRY_CODE",
    "dashboard_feed_limit": "DASHBOARD_FEED_LIMIT",
    "log_level": "LOG_LEVEL",
}


@dataclass(frozen=True)
class Settings:
    """Resolved application settings."""
    database_url: str = DEFAULTS["database_url"]
    media_root: str = DEFAULTS["media_root"]
    media_base_url: str = DEFAULTS["media_base_url"]
    openweather_api_key: Optional[str] = None
    openweather_base_url: str = DEFAULTS["openweather_base_url"]
    weather_timeout_seconds: float = DEFAULTS["weather_timeout_seconds"]
    default_country_code: str = DEFAULTS["default_country_code"]
    max_photos: int = DEFAULTS["max_photos"]
    max_photo_bytes: int = DEFAULTS["max_photo_bytes"]
    allowed_photo_types: Tuple[str, ...] = field(
        default_factory=lambda: tuple(DEFAULTS["allowed_photo_types"])
    )
    dashboard_feed_limit: int = DEFAULTS["dashboard_feed_limit"]
    log_level: str = DEFAULTS["log_level"]


def get_config_path() -> Path:
    """Get the path to the settings file (may not exist)."""
    override = os.getenv("SNOWSHIELD_CONFIG")
    if override:
        return Path(override)
    backend_dir = Path(__file__).resolve().parent.parent
    return backend_dir / "config" / "settings.yaml"


def load_settings_file(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load raw settings from YAML.

    Expected structure:

    settings:
      database_url: "sqlite:///./snowshield.db"
      media_root: "./media"
      dashboard_feed_limit: 6

    Returns an empty dict when the file is missing or unreadable.
    """
    config_path = config_path or get_config_path()
    if not config_path.exists():
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read settings file {config_path}: {e}; using defaults")
        return {}

    section = data.get("settings", data) if isinstance(data, dict) else {}
    if not isinstance(section, dict):
        logger.warning(f"Invalid settings file {config_path}: expected a mapping")
        return {}
    return {k: v for k, v in section.items() if v is not None}


def _coerce(name: str, value: Any) -> Any:
    default = DEFAULTS.get(name)
    if name == "allowed_photo_types":
        if isinstance(value, str):
            value = [v.strip() for v in value.split(",") if v.strip()]
        return tuple(value)
    if isinstance(default, bool):
        return str(value).lower() in ("1", "true", "yes")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Build Settings from defaults, the YAML file and the environment."""
    values: Dict[str, Any] = dict(DEFAULTS)

    file_values = load_settings_file(config_path)
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(file_values) - known)
    if unknown:
        logger.warning(f"Ignoring unknown settings keys: {unknown}")
    values.update({k: v for k, v in file_values.items() if k in known})

    for name, env_var in ENV_OVERRIDES.items():
        env_value = os.getenv(env_var)
        if env_value:
            values[name] = env_value

    return Settings(**{name: _coerce(name, value) for name, value in values.items()})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return load_settings()
