"""Centralized grid editor configuration.

Single source of truth for storage, upload and loading settings.
Reads from environment variables with sensible defaults.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class GridSettings:
    """Grid editor settings loaded from environment.

    Usage:
        settings = get_grid_settings()
        print(settings.database_url)  # "sqlite:///data/app.db"
    """
    # Storage
    data_dir: str = "data"
    database_url: str = ""

    # Uploads / loading
    max_upload_mb: int = 25
    fetch_timeout: float = 30.0

    # Sessions
    max_open_sessions: int = 200

    # Editing defaults
    default_date_pattern: str = "MM/DD/YYYY"

    # HTTP
    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 120

    log_level: str = "INFO"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def _load_settings_from_env() -> GridSettings:
    """Load grid settings from environment variables."""
    settings = GridSettings()

    settings.data_dir = os.getenv("GRID_DATA_DIR", settings.data_dir)
    settings.database_url = os.getenv(
        "GRID_DATABASE_URL",
        f"sqlite:///{os.path.join(settings.data_dir, 'app.db')}",
    )

    if os.getenv("GRID_MAX_UPLOAD_MB"):
        settings.max_upload_mb = int(os.getenv("GRID_MAX_UPLOAD_MB"))
    if os.getenv("GRID_FETCH_TIMEOUT"):
        settings.fetch_timeout = float(os.getenv("GRID_FETCH_TIMEOUT"))
    if os.getenv("GRID_MAX_OPEN_SESSIONS"):
        settings.max_open_sessions = int(os.getenv("GRID_MAX_OPEN_SESSIONS"))

    settings.default_date_pattern = os.getenv("GRID_DEFAULT_DATE_PATTERN", settings.default_date_pattern)

    # Can be disabled in dev/tests with GRID_DISABLE_RATE_LIMIT=1
    settings.rate_limit_enabled = not os.getenv("GRID_DISABLE_RATE_LIMIT")
    if os.getenv("GRID_RATE_LIMIT_PER_MINUTE"):
        settings.rate_limit_per_minute = int(os.getenv("GRID_RATE_LIMIT_PER_MINUTE"))
    settings.log_level = os.getenv("GRID_LOG_LEVEL", settings.log_level).upper()

    return settings


# Singleton instance
_settings: GridSettings | None = None


def get_grid_settings() -> GridSettings:
    """Get the grid settings singleton.

    Settings are loaded once from environment on first access.
    """
    global _settings
    if _settings is None:
        _settings = _load_settings_from_env()
    return _settings


def reload_grid_settings() -> GridSettings:
    """Force reload settings from environment.

    Useful for testing or after env changes.
    """
    global _settings
    _settings = _load_settings_from_env()
    return _settings
