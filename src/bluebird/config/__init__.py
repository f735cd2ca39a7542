"""Configuration module for Bluebird."""

from .settings import (
    DatabaseSettings,
    LoggingSettings,
    RedisSettings,
    Settings,
    SpotifySettings,
    SyncSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "LoggingSettings",
    "RedisSettings",
    "Settings",
    "SpotifySettings",
    "SyncSettings",
    "get_settings",
]
