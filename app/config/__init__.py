"""
Configuration package for the TravlrHub proximity service.
"""

from .settings import (
    Settings,
    Environment,
    LogLevel,
    DatabaseSettings,
    ProximitySettings,
    TrackingSettings,
    PlacesSettings,
    RedisSettings,
    SecuritySettings,
    settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "Environment",
    "LogLevel",
    "DatabaseSettings",
    "ProximitySettings",
    "TrackingSettings",
    "PlacesSettings",
    "RedisSettings",
    "SecuritySettings",
    "settings",
    "get_settings",
    "reload_settings",
]
