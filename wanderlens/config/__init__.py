"""
Configuration package for the WanderLens location service.
"""

from .settings import (
    Settings,
    Environment,
    LogLevel,
    StorageBackend,
    GeolocationSettings,
    PlacesSettings,
    StorageSettings,
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
    "StorageBackend",
    "GeolocationSettings",
    "PlacesSettings",
    "StorageSettings",
    "RedisSettings",
    "SecuritySettings",
    "settings",
    "get_settings",
    "reload_settings",
]
