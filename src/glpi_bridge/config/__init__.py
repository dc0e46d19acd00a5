"""Configuration package for the GLPI bridge."""

from .settings import (
    GlpiSettings,
    SyncSettings,
    DatabaseSettings,
    LoggingSettings,
    ServerSettings,
    AppSettings,
    get_settings,
    reload_settings
)

__all__ = [
    "GlpiSettings",
    "SyncSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "ServerSettings",
    "AppSettings",
    "get_settings",
    "reload_settings"
]
