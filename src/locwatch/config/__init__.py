"""Configuration management for the location monitor."""

from .loader import ConfigLoader
from .settings import (
    AnalysisSettings,
    ApiSettings,
    AppSettings,
    DatabaseSettings,
    DiscoverySettings,
    SchedulerSettings,
    ScrapingSettings,
    get_settings,
    reload_settings,
)
from .types import ConfigError, ConfigLoadError, SiteConfiguration

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "ScrapingSettings",
    "DiscoverySettings",
    "SchedulerSettings",
    "AnalysisSettings",
    "ApiSettings",
    "get_settings",
    "reload_settings",
    "ConfigLoader",
    "ConfigError",
    "ConfigLoadError",
    "SiteConfiguration",
]
