"""Configuration management system for RivalScope."""

from .loader import ConfigLoader, create_example_config
from .settings import (
    AppSettings,
    DatabaseSettings,
    DetectionSettings,
    FetcherSettings,
    NotificationSettings,
    TrackingSettings,
    get_settings,
    reload_settings,
    validate_settings,
)
from .types import ConfigError, ConfigLoadError, TargetConfiguration

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "DetectionSettings",
    "FetcherSettings",
    "NotificationSettings",
    "TrackingSettings",
    "get_settings",
    "reload_settings",
    "validate_settings",
    "ConfigLoader",
    "create_example_config",
    "ConfigError",
    "ConfigLoadError",
    "TargetConfiguration",
]
