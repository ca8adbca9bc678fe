"""Configuration module for twirpy."""

from twirpy.config.loader import get_config_path, load_config, save_config
from twirpy.config.schema import ClientSettings, Config, LoggingSettings, ServerSettings

__all__ = [
    "Config",
    "ServerSettings",
    "ClientSettings",
    "LoggingSettings",
    "load_config",
    "save_config",
    "get_config_path",
]
