"""Configuration management for the matching service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config
from .models import AppConfig, LogFormat, LoggingConfig, LogLevel, MatchingConfig

__all__ = [
    "load_config",
    "load_environment_config",
    "AppConfig",
    "MatchingConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
