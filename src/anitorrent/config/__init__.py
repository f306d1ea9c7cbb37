"""Configuration loading, validation and logging setup."""

from anitorrent.config.manager import ConfigManager
from anitorrent.config.schema import AppConfig

__all__ = ["AppConfig", "ConfigManager"]
