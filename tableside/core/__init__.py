"""Configuration and logging setup."""

from tableside.core.config import EnvironmentMode, Settings, get_settings, setup_logging

__all__ = ["EnvironmentMode", "Settings", "get_settings", "setup_logging"]
