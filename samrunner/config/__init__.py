"""Configuration management for samrunner."""

from samrunner.config.config_manager import SettingsContext
from samrunner.config.config_manager import get_settings
from samrunner.config.config_manager import reset_settings
from samrunner.config.config_manager import set_settings
from samrunner.config.config_manager import settings_context
from samrunner.config.config_manager import update_settings
from samrunner.config.sam_settings import DEFAULT_EXECUTABLE
from samrunner.config.sam_settings import DEFAULT_SETTINGS
from samrunner.config.sam_settings import EXECUTABLE_ENV_VAR
from samrunner.config.sam_settings import SamSettings

__all__ = [
    "DEFAULT_EXECUTABLE",
    "DEFAULT_SETTINGS",
    "EXECUTABLE_ENV_VAR",
    "SamSettings",
    "SettingsContext",
    "get_settings",
    "reset_settings",
    "set_settings",
    "settings_context",
    "update_settings",
]
