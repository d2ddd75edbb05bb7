"""Configuration management for dvdiso."""

from ..exceptions import ConfigurationError
from .presets import PresetsService, builtin_presets
from .settings import (
    Settings,
    ValidationResult,
    get_default_config_file,
    load_settings,
    validate_settings,
)

__all__ = [
    "ConfigurationError",
    "PresetsService",
    "Settings",
    "ValidationResult",
    "builtin_presets",
    "get_default_config_file",
    "load_settings",
    "validate_settings",
]
