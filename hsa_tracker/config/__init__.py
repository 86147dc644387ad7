"""Configuration package."""

from hsa_tracker.config.settings import (
    AppSettings,
    CloudinarySettings,
    GoogleSheetsSettings,
    PlaidSettings,
    ResendSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CloudinarySettings",
    "GoogleSheetsSettings",
    "PlaidSettings",
    "ResendSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
