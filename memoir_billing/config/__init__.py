"""Configuration package."""

from memoir_billing.config.settings import (
    DEFAULT_PRODUCT_TIER_MAP,
    DEFAULT_TIER_PRIORITY,
    AllowanceSettings,
    AppSettings,
    GoogleSheetsSettings,
    RevenueCatSettings,
    Settings,
    StorageBackend,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DEFAULT_PRODUCT_TIER_MAP",
    "DEFAULT_TIER_PRIORITY",
    "AllowanceSettings",
    "AppSettings",
    "GoogleSheetsSettings",
    "RevenueCatSettings",
    "Settings",
    "StorageBackend",
    "get_settings",
    "validate_all_settings",
]
