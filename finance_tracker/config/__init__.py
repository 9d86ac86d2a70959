"""Configuration package."""

from finance_tracker.config.settings import (
    BudgetSettings,
    GoogleSheetsSettings,
    LocalStoreSettings,
    Settings,
    SyncSettings,
    get_settings,
    optional_google_sheets,
    validate_all_settings,
)

__all__ = [
    "BudgetSettings",
    "GoogleSheetsSettings",
    "LocalStoreSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "optional_google_sheets",
    "validate_all_settings",
]
