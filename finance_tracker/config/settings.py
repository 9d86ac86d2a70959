"""
Configuration Management for the Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Engine sections (budget thresholds, sync timing) have defaults so the core
runs without any environment. Only the Google Sheets remote needs real
credentials, and it is loaded lazily when the gateway is built.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalStoreSettings(BaseSettings):
    """Local key-value store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_STORE_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path(".finance_tracker"),
        description="Directory holding one JSON snapshot file per store key"
    )
    key_prefix: str = Field(
        default="finanzas_",
        description="Prefix applied to every logical key on disk"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the spreadsheet mirroring the local data"
    )

    # One worksheet per remote table
    transactions_sheet_name: str = Field(
        default="transactions",
        description="Worksheet holding transactions"
    )
    budgets_sheet_name: str = Field(
        default="budgets",
        description="Worksheet holding budgets"
    )
    categories_sheet_name: str = Field(
        default="categories",
        description="Worksheet holding categories"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before syncing."
            )
        return v

    def sheet_name_for(self, table: str) -> str:
        """Map a remote table name to its worksheet title."""
        names = {
            "transactions": self.transactions_sheet_name,
            "budgets": self.budgets_sheet_name,
            "categories": self.categories_sheet_name,
        }
        return names.get(table, table)


class SyncSettings(BaseSettings):
    """Reconciliation timing and connectivity probe configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        extra="ignore"
    )

    debounce_seconds: float = Field(
        default=2.0,
        ge=0.0,
        le=60.0,
        description="Quiet period before a requested sync pass starts"
    )
    probe_host: str = Field(
        default="sheets.googleapis.com",
        description="Host used to check network reachability"
    )
    probe_port: int = Field(
        default=443,
        ge=1,
        le=65535,
    )
    probe_timeout_seconds: float = Field(
        default=3.0,
        gt=0.0,
        description="Connectivity probe timeout"
    )
    poll_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="How often the connectivity monitor re-probes"
    )


class BudgetSettings(BaseSettings):
    """Budget display and alert configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BUDGET_",
        extra="ignore"
    )

    danger_threshold: float = Field(
        default=90.0,
        ge=0.0,
        description="Spent percentage above which a budget is in danger"
    )
    caution_threshold: float = Field(
        default=75.0,
        ge=0.0,
        description="Spent percentage above which a budget needs attention"
    )
    consolidated_id_prefix: str = Field(
        default="consolidated-",
        min_length=1,
        description="Prefix marking derived, non-editable aggregates"
    )
    default_currency: str = Field(
        default="DOP",
        min_length=3,
        max_length=3,
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def local_store(self) -> LocalStoreSettings:
        return LocalStoreSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def budget(self) -> BudgetSettings:
        return BudgetSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries describing what failed. Useful for startup checks.
    """
    results: dict = {}
    settings = get_settings()

    for name in ("local_store", "google_sheets", "sync", "budget"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results


def optional_google_sheets() -> Optional[GoogleSheetsSettings]:
    """Return the remote settings, or None when they are not configured."""
    try:
        return get_settings().google_sheets
    except Exception:
        return None
