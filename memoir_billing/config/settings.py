"""
Configuration Management for Memoir Billing

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PRODUCT_TIER_MAP = {
    "plan.monthly": "monthly",
    "plan.yearly": "yearly",
}

# Highest priority first
DEFAULT_TIER_PRIORITY = ("yearly", "monthly")


class StorageBackend(str, Enum):
    """Where allowance state is persisted."""
    MEMORY = "memory"
    JSON = "json"
    GOOGLE_SHEETS = "google_sheets"


class AllowanceSettings(BaseSettings):
    """Allowance meter configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ALLOWANCE_",
        extra="ignore"
    )

    max_per_period: int = Field(
        default=50,
        ge=1,
        le=10000,
        description="Generation credits granted per billing period"
    )
    storage_backend: StorageBackend = Field(
        default=StorageBackend.JSON,
        description="Persistence backend for allowance state"
    )
    json_path: str = Field(
        default="memoir_allowance.json",
        description="File used by the json storage backend"
    )


class RevenueCatSettings(BaseSettings):
    """RevenueCat billing platform configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REVENUECAT_",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="RevenueCat secret API key"
    )
    base_url: str = Field(
        default="https://api.revenuecat.com/v1",
        description="RevenueCat REST API base URL"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Request timeout"
    )
    # Parsed from a JSON object in the environment
    product_tier_map: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_PRODUCT_TIER_MAP),
        description="Store product identifier -> local tier identifier"
    )
    tier_priority: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TIER_PRIORITY),
        description="Local tier identifiers, highest priority first"
    )

    @field_validator("product_tier_map")
    @classmethod
    def validate_product_tier_map(cls, v: dict[str, str]) -> dict[str, str]:
        """Tier identifiers must be non-empty."""
        for product_id, tier_id in v.items():
            if not product_id.strip() or not tier_id.strip():
                raise ValueError("product_tier_map entries must be non-empty strings")
        return v

    @model_validator(mode="after")
    def validate_tier_priority(self) -> "RevenueCatSettings":
        """Every mapped tier must appear in tier_priority."""
        unranked = set(self.product_tier_map.values()) - set(self.tier_priority)
        if unranked:
            raise ValueError(
                f"tier_priority is missing mapped tiers: {sorted(unranked)}"
            )
        return self


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

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
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    allowances_sheet_name: str = Field(
        default="Allowances",
        description="Name of the sheet holding one row per tier"
    )
    state_sheet_name: str = Field(
        default="TrackerState",
        description="Name of the sheet holding the global tracker record"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def allowance(self) -> AllowanceSettings:
        return AllowanceSettings()

    @property
    def revenuecat(self) -> RevenueCatSettings:
        return RevenueCatSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


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

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for each failure. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("allowance", "revenuecat", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
