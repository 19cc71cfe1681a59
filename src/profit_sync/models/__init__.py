"""Models for the profit-sync application."""

from .models import (
    ENTRY_BUSINESS_FIELDS,
    SETTINGS_BUSINESS_FIELDS,
    SETTINGS_KEY,
    DailyEntry,
    DeviceRegistryEntry,
    Expenses,
    MigrationResults,
    MigrationStatus,
    OfflineAction,
    PerDiem,
    RateSettings,
    SyncStatus,
)

__all__ = [
    "ENTRY_BUSINESS_FIELDS",
    "SETTINGS_BUSINESS_FIELDS",
    "SETTINGS_KEY",
    "DailyEntry",
    "DeviceRegistryEntry",
    "Expenses",
    "MigrationResults",
    "MigrationStatus",
    "OfflineAction",
    "PerDiem",
    "RateSettings",
    "SyncStatus",
]
