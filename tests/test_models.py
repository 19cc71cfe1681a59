"""Tests for document models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from profit_sync.models import (
    DailyEntry,
    DeviceRegistryEntry,
    MigrationResults,
    MigrationStatus,
    PerDiem,
    RateSettings,
)


class TestDailyEntry:
    """Test DailyEntry model."""

    def test_entry_defaults(self):
        """Test entry creation with defaults."""
        entry = DailyEntry(date="2026-03-01")
        assert entry.points == 0.0
        assert entry.per_diem == PerDiem.FULL
        assert entry.expenses.total == 0.0
        assert entry.land_locations == []

    def test_invalid_date_rejected(self):
        """Test that dates must be YYYY-MM-DD."""
        with pytest.raises(ValidationError):
            DailyEntry(date="01/03/2026")

    def test_document_uses_camel_case(self):
        """Test serialisation to store documents."""
        entry = DailyEntry(
            date="2026-03-01",
            points=12.5,
            per_diem=PerDiem.PARTIAL,
            land_locations=["Lot 4"],
        )
        doc = entry.to_document()
        assert doc["perDiem"] == "partial"
        assert doc["landLocations"] == ["Lot 4"]
        assert doc["expenses"] == {"hotel": 0.0, "gas": 0.0, "food": 0.0}
        assert "modifiedAt" not in doc

    def test_parses_store_document(self):
        """Test building an entry from a camelCase document."""
        entry = DailyEntry.model_validate(
            {
                "date": "2026-03-01",
                "perDiem": "none",
                "expenses": {"hotel": 80, "gas": 20.5},
                "modifiedAt": "2026-03-01T08:00:00Z",
                "offlineAction": "save",
            }
        )
        assert entry.per_diem == PerDiem.NONE
        assert entry.expenses.total == 100.5
        assert entry.modified_at == datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)

    def test_touch_keeps_created_at(self):
        """Test that touching moves modifiedAt only."""
        created = datetime(2026, 2, 1, tzinfo=timezone.utc)
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        entry = DailyEntry(
            date="2026-03-01",
            created_at=created,
            remote_updated_at=created,
        ).touch(now)
        assert entry.created_at == created
        assert entry.modified_at == now
        assert entry.remote_updated_at is None

    def test_touch_sets_created_at_for_new_entries(self):
        """Test that a new entry gets both timestamps."""
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        entry = DailyEntry(date="2026-03-01").touch(now)
        assert entry.created_at == now
        assert entry.modified_at == now


class TestRateSettings:
    """Test RateSettings model."""

    def test_defaults(self):
        """Test default rates."""
        settings = RateSettings()
        assert settings.name == "rates"
        assert settings.point_rate == 6.50
        assert settings.include_gst is False

    def test_gst_alias(self):
        """Test the includeGST document field."""
        settings = RateSettings.model_validate({"includeGST": True})
        assert settings.include_gst is True
        assert settings.to_document()["includeGST"] is True

    def test_tech_code_normalised(self):
        """Test that tech codes are upper-cased."""
        assert RateSettings(tech_code=" c123 ").tech_code == "C123"

    def test_invalid_tech_code(self):
        """Test tech code validation."""
        with pytest.raises(ValidationError):
            RateSettings(tech_code="1234")


class TestRegistryModels:
    """Test device registry models."""

    def test_registry_entry_round_trip(self):
        """Test registry documents with nested results."""
        entry = DeviceRegistryEntry(
            id="device_abc",
            platform="Linux",
            migration_status=MigrationStatus.COMPLETED,
            migration_attempts=1,
            migration_results=MigrationResults(migrated_entries=3),
        )
        doc = entry.to_document()
        assert doc["migrationStatus"] == "completed"
        assert doc["migrationResults"]["migratedEntries"] == 3

        parsed = DeviceRegistryEntry.model_validate(doc)
        assert parsed.migration_results.migrated_entries == 3

    def test_results_failures(self):
        """Test failure detection in migration results."""
        assert not MigrationResults(migrated_entries=2).has_failures
        assert MigrationResults(failed_entries=1).has_failures
        assert MigrationResults(settings_failed=True).has_failures
