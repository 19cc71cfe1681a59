"""Data models for the profit-sync application.

Stores exchange plain JSON documents with camelCase keys; these models validate
and build those documents at the edges (UI writes, CLI import, registry entries).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..utils.timestamps import utcnow

SETTINGS_KEY = "rates"

# Fields compared when two versions carry the same timestamp. Timestamps and
# store bookkeeping never take part in the comparison.
ENTRY_BUSINESS_FIELDS = (
    "date",
    "points",
    "kms",
    "perDiem",
    "notes",
    "expenses",
    "landLocations",
)
SETTINGS_BUSINESS_FIELDS = (
    "pointRate",
    "kmRate",
    "perDiemFullRate",
    "perDiemPartialRate",
    "includeGST",
    "techCode",
    "gstNumber",
    "businessName",
)

# Default rates used when no settings were ever saved
POINT_BASE_RATE = 6.50
KM_BASE_RATE = 0.85
PER_DIEM_FULL_RATE = 171.0
PER_DIEM_PARTIAL_RATE = 46.0


class DocumentModel(BaseModel):
    """Base model serialising to camelCase store documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> Dict[str, Any]:
        """Serialise to a JSON-compatible store document."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PerDiem(str, Enum):
    """Per diem claimed for a work day."""

    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class Expenses(DocumentModel):
    """Expense breakdown of a daily entry."""

    hotel: float = 0.0
    gas: float = 0.0
    food: float = 0.0

    @property
    def total(self) -> float:
        """Sum of all expense categories."""
        return self.hotel + self.gas + self.food


class DailyEntry(DocumentModel):
    """A daily field entry, keyed by its calendar date."""

    date: str
    points: float = 0.0
    kms: float = 0.0
    per_diem: PerDiem = PerDiem.FULL
    notes: str = ""
    expenses: Expenses = Field(default_factory=Expenses)
    land_locations: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    remote_updated_at: Optional[datetime] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        """Require an ISO calendar date (YYYY-MM-DD)."""
        try:
            datetime.strptime(value, "%Y-%m-%d")
        except ValueError as e:
            raise ValueError(f"Entry date must be YYYY-MM-DD, got '{value}'") from e
        return value

    def touch(self, now: Optional[datetime] = None) -> "DailyEntry":
        """Return a copy stamped for a new local write.

        createdAt is kept when already set; modifiedAt always moves to ``now``.
        """
        now = now or utcnow()
        return self.model_copy(
            update={
                "created_at": self.created_at or now,
                "modified_at": now,
                "remote_updated_at": None,
            }
        )


class RateSettings(DocumentModel):
    """Per-user rate configuration (singleton document)."""

    name: str = SETTINGS_KEY
    point_rate: float = POINT_BASE_RATE
    km_rate: float = KM_BASE_RATE
    per_diem_full_rate: float = PER_DIEM_FULL_RATE
    per_diem_partial_rate: float = PER_DIEM_PARTIAL_RATE
    include_gst: bool = Field(default=False, alias="includeGST")
    tech_code: str = ""
    gst_number: str = ""
    business_name: str = ""
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    remote_updated_at: Optional[datetime] = None

    @field_validator("tech_code")
    @classmethod
    def validate_tech_code(cls, value: str) -> str:
        """Tech codes are one letter followed by three digits (e.g. C123)."""
        value = value.strip().upper()
        if value and not (
            len(value) == 4 and value[0].isalpha() and value[1:].isdigit()
        ):
            raise ValueError("Tech code must be in format C### (letter + 3 digits)")
        return value

    def touch(self, now: Optional[datetime] = None) -> "RateSettings":
        """Return a copy stamped for a new local write."""
        now = now or utcnow()
        return self.model_copy(
            update={
                "name": SETTINGS_KEY,
                "created_at": self.created_at or now,
                "modified_at": now,
                "remote_updated_at": None,
            }
        )


class OfflineAction(str, Enum):
    """Write buffered in the outbox."""

    SAVE = "save"
    DELETE = "delete"


class MigrationStatus(str, Enum):
    """Per-device migration state kept in the device registry."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class MigrationResults(DocumentModel):
    """Counters recorded for one migration attempt."""

    migrated_entries: int = 0
    skipped_entries: int = 0
    conflicted_entries: int = 0
    failed_entries: int = 0
    migrated_settings: bool = False
    settings_failed: bool = False
    error: Optional[str] = None

    @property
    def has_failures(self) -> bool:
        """Whether anything was left behind for a later attempt."""
        return self.failed_entries > 0 or self.settings_failed


class DeviceRegistryEntry(DocumentModel):
    """Remote registry row tracking one device's one-time migration."""

    id: str
    platform: str = ""
    migration_status: MigrationStatus = MigrationStatus.PENDING
    migration_attempts: int = 0
    migration_results: Optional[MigrationResults] = None
    completed_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    remote_updated_at: Optional[datetime] = None


class SyncStatus(BaseModel):
    """Snapshot of the sync engine exposed to the UI layer."""

    state: str
    is_syncing: bool
    is_online: bool
    last_sync_time: Optional[datetime] = None
    is_signed_in: bool = False
    has_permission_error: bool = False
