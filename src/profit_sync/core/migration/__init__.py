"""One-time per-device migration of legacy local data."""

from .device import current_platform, generate_device_id, get_device_id
from .engine import MigrationEngine, MigrationReport, MigrationStats

__all__ = [
    "MigrationEngine",
    "MigrationReport",
    "MigrationStats",
    "current_platform",
    "generate_device_id",
    "get_device_id",
]
