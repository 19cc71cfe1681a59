"""Profit Sync.

Offline-first, cloud-first synchronization core for the ProfitTracker field
data app: local durable store, remote document store, conflict resolution,
sync engine and one-time per-device migration.
"""

__version__ = "1.0.0"
__author__ = "Anton"
__email__ = ""

from .config import Config
from .core.migration import MigrationEngine
from .core.sync import SyncEngine
from .database import DatabaseService, LocalStore
from .models import DailyEntry, RateSettings

__all__ = [
    "Config",
    "DailyEntry",
    "DatabaseService",
    "LocalStore",
    "MigrationEngine",
    "RateSettings",
    "SyncEngine",
]
