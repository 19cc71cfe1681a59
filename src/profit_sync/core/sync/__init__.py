"""Synchronization module.

Handles conflict resolution, the sync state machine, the outbox and the sync
engine itself.
"""

from .conflict_resolver import Resolution, fields_equal, resolve
from .engine import SyncEngine, SyncResult
from .outbox import Outbox, ReplayResult
from .records import ENTRY_SPACE, RECORD_SPACES, SETTINGS_SPACE, RecordSpace
from .state import SyncEvent, SyncState, transition

__all__ = [
    # Conflict resolution
    "Resolution",
    "fields_equal",
    "resolve",
    # State machine
    "SyncEvent",
    "SyncState",
    "transition",
    # Outbox
    "Outbox",
    "ReplayResult",
    # Record types
    "ENTRY_SPACE",
    "RECORD_SPACES",
    "SETTINGS_SPACE",
    "RecordSpace",
    # Engine
    "SyncEngine",
    "SyncResult",
]
