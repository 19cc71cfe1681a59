"""Database package for the local durable store.

Contains the SQLAlchemy models, the synchronous database service and the
asynchronous LocalStore facade used by the sync and migration engines.
"""

from .local_store import DEVICE_ID_STATE, LAST_SYNC_STATE, LocalStore
from .models import Base, LocalDocument, LocalState, Namespace
from .service import DatabaseService

__all__ = [
    # Models
    "Base",
    "LocalDocument",
    "LocalState",
    "Namespace",
    # Services
    "DatabaseService",
    "LocalStore",
    # State names
    "DEVICE_ID_STATE",
    "LAST_SYNC_STATE",
]
