"""Remote document store implementations."""

from .base import (
    ChangeCallback,
    ChangeKind,
    Collection,
    RemoteChange,
    RemoteStore,
    Unsubscribe,
)
from .http import HttpRemoteStore
from .memory import InMemoryRemoteStore

__all__ = [
    "ChangeCallback",
    "ChangeKind",
    "Collection",
    "RemoteChange",
    "RemoteStore",
    "Unsubscribe",
    "HttpRemoteStore",
    "InMemoryRemoteStore",
]
