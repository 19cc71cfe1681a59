"""Core business logic for profit-sync.

This package contains the sync and migration engines and the ports they use
to reach the user interface.
"""

from .ports import (
    ConflictChoice,
    ConflictResolutionPort,
    FixedChoiceResolver,
    LoggingNotifier,
    NotificationPort,
    request_choice,
)

__all__ = [
    "ConflictChoice",
    "ConflictResolutionPort",
    "FixedChoiceResolver",
    "LoggingNotifier",
    "NotificationPort",
    "request_choice",
]
