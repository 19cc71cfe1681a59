"""CLI display and formatting utilities."""

from .formatters import (
    display_devices,
    display_migration_report,
    display_outbox,
    display_status,
    display_sync_result,
)
from .ports import ConsoleConflictPrompt, ConsoleNotifier

__all__ = [
    "ConsoleConflictPrompt",
    "ConsoleNotifier",
    "display_devices",
    "display_migration_report",
    "display_outbox",
    "display_status",
    "display_sync_result",
]
