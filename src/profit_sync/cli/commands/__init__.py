"""CLI command modules."""

from .app import ProfitSyncApp
from .migration import devices_command, import_legacy_command, migrate_command
from .sync import outbox_command, status, sync_command

__all__ = [
    "ProfitSyncApp",
    "devices_command",
    "import_legacy_command",
    "migrate_command",
    "outbox_command",
    "status",
    "sync_command",
]
