"""Console implementations of the notification and conflict ports."""

import asyncio
import logging
from typing import Any, Dict

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table

from ...core.ports import ConflictChoice, ConflictResolutionPort, NotificationPort
from ...models import ENTRY_BUSINESS_FIELDS, SETTINGS_BUSINESS_FIELDS

logger = logging.getLogger(__name__)


class ConsoleNotifier(NotificationPort):
    """Prints notifications as a single coloured line."""

    def __init__(self, console: Console):
        """Initialize with the console to print to."""
        self.console = console

    async def show_notification(self, message: str, is_error: bool = False) -> None:
        """Print one notification line."""
        if is_error:
            self.console.print(f"[red]✗[/red] {escape(message)}")
        else:
            self.console.print(f"[green]✓[/green] {escape(message)}")


class ConsoleConflictPrompt(ConflictResolutionPort):
    """Shows both versions side by side and asks which one to keep."""

    def __init__(self, console: Console, assume: str = ""):
        """Initialize conflict prompt.

        Args:
            console: Console used for the comparison table and prompt
            assume: "local" or "cloud" to answer every conflict without asking
        """
        self.console = console
        self.assume = assume

    def _render(self, local: Dict[str, Any], remote: Dict[str, Any]) -> None:
        is_settings = "name" in local and "date" not in local
        fields = SETTINGS_BUSINESS_FIELDS if is_settings else ENTRY_BUSINESS_FIELDS
        title = "Settings" if is_settings else f"Entry {local.get('date', '')}"

        table = Table(title=f"Conflict: {title}", header_style="bold magenta")
        table.add_column("Field", style="cyan")
        table.add_column("This device", style="yellow")
        table.add_column("Cloud", style="green")
        for name in fields:
            local_value = escape(str(local.get(name, "")))
            remote_value = escape(str(remote.get(name, "")))
            if local_value != remote_value:
                local_value = f"[bold]{local_value}[/bold]"
                remote_value = f"[bold]{remote_value}[/bold]"
            table.add_row(name, local_value, remote_value)
        table.add_row(
            "modifiedAt",
            str(local.get("modifiedAt", "")),
            str(remote.get("modifiedAt", "")),
        )
        self.console.print(table)

    def _ask(self, local: Dict[str, Any], remote: Dict[str, Any]) -> ConflictChoice:
        self._render(local, remote)
        answer = self.assume or Prompt.ask(
            "Keep which version?",
            choices=["local", "cloud"],
            default="cloud",
            console=self.console,
        )
        logger.info("Conflict resolved by user: keep %s", answer)
        if answer == "local":
            return ConflictChoice.KEEP_LOCAL
        return ConflictChoice.KEEP_REMOTE

    async def choose(
        self, local: Dict[str, Any], remote: Dict[str, Any]
    ) -> ConflictChoice:
        """Ask on the console, off the event loop."""
        return await asyncio.to_thread(self._ask, local, remote)
