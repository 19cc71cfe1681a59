"""Display formatters and UI helpers for CLI."""

import logging
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ...core.migration import MigrationReport, MigrationStats
from ...core.sync import SyncResult
from ...models import DeviceRegistryEntry, SyncStatus
from ...utils.timestamps import to_iso

console = Console()
logger = logging.getLogger(__name__)


def display_sync_result(result: SyncResult) -> None:
    """Display sync results.

    Args:
        result: Result of a sync pass
    """
    if result.skipped:
        console.print(f"[yellow]⚠️  {result.summary()}[/yellow]")
        return
    if result.aborted:
        console.print(f"[red]✗ {result.summary()}[/red]")
    elif result.success:
        console.print("\n[bold green]✅ Sync completed successfully![/bold green]\n")
    else:
        console.print(
            "\n[bold yellow]⚠️  Sync completed with errors[/bold yellow]\n"
        )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", width=30)
    table.add_column("Value", style="green", justify="right")

    table.add_row("Mode", result.mode)
    table.add_row("Uploaded", str(result.uploaded))
    table.add_row("Downloaded", str(result.downloaded))
    table.add_row("Conflicts", str(result.conflicts))
    table.add_row("Outbox Replayed", str(result.outbox_replayed))
    if result.failed or result.outbox_failed:
        table.add_row(
            "Queued For Retry",
            f"[yellow]{result.failed + result.outbox_failed}[/yellow]",
        )
    table.add_row("Outbox Remaining", str(result.outbox_remaining))
    if result.settings:
        table.add_row("Settings", result.settings)

    console.print(table)

    if result.errors:
        console.print("\n[bold red]Errors:[/bold red]")
        for error in result.errors[:10]:
            console.print(f"  • {escape(error)}")
        if len(result.errors) > 10:
            console.print(f"  ... and {len(result.errors) - 10} more")
    console.print()


def display_status(
    status: SyncStatus,
    statistics: Dict[str, Any],
    device_id: Optional[str],
    outbox_count: int,
) -> None:
    """Display sync status and local store statistics."""
    console.print("\n[bold blue]📊 Sync Status[/bold blue]")
    console.print("=" * 60)

    table = Table(show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("State", status.state)
    table.add_row("Signed In", "yes" if status.is_signed_in else "no")
    table.add_row("Online", "yes" if status.is_online else "no")
    table.add_row(
        "Last Sync",
        to_iso(status.last_sync_time) if status.last_sync_time else "never",
    )
    if status.has_permission_error:
        table.add_row("Permission", "[red]denied[/red]")
    table.add_row("Device", device_id or "[dim]not registered[/dim]")
    table.add_row("Queued Writes", str(outbox_count))
    table.add_row("Entries", str(statistics.get("entries", 0)))
    table.add_row("Settings", str(statistics.get("settings", 0)))
    table.add_row("Legacy Entries", str(statistics.get("legacy_entries", 0)))
    table.add_row("Database", str(statistics.get("database_path", "")))

    console.print(table)
    console.print()


def display_outbox(items: List[Dict[str, Any]]) -> None:
    """Display queued writes, oldest first.

    Args:
        items: Dicts with type, key, action and queued_at
    """
    if not items:
        console.print("[green]✓[/green] No queued writes")
        return

    table = Table(title="Queued Writes", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Key", style="white")
    table.add_column("Action", style="yellow")
    table.add_column("Queued At", style="dim")

    for index, item in enumerate(items, start=1):
        table.add_row(
            str(index), item["type"], item["key"], item["action"], item["queued_at"]
        )

    console.print(table)


def display_devices(devices: List[DeviceRegistryEntry], stats: MigrationStats) -> None:
    """Display the device registry of the signed-in user."""
    if not devices:
        console.print("[yellow]No devices registered[/yellow]")
        return

    table = Table(title="Devices", show_header=True, header_style="bold magenta")
    table.add_column("Device", style="cyan")
    table.add_column("Platform", style="white")
    table.add_column("Status", style="white")
    table.add_column("Attempts", justify="right")
    table.add_column("Migrated", justify="right")
    table.add_column("Conflicts", justify="right")
    table.add_column("Last Seen", style="dim")

    colors = {"completed": "green", "pending": "yellow", "failed": "red"}
    for device in devices:
        status = device.migration_status.value
        results = device.migration_results
        table.add_row(
            device.id,
            device.platform,
            f"[{colors.get(status, 'white')}]{status}[/]",
            str(device.migration_attempts),
            str(results.migrated_entries if results else 0),
            str(results.conflicted_entries if results else 0),
            to_iso(device.last_seen) if device.last_seen else "",
        )

    console.print(table)
    console.print(
        f"\n{stats.completed_devices}/{stats.total_devices} devices completed, "
        f"{stats.total_entries_migrated} entries migrated, "
        f"{stats.total_conflicts_resolved} conflicts resolved"
    )


def display_migration_report(report: MigrationReport) -> None:
    """Display the outcome of a migration run."""
    if report.already_completed or report.skipped_reason:
        console.print(f"[yellow]{report.summary()}[/yellow]")
        return

    color = "green" if report.status.value == "completed" else "red"
    console.print(
        f"\n[bold {color}]Migration {report.status.value}[/bold {color}]\n"
    )

    results = report.results
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", width=30)
    table.add_column("Value", style="green", justify="right")
    table.add_row("Device", report.device_id or "")
    table.add_row("Entries Migrated", str(results.migrated_entries))
    table.add_row("Entries Already In Cloud", str(results.skipped_entries))
    table.add_row("Conflicts", str(results.conflicted_entries))
    table.add_row("Entries Failed", str(results.failed_entries))
    table.add_row("Settings Migrated", "yes" if results.migrated_settings else "no")
    if results.error:
        table.add_row("Error", f"[red]{escape(results.error)}[/red]")
    console.print(table)
