"""Migration CLI commands: migrate, devices and legacy import."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from ...core.migration import MigrationReport, MigrationStats
from ...database import Namespace
from ...models import DailyEntry, DeviceRegistryEntry, RateSettings
from ...remote import Collection
from ..display import display_devices, display_migration_report
from .app import ProfitSyncApp

console = Console()
logger = logging.getLogger(__name__)


@click.command("migrate")
@click.pass_obj
def migrate_command(app: ProfitSyncApp) -> None:
    """Upload legacy local-only data once for this device."""
    engine = app.require_migration_engine()
    app.restore_user()

    async def run() -> MigrationReport:
        try:
            return await engine.migrate()
        finally:
            await app.close()

    report = asyncio.run(run())
    display_migration_report(report)
    if report.ran and report.status.value != "completed":
        raise click.exceptions.Exit(1)


@click.command("devices")
@click.pass_obj
def devices_command(app: ProfitSyncApp) -> None:
    """List the devices registered for the configured user."""
    remote = app.require_remote()
    engine = app.require_migration_engine()
    user = app.restore_user()

    async def run() -> Tuple[List[DeviceRegistryEntry], MigrationStats]:
        try:
            documents = await remote.get_all(Collection.DEVICES, user.uid)
            stats = await engine.get_user_migration_stats(user.uid)
        finally:
            await app.close()
        return [DeviceRegistryEntry.model_validate(doc) for doc in documents], stats

    devices, stats = asyncio.run(run())
    display_devices(devices, stats)


def _load_legacy_file(path: Path) -> Tuple[List[Dict[str, Any]], Any]:
    """Read legacy data exported from the pre-cloud app.

    Accepts either a list of entries or an object with "entries" and
    "settings" keys.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        return data, None
    if isinstance(data, dict):
        return list(data.get("entries", [])), data.get("settings")
    raise click.ClickException(f"Unsupported legacy file format in {path}")


@click.command("import-legacy")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_legacy_command(app: ProfitSyncApp, file: Path) -> None:
    """Load a legacy JSON export into this device's legacy store.

    The imported data is uploaded by the next migration run.
    """
    try:
        raw_entries, raw_settings = _load_legacy_file(file)
    except (OSError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Could not read {file}: {e}") from e

    entries: List[Dict[str, Any]] = []
    for raw in raw_entries:
        try:
            entries.append(DailyEntry.model_validate(raw).to_document())
        except ValidationError as e:
            console.print(
                f"[yellow]⚠️  Skipping invalid entry {escape(f'{raw!r:.60}')}: "
                f"{escape(str(e))}[/yellow]"
            )

    settings = None
    if raw_settings:
        try:
            settings = RateSettings.model_validate(raw_settings).to_document()
        except ValidationError as e:
            console.print(
                f"[yellow]⚠️  Skipping invalid settings: {escape(str(e))}[/yellow]"
            )

    async def run() -> None:
        try:
            for entry in entries:
                await app.local_store.upsert(Namespace.LEGACY_ENTRIES, entry)
            if settings is not None:
                await app.local_store.upsert(Namespace.LEGACY_SETTINGS, settings)
        finally:
            await app.close()

    asyncio.run(run())
    console.print(
        f"[green]✓[/green] Imported {len(entries)} legacy entries"
        + (" and settings" if settings is not None else "")
    )
