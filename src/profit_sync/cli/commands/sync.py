"""Sync CLI commands: status, sync and outbox inspection."""

import asyncio
import logging
from typing import Any, Dict, List

import click
from rich.console import Console

from ...core.sync import Outbox, SyncResult
from ...database import DEVICE_ID_STATE
from ..display import display_outbox, display_status, display_sync_result
from .app import ProfitSyncApp

console = Console()
logger = logging.getLogger(__name__)


@click.command()
@click.pass_obj
def status(app: ProfitSyncApp) -> None:
    """Show sync state, queued writes and local store statistics."""
    if app.config.user_id:
        app.restore_user()

    async def run() -> None:
        try:
            sync_status = await app.get_sync_status()
            device_id = await app.local_store.get_state(DEVICE_ID_STATE)
            outbox_count = await Outbox(app.local_store).count()
            statistics = await asyncio.to_thread(app.db_service.get_statistics)
        finally:
            await app.close()
        display_status(sync_status, statistics, device_id, outbox_count)

    asyncio.run(run())


@click.command("sync")
@click.option(
    "--full",
    is_flag=True,
    help="Reset the watermark and reconcile every record in both directions",
)
@click.pass_obj
def sync_command(app: ProfitSyncApp, full: bool) -> None:
    """Synchronize local data with the cloud.

    Without --full, replays queued writes and uploads records changed since
    the last sync. Remote changes are picked up by the full pass.

    Examples:
        # Push local changes
        profit-sync sync

        # Reconcile everything, asking about conflicts
        profit-sync sync --full
    """
    engine = app.require_sync_engine()
    app.restore_user()

    async def run() -> SyncResult:
        try:
            if full:
                return await engine.perform_manual_sync_all()
            return await engine.sync_when_online()
        finally:
            await app.close()

    result = asyncio.run(run())
    display_sync_result(result)
    if result.aborted:
        raise click.exceptions.Exit(1)


@click.command("outbox")
@click.pass_obj
def outbox_command(app: ProfitSyncApp) -> None:
    """List writes waiting for the remote store."""

    async def run() -> List[Dict[str, Any]]:
        try:
            pending = await Outbox(app.local_store).pending()
        finally:
            await app.close()
        return [
            {
                "type": space.name,
                "key": space.key_of(item),
                "action": str(item.get("offlineAction", "")),
                "queued_at": str(item.get("offlineTimestamp", "")),
            }
            for space, item in pending
        ]

    display_outbox(asyncio.run(run()))
