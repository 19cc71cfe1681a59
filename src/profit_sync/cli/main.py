"""Command-line interface for the profit-sync application.

This is the main entry point that delegates to command modules.
"""

from pathlib import Path
from typing import Any

import click

from ..config import get_config
from ..utils.logging_config import configure_third_party_loggers, setup_logging
from .commands import (
    ProfitSyncApp,
    devices_command,
    import_legacy_command,
    migrate_command,
    outbox_command,
    status,
    sync_command,
)


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set logging level",
)
@click.option("--log-file", type=click.Path(), help="Log to file")
@click.option(
    "--assume",
    type=click.Choice(["local", "cloud"]),
    default=None,
    help="Resolve every conflict this way instead of asking",
)
@click.pass_context
def cli(ctx: Any, log_level: str, log_file: str, assume: str) -> None:
    """Profit Sync.

    Offline-first synchronization of field entries and rate settings with the
    cloud document store.
    """
    # An app may be handed in by the caller (tests, embedding)
    app = ctx.obj
    config = app.config if app is not None else get_config()

    # Set up logging
    setup_logging(
        log_level=log_level,
        log_file=Path(log_file) if log_file else config.log_file,
    )
    configure_third_party_loggers()

    if app is None:
        ctx.obj = ProfitSyncApp(config=config, assume_choice=assume or "")
    elif assume:
        app.conflict_port.assume = assume


# Register commands
cli.add_command(status)
cli.add_command(sync_command)
cli.add_command(outbox_command)
cli.add_command(migrate_command)
cli.add_command(devices_command)
cli.add_command(import_legacy_command)


if __name__ == "__main__":
    cli()
