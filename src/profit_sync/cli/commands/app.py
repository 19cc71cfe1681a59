"""Application wiring shared by the CLI commands."""

import logging
from typing import Optional

import click
from rich.console import Console

from ...auth import AuthSession, AuthUser
from ...config import Config, get_config
from ...core.migration import MigrationEngine
from ...core.sync import SyncEngine
from ...database import LAST_SYNC_STATE, DatabaseService, LocalStore
from ...models import SyncStatus
from ...remote import HttpRemoteStore, RemoteStore
from ...utils.timestamps import parse_timestamp
from ..display import ConsoleConflictPrompt, ConsoleNotifier

console = Console()
logger = logging.getLogger(__name__)

NO_REMOTE_MESSAGE = "No remote store configured. Set PROFIT_SYNC_REMOTE_URL."


class ProfitSyncApp:
    """Builds the stores, ports and engines from configuration."""

    def __init__(
        self,
        config: Optional[Config] = None,
        remote_store: Optional[RemoteStore] = None,
        assume_choice: str = "",
    ) -> None:
        """Initialize application.

        Args:
            config: Configuration; read from the environment when omitted
            remote_store: Remote store to use instead of the configured one
            assume_choice: "local" or "cloud" to answer conflicts unattended
        """
        self.config = config or get_config()
        self.db_service = DatabaseService(db_path=self.config.database_path)
        self.local_store = LocalStore(self.db_service)
        self.auth = AuthSession()
        self.notifier = ConsoleNotifier(console)
        self.conflict_port = ConsoleConflictPrompt(console, assume=assume_choice)

        if remote_store is None and self.config.has_remote:
            remote_store = HttpRemoteStore(
                self.config.remote_url,
                api_token=self.config.api_token,
                timeout=self.config.request_timeout,
                poll_interval=self.config.poll_interval,
            )
        self.remote_store = remote_store

        self.migration_engine: Optional[MigrationEngine] = None
        self.sync_engine: Optional[SyncEngine] = None
        if self.remote_store is not None:
            # Migration must finish before the first full sync of a session
            self.migration_engine = MigrationEngine(
                self.local_store,
                self.remote_store,
                self.auth,
                self.notifier,
                self.conflict_port,
            )
            self.sync_engine = SyncEngine(
                self.local_store,
                self.remote_store,
                self.auth,
                self.notifier,
                self.conflict_port,
                max_concurrent_uploads=self.config.max_concurrent_uploads,
            )

    def require_remote(self) -> RemoteStore:
        """Return the remote store or stop the command."""
        if self.remote_store is None:
            raise click.ClickException(NO_REMOTE_MESSAGE)
        return self.remote_store

    def require_sync_engine(self) -> SyncEngine:
        """Return the sync engine or stop the command."""
        if self.sync_engine is None:
            raise click.ClickException(NO_REMOTE_MESSAGE)
        return self.sync_engine

    def require_migration_engine(self) -> MigrationEngine:
        """Return the migration engine or stop the command."""
        if self.migration_engine is None:
            raise click.ClickException(NO_REMOTE_MESSAGE)
        return self.migration_engine

    def restore_user(self) -> AuthUser:
        """Adopt the configured user as the signed-in user."""
        if not self.config.user_id:
            raise click.ClickException("No user configured. Set PROFIT_SYNC_USER_ID.")
        user = AuthUser(
            uid=self.config.user_id,
            email=self.config.user_email,
            email_verified=self.config.email_verified,
        )
        self.auth.restore(user)
        return user

    async def get_sync_status(self) -> SyncStatus:
        """Status of the sync engine, or of the local store when offline-only."""
        if self.sync_engine is not None:
            await self.sync_engine.load_watermark()
            return self.sync_engine.get_sync_status()

        last_sync = parse_timestamp(await self.local_store.get_state(LAST_SYNC_STATE))
        return SyncStatus(
            state="idle",
            is_syncing=False,
            is_online=False,
            last_sync_time=last_sync,
            is_signed_in=self.auth.current_user is not None,
        )

    async def close(self) -> None:
        """Release engines, remote connections and the database."""
        if self.sync_engine is not None:
            await self.sync_engine.close()
        if self.migration_engine is not None:
            self.migration_engine.close()
        if self.remote_store is not None:
            await self.remote_store.close()
        self.db_service.close()
