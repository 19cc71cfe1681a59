"""One-time, per-device migration of legacy local-only data to the remote store.

Each (user, device) pair owns one entry in the remote device registry. The
registry gates the migration: a device whose entry is ``completed`` never
migrates again, a ``failed`` device retries on its next authenticated session.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ...auth.session import AuthEvent, AuthEventType, AuthSession
from ...database.models import Namespace
from ...database.local_store import LocalStore
from ...exceptions import (
    ConflictUnresolved,
    NetworkError,
    PermissionDenied,
    StorageUnavailable,
)
from ...models import (
    ENTRY_BUSINESS_FIELDS,
    SETTINGS_BUSINESS_FIELDS,
    SETTINGS_KEY,
    DeviceRegistryEntry,
    MigrationResults,
    MigrationStatus,
)
from ...remote.base import Collection, RemoteStore
from ...utils.timestamps import to_iso, utcnow
from ..ports import (
    ConflictChoice,
    ConflictResolutionPort,
    NotificationPort,
    request_choice,
)
from ..sync.conflict_resolver import (
    Resolution,
    local_timestamp,
    remote_timestamp,
    resolve,
)
from ..sync.records import strip_outbox_fields
from .device import current_platform, get_device_id

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

# Fields of legacy records that never reach the remote store
_LEGACY_ONLY_FIELDS = ("id",)


@dataclass
class MigrationStats:
    """Migration progress of one user across all devices."""

    total_devices: int = 0
    completed_devices: int = 0
    pending_devices: int = 0
    total_entries_migrated: int = 0
    total_conflicts_resolved: int = 0


@dataclass
class MigrationReport:
    """Outcome of one migration run on this device."""

    device_id: Optional[str]
    status: MigrationStatus
    results: MigrationResults
    already_completed: bool = False
    skipped_reason: Optional[str] = None
    stats: Optional[MigrationStats] = None

    @property
    def ran(self) -> bool:
        """Whether legacy data was processed in this run."""
        return not self.already_completed and self.skipped_reason is None

    def summary(self) -> str:
        """One-line human readable summary."""
        if self.skipped_reason:
            return f"Migration skipped ({self.skipped_reason})"
        if self.already_completed:
            return "Migration already completed on this device"
        if self.status == MigrationStatus.FAILED:
            return (
                "Some data could not be migrated and will be retried: "
                f"{self.results.failed_entries} entries failed"
            )

        message = (
            f"Migration complete: {self.results.migrated_entries} "
            "entries added to cloud"
        )
        if self.results.conflicted_entries:
            message += f", {self.results.conflicted_entries} conflicts resolved"
        if self.stats and self.stats.total_devices > 1:
            message += (
                f" ({self.stats.completed_devices}/{self.stats.total_devices} "
                "devices completed)"
            )
        return message


class MigrationEngine:
    """Moves legacy local-only entries and settings to the remote store.

    The engine subscribes itself to the auth session on construction; register
    it before the sync engine so migration finishes before the first full sync.
    """

    def __init__(
        self,
        local_store: LocalStore,
        remote_store: RemoteStore,
        auth: AuthSession,
        notifier: NotificationPort,
        conflict_port: ConflictResolutionPort,
        clock: Optional[Callable[[], datetime]] = None,
        platform_name: Optional[str] = None,
    ):
        """Initialize migration engine.

        Args:
            local_store: Local store holding the legacy namespaces
            remote_store: Remote document store
            auth: Authentication session to follow
            notifier: Port for one-line user notifications
            conflict_port: Port asking the user to resolve conflicts
            clock: Source of the current time
            platform_name: Platform recorded in the registry entry
        """
        self.local_store = local_store
        self.remote_store = remote_store
        self.auth = auth
        self.notifier = notifier
        self.conflict_port = conflict_port
        self._clock = clock or utcnow
        self.platform_name = platform_name or current_platform()

        self._auth_unsubscribe = auth.on_auth_state_changed(self._on_auth_event)

    async def _on_auth_event(self, event: AuthEvent) -> None:
        if event.type == AuthEventType.SIGNED_IN:
            await self.migrate()

    def close(self) -> None:
        """Stop following the auth session."""
        self._auth_unsubscribe()

    # =========================================================================
    # Registry
    # =========================================================================

    async def _load_or_register(
        self, user_id: str, device_id: str
    ) -> DeviceRegistryEntry:
        """Fetch this device's registry entry, creating it when absent."""
        document = await self.remote_store.get(Collection.DEVICES, user_id, device_id)
        if document is not None:
            return DeviceRegistryEntry.model_validate(document)

        entry = DeviceRegistryEntry(
            id=device_id,
            platform=self.platform_name,
            migration_status=MigrationStatus.PENDING,
            migration_attempts=0,
            last_seen=self._clock(),
        )
        stored = await self.remote_store.put(
            Collection.DEVICES, user_id, device_id, entry.to_document()
        )
        await self.local_store.upsert(Namespace.DEVICE_REGISTRY, stored)
        logger.info("Registered device %s for user %s", device_id, user_id)
        return DeviceRegistryEntry.model_validate(stored)

    async def _finish(
        self,
        user_id: str,
        entry: DeviceRegistryEntry,
        results: MigrationResults,
    ) -> DeviceRegistryEntry:
        """Write the final status of this attempt to the registry."""
        now = self._clock()
        if results.has_failures:
            status = MigrationStatus.FAILED
        else:
            status = MigrationStatus.COMPLETED
        final = entry.model_copy(
            update={
                "migration_status": status,
                "migration_attempts": entry.migration_attempts + 1,
                "migration_results": results,
                "completed_at": now if status == MigrationStatus.COMPLETED else None,
                "last_seen": now,
            }
        )
        stored = await self.remote_store.put(
            Collection.DEVICES, user_id, entry.id, final.to_document()
        )
        await self.local_store.upsert(Namespace.DEVICE_REGISTRY, stored)
        logger.info(
            "Device %s migration %s after %d attempt(s)",
            entry.id,
            status.value,
            final.migration_attempts,
        )
        return DeviceRegistryEntry.model_validate(stored)

    async def get_user_migration_stats(self, user_id: str) -> MigrationStats:
        """Aggregate the registry entries of every device of a user."""
        stats = MigrationStats()
        for document in await self.remote_store.get_all(Collection.DEVICES, user_id):
            entry = DeviceRegistryEntry.model_validate(document)
            stats.total_devices += 1
            if entry.migration_status == MigrationStatus.COMPLETED:
                stats.completed_devices += 1
            else:
                stats.pending_devices += 1
            if entry.migration_results:
                stats.total_entries_migrated += entry.migration_results.migrated_entries
                stats.total_conflicts_resolved += (
                    entry.migration_results.conflicted_entries
                )
        return stats

    # =========================================================================
    # Migration
    # =========================================================================

    async def migrate(self) -> MigrationReport:
        """Run the migration for the signed-in user on this device.

        Never raises for remote failures: permission and network problems are
        reported and leave the registry in a retryable state.
        """
        user_id = self.auth.current_user_id
        results = MigrationResults()
        if user_id is None or not self.auth.is_email_verified():
            return MigrationReport(
                device_id=None,
                status=MigrationStatus.PENDING,
                results=results,
                skipped_reason="not signed in with a verified email",
            )

        device_id = await get_device_id(self.local_store)
        logger.info("Checking migration of device %s", device_id)

        try:
            entry = await self._load_or_register(user_id, device_id)
            if entry.migration_status == MigrationStatus.COMPLETED:
                logger.info("Device %s already migrated, skipping", device_id)
                return MigrationReport(
                    device_id=device_id,
                    status=MigrationStatus.COMPLETED,
                    results=entry.migration_results or results,
                    already_completed=True,
                )

            legacy_entries = await self.local_store.get_all(Namespace.LEGACY_ENTRIES)
            legacy_settings = await self.local_store.get(
                Namespace.LEGACY_SETTINGS, SETTINGS_KEY
            )

            if not legacy_entries and legacy_settings is None:
                logger.info("No legacy data on this device")
                final = await self._finish(user_id, entry, results)
                return MigrationReport(
                    device_id=device_id,
                    status=final.migration_status,
                    results=results,
                )

            logger.info("Migrating %d legacy entries", len(legacy_entries))
            for legacy in legacy_entries:
                await self._migrate_entry(user_id, legacy, results)
            if legacy_settings is not None:
                await self._migrate_settings(user_id, legacy_settings, results)

            final = await self._finish(user_id, entry, results)
        except PermissionDenied as e:
            logger.error("Migration blocked: %s", e)
            results.error = str(e)
            await self.notifier.show_notification(
                "Data migration blocked: permission denied", is_error=True
            )
            return MigrationReport(
                device_id=device_id, status=MigrationStatus.FAILED, results=results
            )
        except (NetworkError, StorageUnavailable) as e:
            logger.warning("Migration interrupted, will retry later: %s", e)
            results.error = str(e)
            return MigrationReport(
                device_id=device_id, status=MigrationStatus.FAILED, results=results
            )

        report = MigrationReport(
            device_id=device_id, status=final.migration_status, results=results
        )
        try:
            report.stats = await self.get_user_migration_stats(user_id)
        except (NetworkError, PermissionDenied) as e:
            logger.warning("Could not load migration stats: %s", e)

        await self.notifier.show_notification(
            report.summary(), is_error=report.status == MigrationStatus.FAILED
        )
        return report

    def _prepare(self, legacy: Document) -> Document:
        document = {
            k: v
            for k, v in strip_outbox_fields(legacy).items()
            if k not in _LEGACY_ONLY_FIELDS
        }
        now = to_iso(self._clock())
        document.setdefault("createdAt", document.get("modifiedAt") or now)
        document.setdefault("modifiedAt", document["createdAt"])
        document.pop("remoteUpdatedAt", None)
        return document

    async def _store_mirror(self, namespace: Namespace, document: Document) -> None:
        """Place a migrated record in the mirror unless it holds a newer edit."""
        key = str(document[namespace.key_field])
        current = await self.local_store.get(namespace, key)
        if current is not None:
            current_time = local_timestamp(current)
            incoming_time = remote_timestamp(document)
            if current_time and incoming_time and current_time > incoming_time:
                return
        await self.local_store.upsert(namespace, document)

    async def _migrate_entry(
        self, user_id: str, legacy: Document, results: MigrationResults
    ) -> None:
        key = str(legacy.get("date", ""))
        if not key:
            logger.warning("Skipping legacy entry without a date")
            results.failed_entries += 1
            return

        document = self._prepare(legacy)
        try:
            remote = await self.remote_store.get(Collection.ENTRIES, user_id, key)
            if remote is None:
                stored = await self.remote_store.put(
                    Collection.ENTRIES, user_id, key, document
                )
                await self._store_mirror(Namespace.ENTRIES, stored)
                results.migrated_entries += 1
            else:
                decision = resolve(
                    document, remote, ENTRY_BUSINESS_FIELDS, arbitrate_divergence=True
                )
                if decision == Resolution.IN_SYNC:
                    results.skipped_entries += 1
                    await self._store_mirror(Namespace.ENTRIES, remote)
                else:
                    choice = await request_choice(self.conflict_port, document, remote)
                    results.conflicted_entries += 1
                    if choice == ConflictChoice.KEEP_LOCAL:
                        stored = await self.remote_store.put(
                            Collection.ENTRIES, user_id, key, document
                        )
                        await self._store_mirror(Namespace.ENTRIES, stored)
                        results.migrated_entries += 1
                    else:
                        await self._store_mirror(Namespace.ENTRIES, remote)

            await self.local_store.delete(Namespace.LEGACY_ENTRIES, key)
        except PermissionDenied:
            raise
        except (NetworkError, StorageUnavailable, ConflictUnresolved) as e:
            logger.error("Failed to migrate entry for %s: %s", key, e)
            results.failed_entries += 1

    async def _migrate_settings(
        self, user_id: str, legacy: Document, results: MigrationResults
    ) -> None:
        document = self._prepare(legacy)
        document["name"] = SETTINGS_KEY
        try:
            remote = await self.remote_store.get(
                Collection.SETTINGS, user_id, SETTINGS_KEY
            )
            keep_local = remote is None
            if remote is not None:
                decision = resolve(
                    document,
                    remote,
                    SETTINGS_BUSINESS_FIELDS,
                    arbitrate_divergence=True,
                )
                if decision == Resolution.ASK:
                    choice = await request_choice(self.conflict_port, document, remote)
                    keep_local = choice == ConflictChoice.KEEP_LOCAL

            if keep_local:
                stored = await self.remote_store.put(
                    Collection.SETTINGS, user_id, SETTINGS_KEY, document
                )
                await self._store_mirror(Namespace.SETTINGS, stored)
                results.migrated_settings = True
            elif remote is not None:
                await self._store_mirror(Namespace.SETTINGS, remote)

            await self.local_store.delete(Namespace.LEGACY_SETTINGS, SETTINGS_KEY)
        except PermissionDenied:
            raise
        except (NetworkError, StorageUnavailable, ConflictUnresolved) as e:
            logger.error("Failed to migrate settings: %s", e)
            results.settings_failed = True
