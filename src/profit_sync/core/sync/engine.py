"""Sync engine reconciling the local mirror with the remote document store.

The engine owns the explicit sync state machine and coordinates:
- Full passes on sign-in and on manual "sync all" (bootstrap or per-key merge)
- Incremental passes on connectivity restoration (outbox replay + uploads)
- Cloud-first writes from the UI (mirror, remote attempt, outbox fallback)
- Remote pushes delivered by the store subscription
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Tuple,
    Union,
)

from ...auth.session import AuthEvent, AuthEventType, AuthSession, AuthUser
from ...database.local_store import LAST_SYNC_STATE, LocalStore
from ...exceptions import (
    ConflictUnresolved,
    NetworkError,
    PermissionDenied,
    StorageUnavailable,
    SyncError,
)
from ...models import (
    SETTINGS_KEY,
    DailyEntry,
    OfflineAction,
    RateSettings,
    SyncStatus,
)
from ...remote.base import ChangeKind, RemoteChange, RemoteStore, Unsubscribe
from ...utils.timestamps import parse_timestamp, to_iso, utcnow
from ..ports import (
    ConflictChoice,
    ConflictResolutionPort,
    NotificationPort,
    request_choice,
)
from .conflict_resolver import Resolution, fields_equal, local_timestamp, resolve
from .outbox import Outbox
from .records import (
    ENTRY_SPACE,
    RECORD_SPACES,
    SETTINGS_SPACE,
    RecordSpace,
    is_clean_copy,
    strip_outbox_fields,
)
from .state import SyncEvent, SyncState, transition

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


@dataclass
class SyncResult:
    """Result of one sync pass."""

    mode: str
    uploaded: int = 0
    downloaded: int = 0
    conflicts: int = 0
    failed: int = 0
    network_failures: int = 0
    outbox_replayed: int = 0
    outbox_failed: int = 0
    outbox_remaining: int = 0
    settings: Optional[str] = None
    aborted: bool = False
    skipped_reason: Optional[str] = None
    errors: List[str] = dataclass_field(default_factory=list)

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        logger.error(error)

    @property
    def skipped(self) -> bool:
        """Whether the pass did not run at all."""
        return self.skipped_reason is not None

    @property
    def success(self) -> bool:
        """Whether the pass ran to completion without failures."""
        return (
            not self.skipped
            and not self.aborted
            and self.failed == 0
            and self.outbox_failed == 0
        )

    def summary(self) -> str:
        """One-line human readable summary."""
        if self.skipped:
            return f"Sync skipped ({self.skipped_reason})"
        if self.aborted:
            return "Sync stopped before completion"

        parts = [f"{self.uploaded} uploaded", f"{self.downloaded} downloaded"]
        if self.conflicts:
            noun = "conflict" if self.conflicts == 1 else "conflicts"
            parts.append(f"{self.conflicts} {noun} resolved")
        queued = self.failed + self.outbox_failed
        if queued:
            parts.append(f"{queued} queued for retry")
        return "Sync complete: " + ", ".join(parts)

    def get_summary(self) -> Dict[str, Any]:
        """Counters as a dictionary."""
        return {
            "mode": self.mode,
            "success": self.success,
            "uploaded": self.uploaded,
            "downloaded": self.downloaded,
            "conflicts": self.conflicts,
            "failed": self.failed,
            "outbox_replayed": self.outbox_replayed,
            "outbox_remaining": self.outbox_remaining,
            "settings": self.settings,
            "errors": len(self.errors),
        }


class SyncEngine:
    """Offline-first, cloud-first synchronization of entries and settings.

    Passes never overlap: a trigger that arrives while a pass is running is
    ignored. All collaborators are injected; the engine subscribes itself to
    the auth session on construction.
    """

    def __init__(
        self,
        local_store: LocalStore,
        remote_store: RemoteStore,
        auth: AuthSession,
        notifier: NotificationPort,
        conflict_port: ConflictResolutionPort,
        max_concurrent_uploads: int = 5,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize sync engine.

        Args:
            local_store: Local durable store (mirror, outbox, state)
            remote_store: Remote document store
            auth: Authentication session to follow
            notifier: Port for one-line user notifications
            conflict_port: Port asking the user to resolve conflicts
            max_concurrent_uploads: Upper bound of parallel uploads per batch
            clock: Source of the current time
        """
        self.local_store = local_store
        self.remote_store = remote_store
        self.auth = auth
        self.notifier = notifier
        self.conflict_port = conflict_port
        self.max_concurrent_uploads = max(1, max_concurrent_uploads)
        self._clock = clock or utcnow
        self.outbox = Outbox(local_store, clock=self._clock)

        self.state = SyncState.IDLE
        self.is_online = True
        self._busy = False
        self._last_sync_time: Optional[datetime] = None
        self._permission_notified = False
        self._unsubscribers: List[Unsubscribe] = []
        self._pending_updates: Set["asyncio.Task[int]"] = set()
        self._dialog_lock = asyncio.Lock()

        self._auth_unsubscribe = auth.on_auth_state_changed(self._on_auth_event)

    # =========================================================================
    # State
    # =========================================================================

    def _fire(self, event: SyncEvent) -> None:
        previous = self.state
        self.state = transition(previous, event)
        if self.state != previous:
            logger.debug(
                "Sync state %s -> %s (%s)",
                previous.value,
                self.state.value,
                event.value,
            )

    @property
    def is_syncing(self) -> bool:
        """Whether a pass is running."""
        return self._busy

    @property
    def last_sync_time(self) -> Optional[datetime]:
        """Current watermark."""
        return self._last_sync_time

    def get_sync_status(self) -> SyncStatus:
        """Snapshot of the engine for the UI layer."""
        return SyncStatus(
            state=self.state.value,
            is_syncing=self._busy,
            is_online=self.is_online,
            last_sync_time=self._last_sync_time,
            is_signed_in=self.auth.current_user is not None,
            has_permission_error=self.state == SyncState.PERMISSION_BLOCKED,
        )

    async def load_watermark(self) -> Optional[datetime]:
        """Load the persisted watermark into memory."""
        value = await self.local_store.get_state(LAST_SYNC_STATE)
        self._last_sync_time = parse_timestamp(value)
        return self._last_sync_time

    async def _advance_watermark(self, boundary: datetime) -> None:
        if self._last_sync_time is not None and boundary <= self._last_sync_time:
            return
        await self.local_store.set_state(LAST_SYNC_STATE, to_iso(boundary))
        self._last_sync_time = boundary
        logger.debug("Watermark advanced to %s", to_iso(boundary))

    async def _reset_watermark(self) -> None:
        await self.local_store.delete_state(LAST_SYNC_STATE)
        self._last_sync_time = None

    def _blocked_reason(self) -> Optional[str]:
        user = self.auth.current_user
        if user is None:
            return "not signed in"
        if not self.auth.is_email_verified():
            return "email not verified"
        if self.state == SyncState.PERMISSION_BLOCKED:
            return "permission denied"
        if not self.is_online:
            return "offline"
        return None

    async def _block(self, error: PermissionDenied) -> None:
        """Enter local-only mode after the remote store rejected us."""
        logger.error("Remote store denied access: %s", error)
        self._fire(SyncEvent.PERMISSION_DENIED)
        self._unsubscribe_remote()
        if not self._permission_notified:
            self._permission_notified = True
            await self.notifier.show_notification(
                "Cloud sync disabled: permission denied. "
                "Changes are kept on this device.",
                is_error=True,
            )

    # =========================================================================
    # Auth and connectivity events
    # =========================================================================

    async def _on_auth_event(self, event: AuthEvent) -> None:
        if event.type == AuthEventType.SIGNED_IN and event.user is not None:
            await self.on_user_sign_in(event.user)
        elif event.type == AuthEventType.SIGNED_OUT:
            await self.on_user_sign_out()

    async def on_user_sign_in(self, user: AuthUser) -> SyncResult:
        """Run a full sync for a newly signed-in user and start listening."""
        self._fire(SyncEvent.SIGN_IN)
        self._permission_notified = False

        if not user.email_verified:
            logger.warning("Email of %s is not verified, sync disabled", user.uid)
            return SyncResult(mode="full", skipped_reason="email not verified")

        await self.load_watermark()
        if not self.is_online:
            self._fire(SyncEvent.WENT_OFFLINE)

        result = await self.perform_full_sync()
        if self.state != SyncState.PERMISSION_BLOCKED:
            self._subscribe_remote(user.uid)
        return result

    async def on_user_sign_out(self) -> None:
        """Stop listening and forget the watermark."""
        self._unsubscribe_remote()
        self._fire(SyncEvent.SIGN_OUT)
        await self._reset_watermark()
        logger.info("Sync stopped after sign-out")

    async def set_online(self, online: bool) -> Optional[SyncResult]:
        """Record a connectivity change.

        Going online while signed in replays the outbox and runs an
        incremental pass.
        """
        if not online:
            if self.is_online:
                logger.info("Connection lost, writes will be queued")
            self.is_online = False
            if self.auth.current_user is not None:
                self._fire(SyncEvent.WENT_OFFLINE)
            return None

        was_online = self.is_online
        self.is_online = True
        if was_online and self.state != SyncState.OFFLINE:
            return None

        logger.info("Connection restored")
        if self._blocked_reason() is not None:
            return None
        self._fire(SyncEvent.WENT_ONLINE)
        return await self.sync_when_online()

    # =========================================================================
    # Passes
    # =========================================================================

    async def _run_pass(
        self,
        mode: str,
        body: Callable[[str, SyncResult], Awaitable[None]],
    ) -> SyncResult:
        if self._busy:
            logger.debug("Sync already running, ignoring %s trigger", mode)
            return SyncResult(mode=mode, skipped_reason="sync already running")

        user_id = self.auth.current_user_id
        reason = self._blocked_reason()
        if reason is not None or user_id is None:
            reason = reason or "not signed in"
            logger.debug("Skipping %s sync: %s", mode, reason)
            return SyncResult(mode=mode, skipped_reason=reason)

        self._busy = True
        self._fire(SyncEvent.SYNC_REQUESTED)
        result = SyncResult(mode=mode)
        started_at = self._clock()
        logger.info("Starting %s sync for %s", mode, user_id)

        try:
            try:
                await self.load_watermark()
                await body(user_id, result)
                result.outbox_remaining = await self.outbox.count()
                await self._advance_watermark(started_at)
            except PermissionDenied as e:
                result.aborted = True
                await self._block(e)
                return result
            except NetworkError as e:
                result.aborted = True
                logger.warning("%s sync interrupted: %s", mode.capitalize(), e)
                self._fire(SyncEvent.NETWORK_FAILED)
                return result
            except StorageUnavailable as e:
                result.aborted = True
                result.add_error(f"Local storage failed during {mode} sync: {e}")
                self._fire(SyncEvent.SYNC_FAILED)
                return result
        finally:
            self._busy = False

        if result.network_failures or result.outbox_failed:
            self._fire(SyncEvent.NETWORK_FAILED)
        else:
            self._fire(SyncEvent.SYNC_SUCCEEDED)

        logger.info("%s sync finished: %s", mode.capitalize(), result.get_summary())
        return result

    async def perform_full_sync(self) -> SyncResult:
        """Reconcile every record in both directions."""
        result = await self._run_pass("full", self._full_sync)
        if not result.skipped and not result.aborted:
            await self.notifier.show_notification(
                result.summary(), is_error=not result.success
            )
        return result

    async def perform_manual_sync_all(self) -> SyncResult:
        """Forget the watermark and run a full sync."""
        if self._busy:
            return SyncResult(mode="full", skipped_reason="sync already running")
        logger.info("Manual sync of all records requested")
        await self._reset_watermark()
        return await self.perform_full_sync()

    async def sync_when_online(self) -> SyncResult:
        """Replay the outbox and upload local changes since the watermark."""
        return await self._run_pass("incremental", self._incremental_sync)

    async def _replay_outbox(self, user_id: str, result: SyncResult) -> None:
        replay = await self.outbox.replay(
            functools.partial(self._replay_item, user_id)
        )
        result.outbox_replayed += replay.replayed
        result.outbox_failed += replay.failed

    async def _full_sync(self, user_id: str, result: SyncResult) -> None:
        await self._replay_outbox(user_id, result)

        local_docs = await self.local_store.get_all(ENTRY_SPACE.mirror)
        remote_docs = await self.remote_store.get_all(ENTRY_SPACE.collection, user_id)
        logger.info(
            "Local entries: %d, remote entries: %d", len(local_docs), len(remote_docs)
        )

        if not remote_docs and local_docs:
            logger.info("Remote store empty, uploading all local entries")
            result.mode = "bootstrap_upload"
            uploads = await self._without_queued(ENTRY_SPACE, local_docs)
            await self._upload_batch(ENTRY_SPACE, user_id, uploads, result)
        elif not local_docs and remote_docs:
            logger.info("Local mirror empty, downloading all remote entries")
            result.mode = "bootstrap_download"
            # A queued delete must not bring its entry back
            downloads = await self._without_queued(ENTRY_SPACE, remote_docs)
            await self.local_store.clear(ENTRY_SPACE.mirror)
            await self._download_batch(
                ENTRY_SPACE, [(doc, None) for doc in downloads], result
            )
        elif local_docs and remote_docs:
            await self._merge(ENTRY_SPACE, user_id, local_docs, remote_docs, result)

        await self._sync_settings(user_id, result)

    async def _without_queued(
        self, space: RecordSpace, documents: List[Document]
    ) -> List[Document]:
        """Drop documents whose key still waits in the outbox."""
        kept = []
        for doc in documents:
            if await self.outbox.has_pending(space, space.key_of(doc)):
                logger.debug("Skipping %s, write still queued", space.key_of(doc))
                continue
            kept.append(doc)
        return kept

    async def _incremental_sync(self, user_id: str, result: SyncResult) -> None:
        await self._replay_outbox(user_id, result)

        for space in RECORD_SPACES:
            if self._last_sync_time is None:
                candidates = await self.local_store.get_all(space.mirror)
            else:
                candidates = await self.local_store.get_modified_since(
                    space.mirror, self._last_sync_time
                )

            changed = []
            for doc in candidates:
                if is_clean_copy(doc):
                    continue
                if await self.outbox.has_pending(space, space.key_of(doc)):
                    continue
                changed.append(doc)

            if changed:
                logger.info("Uploading %d modified %s", len(changed), space.name)
                await self._upload_batch(space, user_id, changed, result)

    async def _merge(
        self,
        space: RecordSpace,
        user_id: str,
        local_docs: List[Document],
        remote_docs: List[Document],
        result: SyncResult,
    ) -> None:
        """Resolve every key present on either side."""
        local_map = {space.key_of(doc): doc for doc in local_docs}
        remote_map = {space.key_of(doc): doc for doc in remote_docs}

        uploads: List[Document] = []
        downloads: List[Tuple[Document, Optional[Document]]] = []
        asks: List[Tuple[Document, Document]] = []

        for key in sorted(set(local_map) | set(remote_map)):
            if await self.outbox.has_pending(space, key):
                # Still failing; retried by the next trigger
                continue

            local = local_map.get(key)
            remote = remote_map.get(key)
            decision = resolve(local, remote, space.fields)

            if decision == Resolution.LOCAL and local is not None:
                if remote is not None and fields_equal(local, remote, space.fields):
                    continue
                uploads.append(local)
            elif decision == Resolution.REMOTE and remote is not None:
                if local is not None and fields_equal(local, remote, space.fields):
                    continue
                downloads.append((remote, local))
            elif (
                decision == Resolution.ASK
                and local is not None
                and remote is not None
            ):
                asks.append((local, remote))

        # One dialog at a time, before any batch runs
        for local, remote in asks:
            try:
                choice = await self._ask(local, remote)
            except ConflictUnresolved as e:
                result.failed += 1
                result.add_error(str(e))
                continue
            result.conflicts += 1
            if choice == ConflictChoice.KEEP_LOCAL:
                uploads.append(local)
            else:
                await self.outbox.remove(space, space.key_of(remote))
                downloads.append((remote, local))

        logger.info(
            "%s merge: %d to upload, %d to download, %d conflicts",
            space.name.capitalize(),
            len(uploads),
            len(downloads),
            len(asks),
        )
        await self._upload_batch(space, user_id, uploads, result)
        await self._download_batch(space, downloads, result)

    async def _sync_settings(self, user_id: str, result: SyncResult) -> None:
        space = SETTINGS_SPACE
        if await self.outbox.has_pending(space, SETTINGS_KEY):
            return

        local = await self.local_store.get(space.mirror, SETTINGS_KEY)
        remote = await self.remote_store.get(space.collection, user_id, SETTINGS_KEY)
        if local is None and remote is None:
            return

        decision = resolve(local, remote, space.fields)
        result.settings = decision.value

        if decision == Resolution.ASK and local is not None and remote is not None:
            try:
                choice = await self._ask(local, remote)
            except ConflictUnresolved as e:
                result.failed += 1
                result.add_error(str(e))
                return
            result.conflicts += 1
            decision = (
                Resolution.LOCAL
                if choice == ConflictChoice.KEEP_LOCAL
                else Resolution.REMOTE
            )
            result.settings = decision.value

        if decision == Resolution.LOCAL and local is not None:
            if remote is not None and fields_equal(local, remote, space.fields):
                result.settings = Resolution.IN_SYNC.value
                return
            await self._upload_batch(space, user_id, [local], result)
        elif decision == Resolution.REMOTE and remote is not None:
            if local is not None and fields_equal(local, remote, space.fields):
                return
            await self._download_batch(space, [(remote, local)], result)

    async def _ask(self, local: Document, remote: Document) -> ConflictChoice:
        async with self._dialog_lock:
            return await request_choice(self.conflict_port, local, remote)

    # =========================================================================
    # Batches
    # =========================================================================

    async def _upload_batch(
        self,
        space: RecordSpace,
        user_id: str,
        documents: List[Document],
        result: SyncResult,
    ) -> None:
        """Upload documents with bounded parallelism.

        A failing record is queued in the outbox and never aborts the batch.

        Raises:
            PermissionDenied: After every started upload has finished
        """
        if not documents:
            return

        semaphore = asyncio.Semaphore(self.max_concurrent_uploads)
        outcomes = await asyncio.gather(
            *(
                self._upload_one(space, user_id, doc, result, semaphore)
                for doc in documents
            ),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, PermissionDenied):
                raise outcome
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    async def _upload_one(
        self,
        space: RecordSpace,
        user_id: str,
        document: Document,
        result: SyncResult,
        semaphore: asyncio.Semaphore,
    ) -> None:
        key = space.key_of(document)
        async with semaphore:
            try:
                stored = await self.remote_store.put(
                    space.collection, user_id, key, strip_outbox_fields(document)
                )
            except NetworkError as e:
                logger.warning("Upload of %s/%s failed: %s", space.name, key, e)
                result.failed += 1
                result.network_failures += 1
                await self._queue_quietly(space, document, OfflineAction.SAVE)
                return

        try:
            await self._store_mirror(space, stored)
        except StorageUnavailable as e:
            result.failed += 1
            result.add_error(f"Could not update local copy of {key}: {e}")
            return
        result.uploaded += 1

    async def _download_batch(
        self,
        space: RecordSpace,
        downloads: List[Tuple[Document, Optional[Document]]],
        result: SyncResult,
    ) -> None:
        """Write remote versions into the mirror.

        Each download carries the local version it was decided against; a
        record edited locally in the meantime is left alone.
        """
        for remote, expected in downloads:
            key = space.key_of(remote)
            try:
                current = await self.local_store.get(space.mirror, key)
                if current != expected:
                    logger.debug("Skipping download of %s, changed locally", key)
                    continue
                await self.local_store.upsert(space.mirror, remote)
            except StorageUnavailable as e:
                result.failed += 1
                result.add_error(f"Could not store {space.name}/{key}: {e}")
                continue
            result.downloaded += 1

    async def _store_mirror(self, space: RecordSpace, stored: Document) -> None:
        """Store an uploaded document unless the mirror holds a newer edit."""
        current = await self.local_store.get(space.mirror, space.key_of(stored))
        if current is not None:
            current_time = local_timestamp(current)
            stored_time = local_timestamp(stored)
            if current_time and stored_time and current_time > stored_time:
                return
        await self.local_store.upsert(space.mirror, stored)

    async def _queue_quietly(
        self, space: RecordSpace, document: Document, action: OfflineAction
    ) -> None:
        try:
            await self.outbox.enqueue(space, strip_outbox_fields(document), action)
        except StorageUnavailable as e:
            logger.error(
                "Could not queue %s/%s: %s", space.name, space.key_of(document), e
            )

    async def _replay_item(
        self, user_id: str, space: RecordSpace, item: Document
    ) -> None:
        key = space.key_of(item)
        if item.get("offlineAction") == OfflineAction.DELETE.value:
            await self.remote_store.delete(space.collection, user_id, key)
            return
        stored = await self.remote_store.put(
            space.collection, user_id, key, strip_outbox_fields(item)
        )
        await self._store_mirror(space, stored)

    # =========================================================================
    # Cloud-first writes
    # =========================================================================

    def _can_write_remote(self) -> bool:
        return self._blocked_reason() is None

    async def _write_through(
        self, space: RecordSpace, document: Document, action: OfflineAction
    ) -> Document:
        """Attempt the remote write; queue it when that is not possible."""
        key = space.key_of(document)
        user_id = self.auth.current_user_id
        if not self._can_write_remote() or user_id is None:
            await self.outbox.enqueue(space, document, action)
            return document

        try:
            if action == OfflineAction.DELETE:
                await self.remote_store.delete(space.collection, user_id, key)
                stored = document
            else:
                stored = await self.remote_store.put(
                    space.collection, user_id, key, document
                )
                await self._store_mirror(space, stored)
        except PermissionDenied as e:
            await self._block(e)
            await self.outbox.enqueue(space, document, action)
            return document
        except NetworkError as e:
            logger.warning(
                "Remote %s of %s/%s failed: %s", action.value, space.name, key, e
            )
            await self.outbox.enqueue(space, document, action)
            return document

        await self.outbox.remove(space, key)
        return stored

    async def save_entry(self, entry: Union[DailyEntry, Document]) -> Document:
        """Save a daily entry locally and to the remote store.

        Returns:
            The saved document, stamped when the remote write succeeded
        """
        if not isinstance(entry, DailyEntry):
            entry = DailyEntry.model_validate(entry)

        existing = await self.local_store.get(ENTRY_SPACE.mirror, entry.date)
        if existing and existing.get("createdAt") and entry.created_at is None:
            entry = entry.model_copy(
                update={"created_at": parse_timestamp(existing["createdAt"])}
            )
        document = entry.touch(self._clock()).to_document()

        await self.local_store.upsert(ENTRY_SPACE.mirror, document)
        return await self._write_through(ENTRY_SPACE, document, OfflineAction.SAVE)

    async def delete_entry(self, date: str) -> None:
        """Delete a daily entry locally and from the remote store."""
        await self.local_store.delete(ENTRY_SPACE.mirror, date)
        await self._write_through(
            ENTRY_SPACE,
            {"date": date, "modifiedAt": to_iso(self._clock())},
            OfflineAction.DELETE,
        )

    async def save_settings(self, settings: Union[RateSettings, Document]) -> Document:
        """Replace the rate settings locally and on the remote store."""
        if not isinstance(settings, RateSettings):
            settings = RateSettings.model_validate(settings)

        existing = await self.local_store.get(SETTINGS_SPACE.mirror, SETTINGS_KEY)
        if existing and existing.get("createdAt") and settings.created_at is None:
            settings = settings.model_copy(
                update={"created_at": parse_timestamp(existing["createdAt"])}
            )
        document = settings.touch(self._clock()).to_document()

        await self.local_store.upsert(SETTINGS_SPACE.mirror, document)
        return await self._write_through(SETTINGS_SPACE, document, OfflineAction.SAVE)

    async def get_entries(self) -> List[DailyEntry]:
        """All entries of the local mirror."""
        docs = await self.local_store.get_all(ENTRY_SPACE.mirror)
        return [DailyEntry.model_validate(doc) for doc in docs]

    async def get_settings(self) -> RateSettings:
        """Current rate settings, or the defaults when none were saved."""
        doc = await self.local_store.get(SETTINGS_SPACE.mirror, SETTINGS_KEY)
        return RateSettings.model_validate(doc) if doc else RateSettings()

    # =========================================================================
    # Remote pushes
    # =========================================================================

    def _subscribe_remote(self, user_id: str) -> None:
        self._unsubscribe_remote()
        for space in RECORD_SPACES:
            self._unsubscribers.append(
                self.remote_store.subscribe(
                    space.collection,
                    user_id,
                    functools.partial(self._on_remote_changes, space),
                )
            )
        logger.debug("Listening for remote changes of %s", user_id)

    def _unsubscribe_remote(self) -> None:
        while self._unsubscribers:
            self._unsubscribers.pop()()

    def _on_remote_changes(
        self, space: RecordSpace, changes: List[RemoteChange]
    ) -> None:
        task = asyncio.get_running_loop().create_task(
            self.apply_remote_changes(space, changes)
        )
        self._pending_updates.add(task)
        task.add_done_callback(self._pending_updates.discard)

    async def apply_remote_changes(
        self, space: RecordSpace, changes: List[RemoteChange]
    ) -> int:
        """Apply pushed remote changes to the mirror.

        Keys with a queued outbox item are left alone.

        Returns:
            Number of changes applied to the mirror
        """
        applied = 0
        for change in changes:
            if self.state == SyncState.PERMISSION_BLOCKED:
                break
            try:
                if await self._apply_remote_change(space, change):
                    applied += 1
            except PermissionDenied as e:
                await self._block(e)
            except SyncError as e:
                logger.error(
                    "Could not apply remote change to %s/%s: %s",
                    space.name,
                    change.key,
                    e,
                )
        if applied:
            logger.info("Applied %d remote change(s) to %s", applied, space.name)
        return applied

    async def _apply_remote_change(
        self, space: RecordSpace, change: RemoteChange
    ) -> bool:
        if await self.outbox.has_pending(space, change.key):
            return False

        if change.kind == ChangeKind.DELETE:
            return await self.local_store.delete(space.mirror, change.key)

        remote = change.document
        if remote is None:
            return False
        local = await self.local_store.get(space.mirror, change.key)
        decision = resolve(local, remote, space.fields)

        if decision == Resolution.ASK and local is not None:
            choice = await self._ask(local, remote)
            if choice == ConflictChoice.KEEP_LOCAL:
                await self._write_through(space, local, OfflineAction.SAVE)
                return False
            decision = Resolution.REMOTE

        if decision != Resolution.REMOTE:
            return False
        if local is not None and local == remote:
            return False
        await self.local_store.upsert(space.mirror, remote)
        return True

    async def wait_for_remote_updates(self) -> None:
        """Wait until every scheduled remote change has been applied."""
        while self._pending_updates:
            await asyncio.gather(*list(self._pending_updates), return_exceptions=True)

    async def close(self) -> None:
        """Stop listening to the remote store and the auth session."""
        self._unsubscribe_remote()
        self._auth_unsubscribe()
        await self.wait_for_remote_updates()
