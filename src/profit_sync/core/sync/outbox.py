"""Outbox of writes that could not reach the remote store.

Each record key has at most one queued item; queuing the same key again
replaces the earlier item. Replay is FIFO by ``offlineTimestamp`` across all
record types, and an item is removed only after its write succeeded.
"""

import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ...database.local_store import LocalStore
from ...exceptions import NetworkError, PermissionDenied, StorageUnavailable
from ...models import OfflineAction
from ...utils.timestamps import parse_timestamp, to_iso, utcnow
from .records import RECORD_SPACES, RecordSpace

logger = logging.getLogger(__name__)

ReplayWriter = Callable[[RecordSpace, Dict[str, Any]], Awaitable[None]]


@dataclass
class ReplayResult:
    """Result of one outbox replay."""

    replayed: int = 0
    failed: int = 0
    failed_keys: List[str] = dataclass_field(default_factory=list)


class Outbox:
    """Durable queue of pending remote writes, stored in the local store."""

    def __init__(
        self,
        local_store: LocalStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize outbox.

        Args:
            local_store: Local store holding the outbox namespaces
            clock: Source of enqueue timestamps
        """
        self.local_store = local_store
        self._clock = clock or utcnow

    async def enqueue(
        self, space: RecordSpace, document: Dict[str, Any], action: OfflineAction
    ) -> Dict[str, Any]:
        """Queue a write, replacing any item already queued for the key.

        Returns:
            The stored outbox item
        """
        item = dict(document)
        item["offlineAction"] = action.value
        item["offlineTimestamp"] = to_iso(self._clock())
        await self.local_store.upsert(space.outbox, item)
        logger.info(
            "Queued %s of %s/%s for retry", action.value, space.name, space.key_of(item)
        )
        return item

    async def remove(self, space: RecordSpace, key: str) -> bool:
        """Drop the item queued for a key, if any."""
        return await self.local_store.delete(space.outbox, key)

    async def has_pending(self, space: RecordSpace, key: str) -> bool:
        """Whether a write for the key is still queued."""
        return await self.local_store.get(space.outbox, key) is not None

    async def pending(self) -> List[Tuple[RecordSpace, Dict[str, Any]]]:
        """All queued items across record types, oldest first."""
        items: List[Tuple[RecordSpace, Dict[str, Any]]] = []
        for space in RECORD_SPACES:
            for item in await self.local_store.get_all(space.outbox):
                items.append((space, item))

        def sort_key(entry: Tuple[RecordSpace, Dict[str, Any]]) -> Tuple[float, int]:
            queued = parse_timestamp(entry[1].get("offlineTimestamp"))
            position = RECORD_SPACES.index(entry[0])
            return (queued.timestamp() if queued else 0.0, position)

        # sorted() is stable, so per-namespace enqueue order survives ties
        return sorted(items, key=sort_key)

    async def count(self) -> int:
        """Number of queued items."""
        total = 0
        for space in RECORD_SPACES:
            total += await self.local_store.count(space.outbox)
        return total

    async def replay(self, writer: ReplayWriter) -> ReplayResult:
        """Replay queued items one at a time, oldest first.

        Items whose write fails with a transient or storage error stay queued
        and replay continues with the next item.

        Args:
            writer: Performs the remote write for one item

        Returns:
            Replay counters

        Raises:
            PermissionDenied: The remote store rejected the account; remaining
                items stay queued
        """
        result = ReplayResult()
        items = await self.pending()
        if not items:
            return result

        logger.info("Replaying %d queued write(s)", len(items))
        for space, item in items:
            key = space.key_of(item)
            try:
                await writer(space, item)
            except PermissionDenied:
                raise
            except (NetworkError, StorageUnavailable) as e:
                logger.warning("Replay of %s/%s failed: %s", space.name, key, e)
                result.failed += 1
                result.failed_keys.append(key)
                continue

            current = await self.local_store.get(space.outbox, key)
            # A newer write for the key may have been queued while this one ran
            if current is not None and current.get("offlineTimestamp") == item.get(
                "offlineTimestamp"
            ):
                await self.remove(space, key)
            result.replayed += 1

        logger.info(
            "Outbox replay finished: %d replayed, %d failed",
            result.replayed,
            result.failed,
        )
        return result
