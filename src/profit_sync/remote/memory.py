"""In-process remote document store.

Used for headless runs and tests. A single instance can be shared by several
sync engines to simulate multiple devices writing to the same account.
"""

import asyncio
import copy
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..exceptions import NetworkError, PermissionDenied, SyncError
from ..utils.timestamps import parse_timestamp, to_iso, utcnow
from .base import (
    ChangeCallback,
    ChangeKind,
    Collection,
    RemoteChange,
    RemoteStore,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

_Bucket = Tuple[str, Collection]


class InMemoryRemoteStore(RemoteStore):
    """Remote store keeping documents in memory.

    Stamps are taken from ``clock`` and forced to be strictly increasing, so
    two writes never share a ``remoteUpdatedAt``.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """Initialize in-memory store.

        Args:
            clock: Source of the current time for write stamps
        """
        self._clock = clock or utcnow
        self._documents: Dict[_Bucket, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._subscribers: Dict[_Bucket, List[ChangeCallback]] = defaultdict(list)
        self._last_stamp: Optional[datetime] = None

        # Fault injection
        self.online = True
        self.access_denied = False
        self._key_failures: Dict[str, SyncError] = {}

        # Number of successful put/delete calls, per collection
        self.write_counts: Dict[Collection, int] = defaultdict(int)

    # =========================================================================
    # Fault injection helpers
    # =========================================================================

    def set_online(self, online: bool) -> None:
        """Simulate losing or regaining connectivity."""
        self.online = online

    def deny_access(self, denied: bool = True) -> None:
        """Simulate the store rejecting every request for this account."""
        self.access_denied = denied

    def fail_key(self, key: str, error: Optional[SyncError] = None) -> None:
        """Make writes of one key fail until cleared."""
        self._key_failures[key] = error or NetworkError(f"Simulated failure for {key}")

    def clear_failures(self) -> None:
        """Remove all per-key failures."""
        self._key_failures.clear()

    @property
    def total_writes(self) -> int:
        """Total successful writes across all collections."""
        return sum(self.write_counts.values())

    # =========================================================================
    # RemoteStore interface
    # =========================================================================

    def _check_available(self, key: Optional[str] = None) -> None:
        if self.access_denied:
            raise PermissionDenied("Missing or insufficient permissions")
        if not self.online:
            raise NetworkError("Remote store unreachable")
        if key is not None and key in self._key_failures:
            raise self._key_failures[key]

    def _next_stamp(self) -> datetime:
        stamp = self._clock()
        if self._last_stamp is not None and stamp <= self._last_stamp:
            stamp = self._last_stamp + timedelta(milliseconds=1)
        self._last_stamp = stamp
        return stamp

    def _notify(self, bucket: _Bucket, changes: List[RemoteChange]) -> None:
        for callback in list(self._subscribers[bucket]):
            try:
                callback(copy.deepcopy(changes))
            except Exception as e:
                logger.exception("Remote change listener failed: %s", e)

    async def put(
        self, collection: Collection, user_id: str, key: str, document: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Create or replace a document and stamp it."""
        await asyncio.sleep(0)
        self._check_available(key)

        stored = copy.deepcopy(document)
        stored[collection.key_field] = key
        stored["remoteUpdatedAt"] = to_iso(self._next_stamp())

        bucket = (user_id, collection)
        self._documents[bucket][key] = stored
        self.write_counts[collection] += 1
        logger.debug("Stored %s/%s/%s", user_id, collection.value, key)

        self._notify(bucket, [RemoteChange(ChangeKind.UPSERT, key, stored)])
        return copy.deepcopy(stored)

    async def get(
        self, collection: Collection, user_id: str, key: str
    ) -> Optional[Dict[str, Any]]:
        """Get a document, or None if absent."""
        await asyncio.sleep(0)
        self._check_available()
        document = self._documents[(user_id, collection)].get(key)
        return copy.deepcopy(document) if document is not None else None

    async def get_all(
        self, collection: Collection, user_id: str
    ) -> List[Dict[str, Any]]:
        """Get every document of a collection, ordered by key."""
        await asyncio.sleep(0)
        self._check_available()
        bucket = self._documents[(user_id, collection)]
        return [copy.deepcopy(bucket[key]) for key in sorted(bucket)]

    async def delete(self, collection: Collection, user_id: str, key: str) -> None:
        """Delete a document if present."""
        await asyncio.sleep(0)
        self._check_available(key)

        bucket = (user_id, collection)
        removed = self._documents[bucket].pop(key, None)
        self.write_counts[collection] += 1
        if removed is not None:
            self._notify(bucket, [RemoteChange(ChangeKind.DELETE, key)])

    def subscribe(
        self, collection: Collection, user_id: str, callback: ChangeCallback
    ) -> Unsubscribe:
        """Register a listener for writes to a collection."""
        bucket = (user_id, collection)
        self._subscribers[bucket].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[bucket]:
                self._subscribers[bucket].remove(callback)

        return unsubscribe

    # =========================================================================
    # Inspection helpers
    # =========================================================================

    def seed(
        self,
        collection: Collection,
        user_id: str,
        document: Dict[str, Any],
        remote_updated_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Place a document directly, without notifying or counting a write.

        Args:
            collection: Target collection
            user_id: Owner of the document
            document: Document containing its key field
            remote_updated_at: Stamp to store; defaults to the document's
                modifiedAt, or the clock

        Returns:
            The stored document
        """
        stored = copy.deepcopy(document)
        key = str(stored[collection.key_field])
        stamp = (
            remote_updated_at
            or parse_timestamp(stored.get("modifiedAt"))
            or self._clock()
        )
        stored["remoteUpdatedAt"] = to_iso(stamp)
        self._documents[(user_id, collection)][key] = stored
        return copy.deepcopy(stored)

    def snapshot(
        self, collection: Collection, user_id: str
    ) -> Dict[str, Dict[str, Any]]:
        """Return a copy of a collection keyed by document key."""
        return copy.deepcopy(dict(self._documents[(user_id, collection)]))

    def subscriber_count(self, collection: Collection, user_id: str) -> int:
        """Number of active listeners on a collection."""
        return len(self._subscribers[(user_id, collection)])
