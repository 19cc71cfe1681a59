"""Remote document store interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class Collection(str, Enum):
    """Per-user collections held by the remote store."""

    ENTRIES = "entries"
    SETTINGS = "settings"
    DEVICES = "devices"

    @property
    def key_field(self) -> str:
        """Document field holding the natural key for this collection."""
        if self == Collection.SETTINGS:
            return "name"
        if self == Collection.DEVICES:
            return "id"
        return "date"


class ChangeKind(str, Enum):
    """Kind of change pushed to subscribers."""

    UPSERT = "upsert"
    DELETE = "delete"


@dataclass
class RemoteChange:
    """
    A single change pushed by a subscription.

    Attributes:
        kind: Whether the document was written or removed
        key: Natural key of the document
        document: The new document for upserts, None for deletes
    """

    kind: ChangeKind
    key: str
    document: Optional[Dict[str, Any]] = None


ChangeCallback = Callable[[List[RemoteChange]], None]
Unsubscribe = Callable[[], None]


class RemoteStore(ABC):
    """
    Abstract per-user, per-collection document store.

    Every write is stamped with a store-assigned ``remoteUpdatedAt``. Failures
    are reported as PermissionDenied (auth or ACL rejection) or NetworkError
    (anything transient). A read miss is not an error.
    """

    @abstractmethod
    async def put(
        self, collection: Collection, user_id: str, key: str, document: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Create or fully replace a document.

        Args:
            collection: Target collection
            user_id: Owner of the document
            key: Natural key of the document
            document: Document body

        Returns:
            The stored document including its remoteUpdatedAt stamp
        """

    @abstractmethod
    async def get(
        self, collection: Collection, user_id: str, key: str
    ) -> Optional[Dict[str, Any]]:
        """Get a document, or None if it does not exist."""

    @abstractmethod
    async def get_all(
        self, collection: Collection, user_id: str
    ) -> List[Dict[str, Any]]:
        """Get every document of a user's collection."""

    @abstractmethod
    async def delete(self, collection: Collection, user_id: str, key: str) -> None:
        """Delete a document. Deleting a missing document succeeds."""

    @abstractmethod
    def subscribe(
        self, collection: Collection, user_id: str, callback: ChangeCallback
    ) -> Unsubscribe:
        """
        Register for changes to a user's collection.

        Args:
            collection: Collection to watch
            user_id: Owner of the collection
            callback: Called with each batch of changes

        Returns:
            Function that cancels the subscription
        """

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
