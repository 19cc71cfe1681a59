"""Asynchronous, namespace-isolated facade over the local database."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import StorageUnavailable
from .models import Namespace
from .service import DatabaseService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Names used in the local_state table
DEVICE_ID_STATE = "device_id"
LAST_SYNC_STATE = "last_sync_time"


class LocalStore:
    """Keyed per-record local durable store.

    Every operation is a coroutine; the blocking database work runs in a worker
    thread. Failures of the underlying database surface as StorageUnavailable
    and only affect the operation that raised them.
    """

    def __init__(self, db_service: DatabaseService):
        """Initialize local store.

        Args:
            db_service: Database service owning the SQLite engine
        """
        self.db_service = db_service

    async def _run(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Local store %s failed: %s", operation, e)
            raise StorageUnavailable(f"Local store {operation} failed: {e}") from e

    async def upsert(self, namespace: Namespace, record: Dict[str, Any]) -> str:
        """Insert or replace a record by its natural key.

        Returns:
            The record key
        """
        return await self._run(
            "upsert", self.db_service.upsert_document, namespace, record
        )

    async def get(self, namespace: Namespace, key: str) -> Optional[Dict[str, Any]]:
        """Get a record by key, or None if absent."""
        return await self._run("get", self.db_service.get_document, namespace, key)

    async def get_all(self, namespace: Namespace) -> List[Dict[str, Any]]:
        """Get every record of a namespace."""
        return await self._run("get_all", self.db_service.get_documents, namespace)

    async def get_modified_since(
        self, namespace: Namespace, since: datetime
    ) -> List[Dict[str, Any]]:
        """Get records with modifiedAt strictly after ``since``."""
        return await self._run(
            "get_modified_since",
            self.db_service.get_documents_modified_since,
            namespace,
            since,
        )

    async def delete(self, namespace: Namespace, key: str) -> bool:
        """Delete a record; returns whether one was removed."""
        return await self._run(
            "delete", self.db_service.delete_document, namespace, key
        )

    async def clear(self, namespace: Namespace) -> int:
        """Delete every record of a namespace."""
        return await self._run("clear", self.db_service.clear_namespace, namespace)

    async def count(self, namespace: Namespace) -> int:
        """Count records in a namespace."""
        return await self._run("count", self.db_service.count_documents, namespace)

    async def get_state(self, name: str) -> Optional[str]:
        """Read a persisted local state value."""
        return await self._run("get_state", self.db_service.get_state, name)

    async def set_state(self, name: str, value: str) -> None:
        """Persist a local state value."""
        await self._run("set_state", self.db_service.set_state, name, value)

    async def delete_state(self, name: str) -> None:
        """Remove a persisted local state value."""
        await self._run("delete_state", self.db_service.delete_state, name)
