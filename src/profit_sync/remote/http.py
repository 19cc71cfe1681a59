"""REST implementation of the remote document store."""

import asyncio
import logging
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import requests

from ..exceptions import NetworkError, PermissionDenied, RemoteStoreError
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


class HttpRemoteStore(RemoteStore):
    """
    Remote store backed by a JSON document API.

    Documents live at ``{base_url}/users/{user_id}/{collection}/{key}``.
    PUT replaces a document, GET on the collection lists it, DELETE removes
    one document. Requests carry a bearer token.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 10.0,
        poll_interval: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the HTTP remote store.

        Args:
            base_url: API root, without trailing slash
            api_token: Bearer token sent with every request
            timeout: Request timeout in seconds
            poll_interval: Seconds between polls for subscriptions
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if api_token:
            self.session.headers["Authorization"] = f"Bearer {api_token}"
        self._poll_tasks: List["asyncio.Task[None]"] = []

    def _url(
        self, collection: Collection, user_id: str, key: Optional[str] = None
    ) -> str:
        url = f"{self.base_url}/users/{user_id}/{collection.value}"
        if key is not None:
            url = f"{url}/{key}"
        return url

    def _request(
        self, method: str, url: str, payload: Optional[Dict[str, Any]] = None
    ) -> Optional[requests.Response]:
        """
        Perform one request and map failures onto the sync error hierarchy.

        Returns:
            The response, or None for a 404
        """
        try:
            response = self.session.request(
                method, url, json=payload, timeout=self.timeout
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteStoreError(f"{method} {url} failed: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise PermissionDenied(f"{method} {url} rejected with {status}")
        if status == 404:
            return None
        if status >= 400:
            raise RemoteStoreError(
                f"{method} {url} returned {status}: {response.text[:200]}",
                status_code=status,
            )
        return response

    @staticmethod
    def _json_body(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteStoreError(
                "Remote store returned a non-JSON body",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _server_stamp(response: requests.Response, document: Dict[str, Any]) -> str:
        """Stamp for a stored document whose body carried none.

        Date headers have whole-second resolution, so the stamp is raised to
        the document's own modifiedAt to keep the stored copy clean.
        """
        stamp = None
        date_header = response.headers.get("Date")
        if date_header:
            try:
                stamp = parse_timestamp(parsedate_to_datetime(date_header))
            except (TypeError, ValueError):
                logger.debug("Unparseable Date header: %s", date_header)
        if stamp is None:
            stamp = utcnow()

        modified_at = parse_timestamp(document.get("modifiedAt"))
        if modified_at is not None and modified_at > stamp:
            stamp = modified_at
        return to_iso(stamp)

    # =========================================================================
    # Blocking implementations
    # =========================================================================

    def _put_sync(
        self, collection: Collection, user_id: str, key: str, document: Dict[str, Any]
    ) -> Dict[str, Any]:
        body = dict(document)
        body[collection.key_field] = key
        body.pop("remoteUpdatedAt", None)

        response = self._request("PUT", self._url(collection, user_id, key), body)
        if response is None:
            raise RemoteStoreError(
                f"PUT {collection.value}/{key} returned 404", status_code=404
            )

        returned = self._json_body(response)
        stored = dict(returned) if isinstance(returned, dict) else body
        if not stored.get("remoteUpdatedAt"):
            stored["remoteUpdatedAt"] = self._server_stamp(response, stored)
        return stored

    def _get_sync(
        self, collection: Collection, user_id: str, key: str
    ) -> Optional[Dict[str, Any]]:
        response = self._request("GET", self._url(collection, user_id, key))
        if response is None:
            return None
        body = self._json_body(response)
        return body if isinstance(body, dict) else None

    def _get_all_sync(
        self, collection: Collection, user_id: str
    ) -> List[Dict[str, Any]]:
        response = self._request("GET", self._url(collection, user_id))
        if response is None:
            return []
        body = self._json_body(response)
        if isinstance(body, dict):
            body = body.get("documents", [])
        if not isinstance(body, list):
            raise RemoteStoreError(
                f"Unexpected listing for {collection.value}",
                status_code=response.status_code,
            )
        return [doc for doc in body if isinstance(doc, dict)]

    def _delete_sync(self, collection: Collection, user_id: str, key: str) -> None:
        self._request("DELETE", self._url(collection, user_id, key))

    # =========================================================================
    # RemoteStore interface
    # =========================================================================

    async def put(
        self, collection: Collection, user_id: str, key: str, document: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Replace a document and return it with its server stamp."""
        return await asyncio.to_thread(
            self._put_sync, collection, user_id, key, document
        )

    async def get(
        self, collection: Collection, user_id: str, key: str
    ) -> Optional[Dict[str, Any]]:
        """Get a document, or None on 404."""
        return await asyncio.to_thread(self._get_sync, collection, user_id, key)

    async def get_all(
        self, collection: Collection, user_id: str
    ) -> List[Dict[str, Any]]:
        """List a collection; a missing collection is empty."""
        return await asyncio.to_thread(self._get_all_sync, collection, user_id)

    async def delete(self, collection: Collection, user_id: str, key: str) -> None:
        """Delete a document; 404 counts as success."""
        await asyncio.to_thread(self._delete_sync, collection, user_id, key)

    def subscribe(
        self, collection: Collection, user_id: str, callback: ChangeCallback
    ) -> Unsubscribe:
        """
        Poll a collection and report differences in remoteUpdatedAt per key.

        Must be called from a running event loop. The first poll only records
        a baseline.
        """
        task = asyncio.get_running_loop().create_task(
            self._poll(collection, user_id, callback)
        )
        self._poll_tasks.append(task)

        def unsubscribe() -> None:
            task.cancel()
            if task in self._poll_tasks:
                self._poll_tasks.remove(task)

        return unsubscribe

    async def _poll(
        self, collection: Collection, user_id: str, callback: ChangeCallback
    ) -> None:
        key_field = collection.key_field
        known: Optional[Dict[str, str]] = None

        while True:
            try:
                documents = await self.get_all(collection, user_id)
            except PermissionDenied as e:
                logger.error("Stopping %s subscription: %s", collection.value, e)
                return
            except NetworkError as e:
                logger.warning("Polling %s failed: %s", collection.value, e)
                await asyncio.sleep(self.poll_interval)
                continue

            current = {
                str(doc[key_field]): doc for doc in documents if doc.get(key_field)
            }
            stamps = {
                key: str(doc.get("remoteUpdatedAt", "")) for key, doc in current.items()
            }

            if known is not None:
                changes = [
                    RemoteChange(ChangeKind.UPSERT, key, current[key])
                    for key, stamp in stamps.items()
                    if known.get(key) != stamp
                ]
                changes.extend(
                    RemoteChange(ChangeKind.DELETE, key)
                    for key in known
                    if key not in stamps
                )
                if changes:
                    logger.debug(
                        "Polling %s found %d change(s)", collection.value, len(changes)
                    )
                    callback(changes)

            known = stamps
            await asyncio.sleep(self.poll_interval)

    async def close(self) -> None:
        """Cancel polling tasks and close the HTTP session."""
        for task in self._poll_tasks:
            task.cancel()
        self._poll_tasks.clear()
        self.session.close()
