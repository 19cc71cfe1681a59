"""Exception hierarchy for the sync core.

Errors are grouped by how callers must react to them:

- NetworkError: transient, buffered in the outbox and retried on the next trigger
- PermissionDenied: fatal for the session, flips the engine into local-only mode
- StorageUnavailable: fatal for the attempted local operation only
- ConflictUnresolved: a conflict left the pass without a decision
"""

from typing import Optional


class SyncError(Exception):
    """Base class for all sync core errors."""


class NetworkError(SyncError):
    """The remote store could not be reached or answered with a transient error."""


class RemoteStoreError(NetworkError):
    """The remote store answered with an unexpected response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize remote store error.

        Args:
            message: Error description
            status_code: HTTP status code, if the error came from a response
        """
        super().__init__(message)
        self.status_code = status_code


class PermissionDenied(SyncError):
    """The remote store rejected the request for authentication or ACL reasons.

    Never retried automatically.
    """


class StorageUnavailable(SyncError):
    """The local durable store could not complete an operation."""


class ConflictUnresolved(SyncError):
    """A conflicting record reached the end of a pass without a decision."""

    def __init__(self, key: str):
        """Initialize with the key of the unresolved record."""
        super().__init__(f"Conflict for '{key}' was not resolved")
        self.key = key
