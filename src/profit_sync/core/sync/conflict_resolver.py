"""Conflict resolution between a local and a remote version of a record.

The decision is a pure function of the two documents:

- only one side exists: that side wins
- local ``modifiedAt`` against remote ``remoteUpdatedAt``: strictly newer wins
- equal timestamps: business fields are compared; equal content is in sync,
  different content needs a human decision
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from ...utils.timestamps import parse_timestamp

logger = logging.getLogger(__name__)


class Resolution(str, Enum):
    """Outcome of comparing two versions of a record."""

    LOCAL = "local"  # Local version wins, remote must be overwritten
    REMOTE = "remote"  # Remote version wins, local mirror must be overwritten
    ASK = "ask"  # Same timestamp, different content
    IN_SYNC = "in_sync"  # Same timestamp, same content


def local_timestamp(document: Dict[str, Any]) -> Optional[datetime]:
    """Ordering timestamp of a local document."""
    return parse_timestamp(document.get("modifiedAt"))


def remote_timestamp(document: Dict[str, Any]) -> Optional[datetime]:
    """Ordering timestamp of a remote document.

    Falls back to modifiedAt for documents that were never stamped.
    """
    return parse_timestamp(document.get("remoteUpdatedAt")) or parse_timestamp(
        document.get("modifiedAt")
    )


def fields_equal(
    first: Dict[str, Any], second: Dict[str, Any], fields: Iterable[str]
) -> bool:
    """Compare two documents over the given business fields.

    A missing field and an explicit None are treated alike.
    """
    return all(first.get(name) == second.get(name) for name in fields)


def resolve(
    local: Optional[Dict[str, Any]],
    remote: Optional[Dict[str, Any]],
    fields: Iterable[str],
    *,
    arbitrate_divergence: bool = False,
) -> Resolution:
    """Decide which version of a record wins.

    Args:
        local: Local version, or None if absent
        remote: Remote version, or None if absent
        fields: Business fields compared when timestamps tie
        arbitrate_divergence: Ask whenever both versions exist and differ,
            regardless of timestamps

    Returns:
        The resolution

    Raises:
        ValueError: If both versions are missing
    """
    if local is None and remote is None:
        raise ValueError("Cannot resolve a record missing on both sides")
    if remote is None:
        return Resolution.LOCAL
    if local is None:
        return Resolution.REMOTE

    fields = tuple(fields)
    same_content = fields_equal(local, remote, fields)

    if arbitrate_divergence:
        return Resolution.IN_SYNC if same_content else Resolution.ASK

    local_time = local_timestamp(local)
    remote_time = remote_timestamp(remote)

    if local_time != remote_time:
        # A side without any timestamp is older than one with a timestamp
        if remote_time is None:
            return Resolution.LOCAL
        if local_time is None:
            return Resolution.REMOTE
        return Resolution.LOCAL if local_time > remote_time else Resolution.REMOTE

    return Resolution.IN_SYNC if same_content else Resolution.ASK
