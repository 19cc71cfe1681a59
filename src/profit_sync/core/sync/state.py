"""Sync engine state machine.

Transitions are a pure function so they can be tested without any I/O.
"""

from enum import Enum


class SyncState(str, Enum):
    """States of the sync engine."""

    IDLE = "idle"
    SYNCING = "syncing"
    OFFLINE = "offline"
    PERMISSION_BLOCKED = "permission_blocked"


class SyncEvent(str, Enum):
    """Events driving the sync engine."""

    SIGN_IN = "sign_in"
    SIGN_OUT = "sign_out"
    WENT_ONLINE = "went_online"
    WENT_OFFLINE = "went_offline"
    SYNC_REQUESTED = "sync_requested"
    SYNC_SUCCEEDED = "sync_succeeded"
    SYNC_FAILED = "sync_failed"
    NETWORK_FAILED = "network_failed"
    PERMISSION_DENIED = "permission_denied"


_TRANSITIONS = {
    (SyncState.IDLE, SyncEvent.SYNC_REQUESTED): SyncState.SYNCING,
    (SyncState.IDLE, SyncEvent.WENT_OFFLINE): SyncState.OFFLINE,
    (SyncState.IDLE, SyncEvent.NETWORK_FAILED): SyncState.OFFLINE,
    (SyncState.SYNCING, SyncEvent.SYNC_SUCCEEDED): SyncState.IDLE,
    (SyncState.SYNCING, SyncEvent.SYNC_FAILED): SyncState.IDLE,
    (SyncState.SYNCING, SyncEvent.NETWORK_FAILED): SyncState.OFFLINE,
    (SyncState.SYNCING, SyncEvent.WENT_OFFLINE): SyncState.OFFLINE,
    (SyncState.OFFLINE, SyncEvent.WENT_ONLINE): SyncState.SYNCING,
    (SyncState.OFFLINE, SyncEvent.SYNC_REQUESTED): SyncState.SYNCING,
}


def transition(state: SyncState, event: SyncEvent) -> SyncState:
    """Compute the next state.

    Events that do not apply to the current state leave it unchanged.

    Args:
        state: Current state
        event: Incoming event

    Returns:
        The next state
    """
    if event == SyncEvent.PERMISSION_DENIED:
        return SyncState.PERMISSION_BLOCKED
    if event == SyncEvent.SIGN_IN:
        return SyncState.IDLE
    if state == SyncState.PERMISSION_BLOCKED:
        # Only a new sign-in leaves the blocked state
        return state
    if event == SyncEvent.SIGN_OUT:
        return SyncState.IDLE
    return _TRANSITIONS.get((state, event), state)
