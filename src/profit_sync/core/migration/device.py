"""Stable per-installation device identity."""

import logging
import platform
import uuid

from ...database.local_store import DEVICE_ID_STATE, LocalStore

logger = logging.getLogger(__name__)

DEVICE_ID_PREFIX = "device_"


def generate_device_id() -> str:
    """Create a new random device id."""
    return f"{DEVICE_ID_PREFIX}{uuid.uuid4().hex}"


def current_platform() -> str:
    """Short description of the host, stored in the device registry."""
    system = platform.system() or "unknown"
    release = platform.release()
    return f"{system} {release}".strip()


async def get_device_id(local_store: LocalStore) -> str:
    """Return this installation's device id, creating it on first use."""
    device_id = await local_store.get_state(DEVICE_ID_STATE)
    if device_id:
        return device_id

    device_id = generate_device_id()
    await local_store.set_state(DEVICE_ID_STATE, device_id)
    logger.info("Generated device id %s", device_id)
    return device_id
