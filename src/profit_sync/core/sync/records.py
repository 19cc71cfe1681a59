"""Record types kept in sync and where each one lives."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ...database.models import Namespace
from ...models import ENTRY_BUSINESS_FIELDS, SETTINGS_BUSINESS_FIELDS
from ...remote.base import Collection
from ...utils.timestamps import parse_timestamp

# Bookkeeping fields added to outbox items
OUTBOX_FIELDS = ("offlineAction", "offlineTimestamp")


@dataclass(frozen=True)
class RecordSpace:
    """Maps a record type onto its local namespaces and remote collection."""

    name: str
    mirror: Namespace
    outbox: Namespace
    collection: Collection
    fields: Tuple[str, ...]

    @property
    def key_field(self) -> str:
        """Document field holding the record key."""
        return self.mirror.key_field

    def key_of(self, document: Dict[str, Any]) -> str:
        """Natural key of a document of this type."""
        return str(document[self.key_field])


ENTRY_SPACE = RecordSpace(
    name="entries",
    mirror=Namespace.ENTRIES,
    outbox=Namespace.OUTBOX_ENTRIES,
    collection=Collection.ENTRIES,
    fields=ENTRY_BUSINESS_FIELDS,
)

SETTINGS_SPACE = RecordSpace(
    name="settings",
    mirror=Namespace.SETTINGS,
    outbox=Namespace.OUTBOX_SETTINGS,
    collection=Collection.SETTINGS,
    fields=SETTINGS_BUSINESS_FIELDS,
)

RECORD_SPACES = (ENTRY_SPACE, SETTINGS_SPACE)


def strip_outbox_fields(document: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a document without outbox bookkeeping."""
    return {k: v for k, v in document.items() if k not in OUTBOX_FIELDS}


def is_clean_copy(document: Dict[str, Any]) -> bool:
    """Whether a local document is an unmodified copy of a remote version.

    A copy is clean when its remote stamp is not older than its last local
    modification.
    """
    stamped = parse_timestamp(document.get("remoteUpdatedAt"))
    modified = parse_timestamp(document.get("modifiedAt"))
    if stamped is None:
        return False
    return modified is None or stamped >= modified
