"""SQLAlchemy models for the local durable store."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Namespace(str, Enum):
    """Logical tables of the local durable store.

    Each namespace holds at most one document per key.
    """

    ENTRIES = "entries"  # Local mirror of daily entries
    SETTINGS = "settings"  # Local mirror of the rate settings singleton
    OUTBOX_ENTRIES = "offline_entries"  # Entry writes waiting for the remote store
    OUTBOX_SETTINGS = "offline_settings"  # Settings writes waiting for the remote
    DEVICE_REGISTRY = "device_registry"  # Cache of this device's registry entry
    LEGACY_ENTRIES = "legacy_entries"  # Pre-cloud local-only entries
    LEGACY_SETTINGS = "legacy_settings"  # Pre-cloud local-only settings

    @property
    def key_field(self) -> str:
        """Document field holding the natural key for this namespace."""
        if self in (
            Namespace.SETTINGS,
            Namespace.OUTBOX_SETTINGS,
            Namespace.LEGACY_SETTINGS,
        ):
            return "name"
        if self == Namespace.DEVICE_REGISTRY:
            return "id"
        return "date"

    @property
    def is_outbox(self) -> bool:
        """Whether this namespace queues writes for replay."""
        return self in (Namespace.OUTBOX_ENTRIES, Namespace.OUTBOX_SETTINGS)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class LocalDocument(Base):
    """A single keyed document in one namespace of the local store."""

    __tablename__ = "local_documents"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    namespace: Mapped[str] = mapped_column(String(50), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)

    # Document body (camelCase JSON, exactly as handed to upsert)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Extracted for queries; naive UTC
    modified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )  # Document modifiedAt, drives incremental sync
    queued_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )  # Outbox offlineTimestamp, drives FIFO replay

    # Row bookkeeping
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("namespace", "key", name="uq_namespace_key"),
        Index("idx_namespace_modified", "namespace", "modified_at"),
        Index("idx_namespace_queued", "namespace", "queued_at"),
    )

    def __repr__(self) -> str:
        """String representation of LocalDocument."""
        return f"<LocalDocument(namespace='{self.namespace}', key='{self.key}')>"


class LocalState(Base):
    """Small key/value table for per-installation state.

    Holds the device identifier and the last-sync watermark.
    """

    __tablename__ = "local_state"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        """String representation of LocalState."""
        return f"<LocalState(name='{self.name}')>"
